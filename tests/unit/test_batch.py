"""Tests for Batch sample store and merging."""

from collections.abc import Callable

import pytest
from hypothesis import given
from hypothesis import strategies as st

from logalerts.core.batch import Batch
from logalerts.core.fingerprint import ELLIPSIS, MESSAGE_LIMIT
from logalerts.core.models import LogEvent

pytestmark = [
    pytest.mark.unit,
    pytest.mark.tier(1),
    pytest.mark.tra("Core.Batch"),
]

WARNING = 30


def _event(message: str, fingerprint: int = 0, level: int = WARNING) -> LogEvent:
    return LogEvent(level=level, fingerprint=fingerprint, message=message)


class TestBatchPush:
    """Tests for Batch.push()."""

    @pytest.mark.core
    def test_new_batch_is_empty(self) -> None:
        """A fresh batch has no samples and no time bounds."""
        batch = Batch()
        assert batch.is_empty()
        assert len(batch) == 0
        assert batch.started_at is None
        assert batch.finished_at is None

    @pytest.mark.core
    def test_similar_messages_collapse(self) -> None:
        """Essence-equal messages count into one sample."""
        batch = Batch()
        batch.push(_event("disk usage 87%"), 100.0)
        batch.push(_event("disk usage 92%"), 101.5)

        samples = list(batch)
        assert len(samples) == 1
        assert samples[0].count == 2
        assert samples[0].first_seen_at == 100.0
        assert samples[0].last_seen_at == 101.5
        assert samples[0].message == "disk usage 87%"

    @pytest.mark.core
    def test_time_bounds_follow_pushes(self) -> None:
        """started_at is the first push, finished_at the latest."""
        batch = Batch()
        batch.push(_event("a message"), 10.0)
        batch.push(_event("another text"), 12.0)
        batch.push(_event("a message"), 15.0)
        assert batch.started_at == 10.0
        assert batch.finished_at == 15.0

    @pytest.mark.core
    def test_chronological_order_is_first_occurrence(self) -> None:
        """N distinct fingerprints give N entries sorted by first occurrence."""
        batch = Batch()
        texts = ["alpha", "gamma", "omega", "sigma", "kappa"]
        for ts, text in enumerate(texts):
            batch.push(_event(text), float(ts))
        batch.push(_event("alpha"), 99.0)

        assert len(batch.chronological_order) == len(texts)
        firsts = [s.first_seen_at for s in batch]
        assert firsts == sorted(firsts)
        assert [s.message for s in batch] == texts

    @pytest.mark.core
    def test_external_fingerprint_groups_different_texts(self) -> None:
        """Events sharing an external key collapse whatever their text."""
        batch = Batch()
        batch.push(_event("first text", fingerprint=42), 1.0)
        batch.push(_event("totally different", fingerprint=42), 2.0)
        samples = list(batch)
        assert len(samples) == 1
        assert samples[0].count == 2
        assert samples[0].message == "first text"

    @pytest.mark.core
    def test_external_fingerprint_uses_flat_truncation(self) -> None:
        """A 300-character message under an external key keeps 250 characters."""
        message = "".join(chr(ord("a") + i % 26) for i in range(300))
        batch = Batch()
        batch.push(_event(message, fingerprint=7), 1.0)
        stored = next(iter(batch)).message
        assert stored == message[:MESSAGE_LIMIT] + ELLIPSIS

    @pytest.mark.core
    def test_computed_fingerprint_truncates_at_essence_cut(self) -> None:
        """A computed key cuts the stored text where the essence filled up."""
        message = "x1" * 300
        batch = Batch()
        batch.push(_event(message), 1.0)
        stored = next(iter(batch)).message
        assert stored == message[:495] + ELLIPSIS

    @pytest.mark.core
    def test_computed_fingerprint_keeps_short_messages(self) -> None:
        """Messages with a short essence are stored whole."""
        message = "0123456789" * 40 + " done"
        batch = Batch()
        batch.push(_event(message), 1.0)
        assert next(iter(batch)).message == message

    @pytest.mark.core
    def test_call_stack_is_kept_from_first_occurrence(
        self, make_frame: Callable[..., object]
    ) -> None:
        """The sample keeps the frames of its first event."""
        first = make_frame("/srv/app/a.py", 1)
        later = make_frame("/srv/app/b.py", 2)
        batch = Batch()
        batch.push(LogEvent(WARNING, 5, "boom", (first,)), 1.0)
        batch.push(LogEvent(WARNING, 5, "boom", (later,)), 2.0)
        assert next(iter(batch)).call_stack == (first,)

    @pytest.mark.core
    def test_clear_resets_everything(self) -> None:
        """clear() drops samples and time bounds."""
        batch = Batch()
        batch.push(_event("to be dropped"), 1.0)
        batch.clear()
        assert batch.is_empty()
        assert batch.samples == {}
        assert batch.started_at is None
        assert batch.finished_at is None


class TestBatchTakeFrom:
    """Tests for Batch.take_from() merging."""

    @pytest.mark.core
    def test_merge_into_empty_moves_all_samples(self) -> None:
        """Merging into an empty batch yields exactly the source samples."""
        src = Batch()
        src.push(_event("first problem"), 1.0)
        src.push(_event("second problem"), 2.0)
        expected = dict(src.samples)

        dst = Batch()
        dst.take_from(src)

        assert dst.samples == expected
        assert dst.started_at == 1.0
        assert dst.finished_at == 2.0
        assert src.is_empty()

    @pytest.mark.core
    def test_merge_empty_source_is_noop(self) -> None:
        """Taking from an empty batch leaves the destination unchanged."""
        dst = Batch()
        dst.push(_event("kept"), 1.0)
        dst.take_from(Batch())
        assert len(dst) == 1
        assert next(iter(dst)).count == 1

    @pytest.mark.core
    def test_merge_sums_counts_and_widens_range(self) -> None:
        """Shared fingerprints add counts and take min first / max last."""
        dst = Batch()
        dst.push(_event("retry 1 failed"), 10.0)
        dst.push(_event("retry 2 failed"), 20.0)

        src = Batch()
        src.push(_event("retry 3 failed"), 5.0)
        src.push(_event("retry 4 failed"), 30.0)
        src.push(_event("retry 5 failed"), 31.0)

        dst.take_from(src)

        samples = list(dst)
        assert len(samples) == 1
        assert samples[0].count == 5
        assert samples[0].first_seen_at == 5.0
        assert samples[0].last_seen_at == 31.0
        assert dst.started_at == 5.0
        assert dst.finished_at == 31.0
        assert src.is_empty()

    @pytest.mark.core
    def test_merge_appends_and_resorts_new_fingerprints(self) -> None:
        """New fingerprints join and the order is re-sorted by first seen."""
        dst = Batch()
        dst.push(_event("late arrival"), 50.0)

        src = Batch()
        src.push(_event("early bird"), 10.0)
        src.push(_event("late arrival"), 60.0)

        dst.take_from(src)

        assert [s.message for s in dst] == ["early bird", "late arrival"]
        assert len(dst.chronological_order) == len(set(dst.chronological_order))
        firsts = [s.first_seen_at for s in dst]
        assert firsts == sorted(firsts)

    @pytest.mark.core
    def test_merge_never_loses_events(self) -> None:
        """Total count after merging equals the sum of both batches."""
        dst = Batch()
        src = Batch()
        for i in range(10):
            dst.push(_event(f"job {i} lost", fingerprint=i % 3 + 1), float(i))
            src.push(_event(f"job {i} lost", fingerprint=i % 4 + 1), float(i) + 0.5)

        dst.take_from(src)

        assert sum(s.count for s in dst) == 20


_pushes = st.lists(
    st.tuples(
        st.integers(min_value=1, max_value=6),
        st.floats(min_value=0, max_value=1e6, allow_nan=False),
    ),
    max_size=30,
)


class TestBatchMergeProperties:
    """Property-based checks of Batch.take_from()."""

    @pytest.mark.core
    @pytest.mark.tra("Core.Batch.TakeFrom.Properties")
    @given(left=_pushes, right=_pushes)
    def test_counts_and_order_survive_any_merge(
        self,
        left: list[tuple[int, float]],
        right: list[tuple[int, float]],
    ) -> None:
        """Counts add up and the order stays sorted with unique keys."""
        dst = Batch()
        src = Batch()
        for key, ts in sorted(left, key=lambda p: p[1]):
            dst.push(_event(f"event {key}", fingerprint=key), ts)
        for key, ts in sorted(right, key=lambda p: p[1]):
            src.push(_event(f"event {key}", fingerprint=key), ts)

        dst.take_from(src)

        assert sum(s.count for s in dst) == len(left) + len(right)
        assert len(dst.chronological_order) == len(set(dst.chronological_order))
        assert set(dst.chronological_order) == set(dst.samples)
        firsts = [s.first_seen_at for s in dst]
        assert firsts == sorted(firsts)
        assert src.is_empty()
