"""Telegram Bot API sender adapter.

Each payload becomes one ``sendMessage`` call with MarkdownV2 parse mode.
Calls run concurrently; failures are reported through an error callback
and never retried.
"""

import asyncio
from collections.abc import Callable, Sequence
from urllib.parse import urlencode

import httpx

from logalerts.core.models import Destination

DEFAULT_BASE_URL = "https://api.telegram.org"
DEFAULT_TIMEOUT = 10.0
PARSE_MODE = "MarkdownV2"

ErrorHandler = Callable[[str], None]


class TelegramSender:
    """Telegram implementation of SenderPort.

    Example:
        ```python
        sender = TelegramSender(error_handler=logger.error)
        await sender.send(payloads, Destination(api_token, chat_id))
        ```

    Args:
        error_handler: Receives one diagnostic text per failed payload.
        base_url: Bot API root, overridable for self-hosted API servers.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (e.g. httpx.MockTransport).
    """

    def __init__(
        self,
        error_handler: ErrorHandler | None = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._error_handler = error_handler
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _report(self, text: str) -> None:
        if self._error_handler is not None:
            self._error_handler(text)

    def _endpoint(self, destination: Destination) -> str:
        return f"{self._base_url}/bot{destination.api_token}/sendMessage"

    async def send(self, payloads: Sequence[str], destination: Destination) -> None:
        """Post every payload to the destination chat concurrently.

        A destination without a chat id is a silent no-op.
        """
        if not destination.configured or not payloads:
            return

        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            requests: list[tuple[httpx.Request, str]] = []
            for text in payloads:
                form = {
                    "parse_mode": PARSE_MODE,
                    "chat_id": str(destination.chat_id),
                    "text": text,
                }
                try:
                    request = client.build_request(
                        "POST", self._endpoint(destination), data=form
                    )
                except (httpx.InvalidURL, ValueError) as exc:
                    self._report(f"tgm request construction failed: {exc}")
                    break
                requests.append((request, urlencode(form)))

            await asyncio.gather(
                *(self._post(client, request, data) for request, data in requests)
            )

    async def _post(
        self, client: httpx.AsyncClient, request: httpx.Request, data: str
    ) -> None:
        try:
            response = await client.send(request)
        except httpx.HTTPError as exc:
            self._report(f"tgm request failed: {exc!r}\nrequest data: {data}")
            return

        body = response.text
        if '"ok":true' not in body:
            self._report(f"tgm response: {body}\nrequest data: {data}")
