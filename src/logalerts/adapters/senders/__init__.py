"""Sender adapters implementing the core SenderPort."""

from logalerts.adapters.senders.in_memory import InMemorySender
from logalerts.adapters.senders.telegram import TelegramSender

__all__ = ["InMemorySender", "TelegramSender"]
