"""Operator notifications."""

from probe.notifier.notifier import Notifier
from probe.notifier.transport import (
    LoggingTransport,
    NotificationTransport,
    TelegramTransport,
    TransportError,
)

__all__ = [
    "Notifier",
    "LoggingTransport",
    "NotificationTransport",
    "TelegramTransport",
    "TransportError",
]
