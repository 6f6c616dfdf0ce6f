"""Outbound notification transports."""

import asyncio
from abc import ABC, abstractmethod

import aiohttp

from probe.shared.logger import get_logger

DEFAULT_API_SERVER = "https://api.telegram.org"


class TransportError(Exception):
    """A notification could not be delivered."""


class NotificationTransport(ABC):
    @abstractmethod
    async def send(self, operator_id: int, text: str):
        """Deliver one message. Raises TransportError on failure."""
        ...

    async def close(self):
        pass


class TelegramTransport(NotificationTransport):
    """Sends messages through the Telegram Bot API ``sendMessage`` method."""

    def __init__(
        self,
        bot_token: str,
        api_server: str | None = None,
        timeout: float = 30.0,
    ):
        self._bot_token = bot_token
        self._api_server = (api_server or DEFAULT_API_SERVER).rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    @property
    def endpoint(self) -> str:
        return f"{self._api_server}/bot{self._bot_token}/sendMessage"

    async def send(self, operator_id: int, text: str):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        try:
            async with self._session.post(
                self.endpoint, json={"chat_id": operator_id, "text": text}
            ) as resp:
                data = await resp.json(content_type=None)
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TransportError(f"Telegram request failed: {e}") from e

        if status >= 300 or not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else None
            raise TransportError(f"Telegram rejected message ({status}): {description}")

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None


class LoggingTransport(NotificationTransport):
    """Writes notifications to the log when no bot is configured."""

    def __init__(self):
        self.logger = get_logger("notifier.log")

    async def send(self, operator_id: int, text: str):
        self.logger.warning(f"[to {operator_id}] {text}")
