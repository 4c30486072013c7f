"""Notification sinks for alert delivery.

Provides an ABC for sinks plus the Telegram Bot API implementation.
Delivery is single-shot: a failure raises ``NotificationError`` and the
caller decides what to do. Nothing here retries.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from alertcpl.accounts.schemas import NotificationDestination
from alertcpl.config.settings import get_settings
from alertcpl.notifications.render import parse_mode_for

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """A delivery attempt failed.

    Attributes:
        status_code: HTTP status from the transport, None for network errors.
        retryable: False when the request itself was rejected (bad chat id,
            malformed markup); True when the transport was unreachable or
            rate limited.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class NotificationSink(ABC):
    """Abstract base for notification delivery channels."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this channel (e.g. 'telegram')."""

    @abstractmethod
    async def send(self, destination: NotificationDestination, text: str) -> None:
        """Deliver a rendered message once.

        Args:
            destination: Where to deliver.
            text: Rendered message text.

        Raises:
            NotificationError: If delivery failed.
        """


class TelegramChannel(NotificationSink):
    """Delivers messages through the Telegram Bot API ``sendMessage`` method.

    Creates a new ``httpx.AsyncClient`` per call (short-lived, no pooling).
    """

    def __init__(
        self,
        bot_token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        dialect: str = "markdown_v2",
    ) -> None:
        settings = get_settings()
        self._bot_token = bot_token if bot_token is not None else settings.telegram_bot_token
        self._base_url = (base_url or settings.telegram_api_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.telegram_timeout_seconds
        self._parse_mode = parse_mode_for(dialect)

    @property
    def name(self) -> str:
        return "telegram"

    @property
    def is_configured(self) -> bool:
        return bool(self._bot_token)

    def _build_payload(self, chat_id: str, text: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if self._parse_mode:
            payload["parse_mode"] = self._parse_mode
        return payload

    async def send(self, destination: NotificationDestination, text: str) -> None:
        if not self._bot_token:
            raise NotificationError("TELEGRAM_BOT_TOKEN is not configured")

        url = f"{self._base_url}/bot{self._bot_token}/sendMessage"
        payload = self._build_payload(destination.chat_id, text)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=payload)
        except httpx.TimeoutException as e:
            raise NotificationError(
                f"Telegram timed out for chat {destination.chat_id}", retryable=True,
            ) from e
        except httpx.TransportError as e:
            raise NotificationError(
                f"Telegram unreachable for chat {destination.chat_id}: {type(e).__name__}",
                retryable=True,
            ) from e

        body = _json_or_none(resp)
        description = (body or {}).get("description") or resp.reason_phrase

        if not resp.is_success:
            raise NotificationError(
                f"Telegram returned {resp.status_code} for chat {destination.chat_id}: {description}",
                status_code=resp.status_code,
                retryable=resp.status_code == 429 or resp.status_code >= 500,
            )

        if body is not None and body.get("ok") is False:
            raise NotificationError(
                f"Telegram rejected message for chat {destination.chat_id}: {description}",
                status_code=resp.status_code,
            )

        logger.debug("Telegram message delivered to chat %s", destination.chat_id)


def _json_or_none(resp: httpx.Response) -> dict[str, Any] | None:
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
