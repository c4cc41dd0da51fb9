"""Telegram Bot API client used to deliver notifications."""

import logging
from typing import Any, Dict, Optional

import httpx

from ghnotify.config import TelegramTarget
from ghnotify.errors import DispatchError

logger = logging.getLogger(__name__)

RATE_LIMITED = 429


class TelegramClient:
    """Thin async wrapper around the Bot API ``sendMessage`` method.

    The underlying ``httpx.AsyncClient`` is shared by every in-flight
    dispatch; its connection pool is safe for concurrent use.
    """

    def __init__(
        self,
        target: TelegramTarget,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._target = target
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def enabled(self) -> bool:
        """Whether a bot token is configured."""
        return bool(self._target.bot_token)

    def build_api_url(self, method: str = "sendMessage") -> str:
        """Return the Bot API URL for ``method``."""
        return f"{self._target.api_server}/bot{self._target.bot_token}/{method}"

    def _redact(self, text: str) -> str:
        if self._target.bot_token:
            return text.replace(self._target.bot_token, "<redacted>")
        return text

    async def send_message(
        self, chat_id: int, text: str, timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """Send an HTML message to a chat.

        Args:
            chat_id: Destination chat id.
            text: Message body in Telegram HTML.
            timeout: Per-request timeout override in seconds.

        Returns:
            The ``result`` object from the Bot API response.

        Raises:
            DispatchError: On any failure, flagged transient for network
                errors, rate limiting and 5xx responses.
        """
        if not self.enabled:
            raise DispatchError("Telegram bot token is empty", transient=False)

        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        request_timeout = timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT

        try:
            resp = await self._client.post(
                self.build_api_url(), json=payload, timeout=request_timeout
            )
        except httpx.TimeoutException as e:
            raise DispatchError(
                f"Timed out sending to chat {chat_id}: {type(e).__name__}", transient=True
            ) from e
        except httpx.TransportError as e:
            raise DispatchError(
                self._redact(f"Network error sending to chat {chat_id}: {e}"),
                transient=True,
            ) from e

        return self._parse_response(chat_id, resp)

    def _parse_response(self, chat_id: int, resp: httpx.Response) -> Dict[str, Any]:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.is_success and body.get("ok", True):
            result = body.get("result")
            return result if isinstance(result, dict) else {}

        status = resp.status_code
        error_code = body.get("error_code")
        if resp.is_success and isinstance(error_code, int):
            status = error_code
        description = body.get("description") or resp.reason_phrase or "unknown error"
        message = f"Telegram API error {status} for chat {chat_id}: {description}"

        if status == RATE_LIMITED:
            parameters = body.get("parameters")
            retry_after = parameters.get("retry_after") if isinstance(parameters, dict) else None
            if not isinstance(retry_after, (int, float)) or isinstance(retry_after, bool):
                retry_after = None
            raise DispatchError(
                message, transient=True, status_code=status, retry_after=retry_after
            )
        raise DispatchError(message, transient=status >= 500, status_code=status)

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()
