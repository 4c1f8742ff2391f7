"""Telegram Bot API message sender with rate limiting and retry logic."""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any

import httpx

from task_follower.core.config import constants, settings
from task_follower.core.errors import DeliveryError, DeliveryErrorCategory, classify_delivery_error
from task_follower.core.ports import MessageAction


logger = logging.getLogger(__name__)


# HTTP status code constants for error handling
HTTP_CLIENT_ERROR_START = 400
HTTP_CLIENT_ERROR_END = 500


class RateLimiter:
    """In-memory rate limiter for Telegram API calls.

    Tracks requests per chat per minute to stay under Telegram's flood limits.
    """

    def __init__(self, max_per_minute: int = constants.MAX_MESSAGES_PER_CHAT_PER_MINUTE) -> None:
        self._max_per_minute = max_per_minute
        self._requests: dict[str, list[datetime]] = defaultdict(list)

    def can_send(self, chat_id: str) -> bool:
        """Check if a message can be sent to the given chat.

        Args:
            chat_id: Telegram chat id to check

        Returns:
            True if sending is allowed, False if rate limited
        """
        now = datetime.now()
        cutoff = now - timedelta(minutes=1)

        # Clean up old requests
        self._requests[chat_id] = [ts for ts in self._requests[chat_id] if ts > cutoff]

        return len(self._requests[chat_id]) < self._max_per_minute

    def record_request(self, chat_id: str) -> None:
        self._requests[chat_id].append(datetime.now())


class TelegramGateway:
    """Send-only Telegram gateway.

    Client errors are classified and raised as DeliveryError right away;
    server errors and network failures are retried with exponential backoff.
    """

    def __init__(
        self,
        *,
        bot_token: str,
        base_url: str = settings.telegram_api_base_url,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = f"{base_url.rstrip('/')}/bot{bot_token}"
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._rate_limiter = rate_limiter or RateLimiter()
        self._transport = transport

    async def _call(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a Bot API method with retry, returning its `result`."""
        url = f"{self._api_url}/{method}"
        last_error = ""

        for attempt in range(self._max_retries):
            try:
                async with httpx.AsyncClient(
                    timeout=constants.API_TIMEOUT_SECONDS, transport=self._transport
                ) as client:
                    response = await client.post(url, json=payload)

                if response.is_success:
                    return response.json().get("result") or {}

                if HTTP_CLIENT_ERROR_START <= response.status_code < HTTP_CLIENT_ERROR_END:
                    description = _error_description(response)
                    category = classify_delivery_error(response.status_code, description)
                    raise DeliveryError(category, description)

                last_error = f"Server error: {response.status_code}"
            except httpx.HTTPError as e:
                last_error = f"{type(e).__name__}: {e}"

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_delay * (2**attempt))

        logger.warning("Telegram call failed after retries", extra={"method": method, "error": last_error})
        raise DeliveryError(DeliveryErrorCategory.UNKNOWN, f"Failed after retries: {last_error}")

    def _check_rate_limit(self, chat_id: str) -> None:
        if not self._rate_limiter.can_send(chat_id):
            raise DeliveryError(DeliveryErrorCategory.RATE_LIMITED, "Rate limit exceeded. Please try again later.")
        self._rate_limiter.record_request(chat_id)

    async def _send(self, address: str, text: str, reply_markup: dict[str, Any] | None = None) -> str:
        self._check_rate_limit(address)
        payload: dict[str, Any] = {
            "chat_id": address,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup

        result = await self._call("sendMessage", payload)
        message_id = str(result.get("message_id", ""))
        logger.info("Telegram message sent", extra={"chat_id": address, "message_id": message_id})
        return message_id

    async def send(self, address: str, text: str) -> str:
        """Send an HTML message, returning the Telegram message id.

        Raises:
            DeliveryError: With the classified reason when delivery fails
        """
        return await self._send(address, text)

    async def send_with_action(self, address: str, text: str, action: MessageAction) -> str:
        """Send a message carrying a single inline button."""
        keyboard = {"inline_keyboard": [[{"text": action.label, "callback_data": action.payload}]]}
        return await self._send(address, text, reply_markup=keyboard)

    async def answer_action(self, action_id: str, text: str) -> None:
        """Acknowledge a button press with a short toast."""
        await self._call("answerCallbackQuery", {"callback_query_id": action_id, "text": text[:200]})


def _error_description(response: httpx.Response) -> str:
    try:
        return str(response.json().get("description") or response.text)
    except ValueError:
        return response.text
