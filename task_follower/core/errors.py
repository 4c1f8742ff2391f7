"""Error types and delivery-failure classification."""

from enum import StrEnum
from typing import Literal


class DeliveryErrorCategory(StrEnum):
    """Why an outbound message could not be delivered."""

    CHANNEL_BLOCKED = "channel_blocked"
    NOT_INITIATED = "not_initiated"
    CHANNEL_NOT_FOUND = "channel_not_found"
    RATE_LIMITED = "rate_limited"
    MALFORMED_REQUEST = "malformed_request"
    UNKNOWN = "unknown"


class SourceReadError(RuntimeError):
    """A sheet or one of its tabs could not be read."""

    def __init__(self, sheet_id: str, detail: str, *, tab: str | None = None) -> None:
        self.sheet_id = sheet_id
        self.tab = tab
        where = f"{sheet_id}/{tab}" if tab else sheet_id
        super().__init__(f"Failed to read sheet {where}: {detail}")


class RepositoryError(RuntimeError):
    """The task store rejected a read or write."""


class DeliveryError(RuntimeError):
    """An outbound message failed; carries the classified reason."""

    def __init__(self, category: DeliveryErrorCategory, description: str) -> None:
        self.category = category
        self.description = description
        super().__init__(f"{category.value}: {description}")


_DELIVERY_PATTERNS: dict[
    Literal["blocked", "not_initiated", "not_found", "rate_limit", "malformed"],
    list[str],
] = {
    "blocked": [
        "bot was blocked by the user",
        "user is deactivated",
        "bot was kicked",
    ],
    "not_initiated": [
        "can't initiate conversation",
        "bot can't initiate",
        "have no rights to send a message",
    ],
    "not_found": [
        "chat not found",
        "user not found",
        "peer_id_invalid",
    ],
    "rate_limit": [
        "too many requests",
        "retry after",
        "rate limit",
    ],
    "malformed": [
        "can't parse entities",
        "message is too long",
        "message text is empty",
        "bad request",
    ],
}

_CATEGORY_BY_PATTERN: dict[str, DeliveryErrorCategory] = {
    "blocked": DeliveryErrorCategory.CHANNEL_BLOCKED,
    "not_initiated": DeliveryErrorCategory.NOT_INITIATED,
    "not_found": DeliveryErrorCategory.CHANNEL_NOT_FOUND,
    "rate_limit": DeliveryErrorCategory.RATE_LIMITED,
    "malformed": DeliveryErrorCategory.MALFORMED_REQUEST,
}

HTTP_TOO_MANY_REQUESTS = 429

_CATEGORY_MESSAGES: dict[DeliveryErrorCategory, str] = {
    DeliveryErrorCategory.CHANNEL_BLOCKED: "they blocked the bot",
    DeliveryErrorCategory.NOT_INITIATED: "they have not started a chat with the bot yet",
    DeliveryErrorCategory.CHANNEL_NOT_FOUND: "their chat could not be found",
    DeliveryErrorCategory.RATE_LIMITED: "the messaging service is rate limiting us",
    DeliveryErrorCategory.MALFORMED_REQUEST: "the message was rejected as malformed",
    DeliveryErrorCategory.UNKNOWN: "an unexpected error occurred",
}


def classify_delivery_error(status_code: int | None, description: str) -> DeliveryErrorCategory:
    """Classify a messaging API failure from its status code and description.

    Specific phrases are checked before the generic "bad request" bucket, so
    "Bad Request: chat not found" lands in CHANNEL_NOT_FOUND.

    Args:
        status_code: HTTP status (or API error code) if known
        description: Error description returned by the messaging API

    Returns:
        The matching DeliveryErrorCategory
    """
    if status_code == HTTP_TOO_MANY_REQUESTS:
        return DeliveryErrorCategory.RATE_LIMITED

    text = description.lower()
    for pattern_type, phrases in _DELIVERY_PATTERNS.items():
        if any(phrase in text for phrase in phrases):
            return _CATEGORY_BY_PATTERN[pattern_type]

    return DeliveryErrorCategory.UNKNOWN


def describe_delivery_error(category: DeliveryErrorCategory) -> str:
    """Human-readable reason used in manager-facing failure reports."""
    return _CATEGORY_MESSAGES[category]
