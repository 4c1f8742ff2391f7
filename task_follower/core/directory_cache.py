"""Time-bounded cache of the member directory."""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from task_follower.core.ports import IdentityDirectory
from task_follower.domain.contact import Contact


logger = logging.getLogger(__name__)


class DirectoryCache:
    """Snapshot of the identity directory, refreshed wholesale on TTL expiry.

    A lookup that misses while the snapshot is fresh returns None instead of
    refetching, so a reconciliation run calls the directory at most once per
    TTL window no matter how many unknown people its rows mention.
    """

    def __init__(
        self,
        directory: IdentityDirectory,
        *,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            directory: Collaborator providing the full contact list
            ttl_seconds: How long a snapshot is considered fresh
            clock: Monotonic time source (injectable for tests)
        """
        self._directory = directory
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._by_id: dict[str, Contact] = {}
        self._by_channel: dict[str, Contact] = {}
        self._loaded_at: float | None = None
        self._lock = asyncio.Lock()

        # Health tracking
        self._refresh_count = 0
        self._last_error: str | None = None

    @property
    def is_fresh(self) -> bool:
        if self._loaded_at is None:
            return False
        return self._clock() - self._loaded_at < self._ttl_seconds

    def get_health_status(self) -> dict[str, Any]:
        """Get cache health status."""
        return {
            "entries": len(self._by_id),
            "fresh": self.is_fresh,
            "refresh_count": self._refresh_count,
            "last_error": self._last_error,
        }

    async def refresh(self) -> None:
        """Replace the snapshot with a fresh directory listing.

        A failed fetch keeps the previous snapshot (empty on a cold cache) and
        still marks the cache as loaded, so the next attempt waits for the TTL.
        """
        try:
            contacts = await self._directory.list_all()
        except Exception as e:
            self._last_error = str(e)
            self._loaded_at = self._clock()
            logger.warning(
                "Directory refresh failed, keeping previous snapshot",
                extra={"error": str(e), "entries": len(self._by_id)},
            )
            return

        by_id: dict[str, Contact] = {}
        by_channel: dict[str, Contact] = {}
        for contact in contacts:
            if not contact.person_id:
                continue
            by_id[contact.person_id] = contact
            if contact.channel_address:
                by_channel[contact.channel_address] = contact

        self._by_id = by_id
        self._by_channel = by_channel
        self._loaded_at = self._clock()
        self._refresh_count += 1
        self._last_error = None
        logger.info("Directory cache refreshed", extra={"entries": len(by_id)})

    async def _ensure_fresh(self) -> None:
        if self.is_fresh:
            return
        async with self._lock:
            # Another caller may have refreshed while we waited
            if not self.is_fresh:
                await self.refresh()

    async def resolve(self, person_id: str) -> Contact | None:
        """Look up a person by membership number.

        Args:
            person_id: Membership number

        Returns:
            The cached Contact, or None when unknown or the directory is down
        """
        if not person_id:
            return None
        await self._ensure_fresh()
        contact = self._by_id.get(person_id)
        if contact is None:
            logger.debug("Directory miss for person %s", person_id)
        return contact

    async def find_by_channel(self, channel_address: str) -> Contact | None:
        """Reverse lookup by Telegram chat id."""
        if not channel_address:
            return None
        await self._ensure_fresh()
        return self._by_channel.get(channel_address)

    def invalidate(self) -> None:
        """Force the next lookup to refresh."""
        self._loaded_at = None
