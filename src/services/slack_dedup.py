"""Slack event deduplication using a bounded, time-expiring in-memory cache."""

import os
import threading
import time
from typing import Callable, Optional, Union

from cachetools import TTLCache

from src.models.slack_event import EventIdentity, MentionEvent
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

DEFAULT_CAPACITY = 1000
DEFAULT_TTL_SECONDS = 60.0


def event_identity(event: MentionEvent) -> EventIdentity:
    """Build the dedup key for a mention: (channel, ts, author|"unknown")."""
    return EventIdentity(
        channel_id=event.channel_id,
        message_ts=event.message_ts,
        author_user_id=event.author_user_id or "unknown",
    )


class _ProcessedEvents(TTLCache):
    """TTLCache that logs when a full cache evicts its oldest live entry."""

    def popitem(self):
        key, value = super().popitem()
        logger.debug("Dedup cache full, evicted oldest entry", evicted_key=key)
        return key, value


class EventDeduplicator:
    """
    Remembers recently handled events so Slack retries are not answered twice.

    Entries leave the cache only through TTL expiry or capacity eviction,
    never on completion of the work they guard. Expiry is evaluated lazily
    against the injected clock on every access.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._cache: TTLCache[str, bool] = _ProcessedEvents(
            maxsize=capacity, ttl=ttl_seconds, timer=clock or time.monotonic
        )
        # TTLCache is not thread-safe
        self._lock = threading.Lock()

    def is_processed(self, key: Union[EventIdentity, str]) -> bool:
        """Return True if the key was seen within the TTL window."""
        with self._lock:
            return str(key) in self._cache

    def mark_processed(self, key: Union[EventIdentity, str]) -> None:
        """Record the key; re-marking an existing key is a no-op."""
        key = str(key)
        with self._lock:
            if key in self._cache:
                return
            self._cache[key] = True

    def __len__(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (EventIdentity, str)):
            return False
        return self.is_processed(key)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


# Global deduplicator instance
_event_deduplicator: Optional[EventDeduplicator] = None


def get_event_deduplicator() -> EventDeduplicator:
    """Get or create the process-wide deduplicator."""
    global _event_deduplicator
    if _event_deduplicator is None:
        capacity = int(os.environ.get("DEDUP_CAPACITY", str(DEFAULT_CAPACITY)))
        ttl = float(os.environ.get("DEDUP_TTL_SECONDS", str(DEFAULT_TTL_SECONDS)))
        _event_deduplicator = EventDeduplicator(capacity=capacity, ttl_seconds=ttl)
        logger.info(
            "EventDeduplicator initialized",
            dedup_capacity=capacity,
            dedup_ttl_seconds=ttl
        )
    return _event_deduplicator
