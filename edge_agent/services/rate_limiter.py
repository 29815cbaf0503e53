"""
Fixed-window rate limiter backed by the shared key-value store.

Time is split into non-overlapping windows of `window_ms`. Each identifier has
one stored counter tagged with the window it was written in; a counter from an
older window reads as zero, so rollover needs no cleanup job.

The read and the write are two separate store commands. Concurrent requests
for the same identifier inside one window can both read the same count and
both be admitted; slight over-admission under that race is accepted.

Storage failures fail open: the request is admitted and a warning is logged.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Optional, Tuple

from edge_agent.core.clock import Clock, system_clock
from edge_agent.core.errors import StorageError
from edge_agent.models.domain import RateLimitResult
from edge_agent.persistence.redis_store import KeyValueStore

logger = logging.getLogger("rate_limiter")

DEFAULT_LIMIT = 60
DEFAULT_WINDOW_MS = 60_000


class RateLimiter:
    """Per-identifier request counter over fixed time windows."""

    def __init__(
        self,
        store: KeyValueStore,
        limit: int = DEFAULT_LIMIT,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Optional[Clock] = None,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_ms < 1:
            raise ValueError("window_ms must be positive")
        self._store = store
        self._limit = limit
        self._window_ms = window_ms
        self._clock = clock or system_clock
        # Keep stale counters around for two windows to tolerate clock skew
        self._ttl_seconds = math.ceil(2 * window_ms / 1000)

    @property
    def limit(self) -> int:
        return self._limit

    @staticmethod
    def _key(identifier: str) -> str:
        return f"rate_limit:{identifier}"

    def _current_window(self) -> Tuple[int, int]:
        now = self._clock.now_ms()
        window_start = (now // self._window_ms) * self._window_ms
        return window_start, window_start + self._window_ms

    async def _read_count(self, identifier: str, window_start: int) -> int:
        """
        Return the count stored for this window, or 0 when the record is
        missing or belongs to a different window.
        Raises StorageError (or ValueError for a corrupt record).
        """
        raw = await self._store.get(self._key(identifier))
        if raw is None:
            return 0
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"malformed rate limit record: {raw!r}")
        if data.get("window_start") != window_start:
            return 0
        return int(data["count"])

    async def check_and_consume(self, identifier: str) -> RateLimitResult:
        """
        Admit or block one request for `identifier`, consuming a slot when admitted.
        A blocked request does not write to the store.
        """
        window_start, window_end = self._current_window()

        try:
            count = await self._read_count(identifier, window_start)
            if count >= self._limit:
                logger.debug("Rate limit reached for %s (count=%d)", identifier, count)
                return RateLimitResult(remaining=0, reset_time=window_end, blocked=True)

            payload = json.dumps({"count": count + 1, "window_start": window_start})
            await self._store.put(self._key(identifier), payload, self._ttl_seconds)
        except (StorageError, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "Rate limit check_and_consume failed for %s, failing open: %s",
                identifier,
                exc,
            )
            return RateLimitResult(
                remaining=self._limit - 1,
                reset_time=window_end,
                blocked=False,
                degraded=True,
            )

        remaining = self._limit - count - 1
        logger.debug("Rate limit check for %s: count=%d remaining=%d", identifier, count + 1, remaining)
        return RateLimitResult(remaining=remaining, reset_time=window_end, blocked=False)

    async def peek_status(self, identifier: str) -> RateLimitResult:
        """Report the current window's status for `identifier` without consuming a slot."""
        window_start, window_end = self._current_window()

        try:
            count = await self._read_count(identifier, window_start)
        except (StorageError, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "Rate limit peek_status failed for %s, failing open: %s",
                identifier,
                exc,
            )
            return RateLimitResult(
                remaining=self._limit,
                reset_time=window_end,
                blocked=False,
                degraded=True,
            )

        left = self._limit - count
        return RateLimitResult(remaining=max(0, left), reset_time=window_end, blocked=left <= 0)
