"""
Time source for rate-limit windows and message timestamps.

Timestamps are rendered as fixed-width, zero-padded UTC ISO-8601 strings so
that lexical ordering in the database matches chronological ordering.
"""

from __future__ import annotations

from datetime import datetime, timezone

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def format_timestamp(moment: datetime) -> str:
    """Render a datetime as a fixed-width UTC ISO-8601 string."""
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


class Clock:
    """Wall clock. Tests substitute a controllable implementation."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def now_ms(self) -> int:
        return int(self.now().timestamp() * 1000)

    def timestamp(self) -> str:
        return format_timestamp(self.now())


system_clock = Clock()
