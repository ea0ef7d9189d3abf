"""Injectable time source.

Expiry decisions (grants, token ``exp``) read ``Clock.now()`` rather than the
system clock directly so they can be exercised deterministically.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """A clock that only moves when told to.

    Example:
        >>> clock = FrozenClock(datetime(2026, 1, 1, tzinfo=timezone.utc))
        >>> clock.advance(seconds=301).isoformat()
        '2026-01-01T00:05:01+00:00'
    """

    def __init__(self, at: datetime | None = None) -> None:
        self._now = at or datetime.now(timezone.utc).replace(microsecond=0)

    def now(self) -> datetime:
        return self._now

    def set(self, at: datetime) -> None:
        self._now = at

    def advance(self, **delta: float) -> datetime:
        """Move forward by ``timedelta(**delta)`` and return the new time."""
        self._now = self._now + timedelta(**delta)
        return self._now


def to_timestamp(moment: datetime) -> int:
    """Seconds since the epoch, as used by the ``exp`` and ``iat`` claims."""
    return int(moment.timestamp())
