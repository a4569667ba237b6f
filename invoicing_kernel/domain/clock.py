"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock interface so that the status mutation
    service never calls ``datetime.now()`` directly when stamping history
    entries and events.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Audit relevance:
    Every ``created_at`` in the status history ledger is traceable to an
    injected Clock instance, so tests can assert exact timestamps.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Start of the Japanese fiscal year
_DEFAULT_TIME = datetime(2024, 4, 1, 9, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
        - ``now_utc()`` returns a UTC-normalized ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    @abstractmethod
    def now_utc(self) -> datetime:
        """Get the current UTC time."""
        ...


class SystemClock(Clock):
    """Production clock that returns actual system time (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
        - ``tick()`` advances by exactly 1 second and returns the new time.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or _DEFAULT_TIME

    def now(self) -> datetime:
        return self._current

    def now_utc(self) -> datetime:
        return self._current.astimezone(timezone.utc)

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: float = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Advance by 1 second and return the new time."""
        self.advance(1)
        return self._current
