"""
Clock -- injectable time source.

Responsibility:
    Payroll timestamps (calculation date, audit ``changed_at``, preview
    expiry, retention dates, working-hours checks) all come from a Clock so
    tests can pin and move time.

Architecture position:
    Kernel > Domain. SystemClock is the only place that reads wall time.
"""

import threading
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Frozen clock for tests. Time only moves through ``advance()``.

    Worker threads of a batch or a timed transition may share one instance.
    """

    DEFAULT_TIME = datetime(2024, 1, 15, 10, 0, 0, tzinfo=UTC)

    def __init__(self, fixed_time: datetime | None = None):
        if fixed_time is not None and fixed_time.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware time")
        self._current = fixed_time or self.DEFAULT_TIME
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def advance(self, seconds: float = 1) -> datetime:
        with self._lock:
            self._current += timedelta(seconds=seconds)
            return self._current
