"""
Clocks for event dates and logical-clock timestamps

Event ids need a millisecond clock that never runs backwards, while event
dates want the wall clock. Both come from one provider so tests can pin them
together.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Protocol

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Offset that turns the monotonic clock into milliseconds since the epoch
_EPOCH_OFFSET = time.time() - time.monotonic()


class TimeProvider(Protocol):
    def now(self) -> datetime:
        """Current UTC datetime"""
        ...

    def epoch_ms(self) -> int:
        """Monotonic milliseconds since the Unix epoch"""
        ...


class RealTimeProvider:
    """System clocks: wall clock for dates, monotonic clock for ids"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def epoch_ms(self) -> int:
        # Anchored once at import, so adjusting the wall clock cannot reorder ids
        return int((_EPOCH_OFFSET + time.monotonic()) * 1000)


class TestTimeProvider:
    """
    Frozen clock for deterministic tests

    Time only moves when the test calls `set_time` or `advance_ms`.
    """

    __test__ = False

    def __init__(self, initial_time: datetime | None = None) -> None:
        self._current_time = initial_time or _EPOCH

    def now(self) -> datetime:
        return self._current_time

    def epoch_ms(self) -> int:
        return (self._current_time - _EPOCH) // timedelta(milliseconds=1)

    def set_time(self, dt: datetime) -> None:
        self._current_time = dt

    def advance_ms(self, milliseconds: int) -> None:
        self._current_time += timedelta(milliseconds=milliseconds)
