"""
Day/night cycle module.

A sample module following the modstage module contract: ``setup()``
prepares state, ``start()`` begins the cycle. Time is simulated in minutes
and advanced explicitly by the host through ``advance()``.

The day index is derived from absolute elapsed minutes, so a step that
jumps over several days (or lands on the same hour of a later day) fires
one ``new_day`` event per day crossed.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MINUTES_PER_HOUR = 60
HOURS_PER_DAY = 24
MINUTES_PER_DAY = MINUTES_PER_HOUR * HOURS_PER_DAY


@dataclass(frozen=True)
class DayEvent:
    """An event emitted by the cycle."""
    kind: str  # "new_day", "dawn" or "dusk"
    day: int
    minute: int


class DayCycle:
    """
    Simulated day/night clock.

    Attributes:
        start_minute: Elapsed minutes at setup (0 = midnight of day 0)
        dawn_hour: First daytime hour
        dusk_hour: First night-time hour
    """

    def __init__(
        self,
        start_minute: int = 6 * MINUTES_PER_HOUR,
        dawn_hour: int = 6,
        dusk_hour: int = 18,
    ):
        if not 0 <= dawn_hour < dusk_hour <= HOURS_PER_DAY:
            raise ValueError(f"Invalid dawn/dusk hours: {dawn_hour}/{dusk_hour}")
        if start_minute < 0:
            raise ValueError("start_minute must be >= 0")
        self.start_minute = start_minute
        self.dawn_hour = dawn_hour
        self.dusk_hour = dusk_hour

        self.elapsed: Optional[int] = None
        self.running = False
        self._listeners: list[Callable[[DayEvent], None]] = []

    def setup(self) -> int:
        """Initialize the clock; returns the starting minute."""
        self.elapsed = self.start_minute
        return self.elapsed

    def start(self) -> dict:
        """Begin the cycle. Requires setup()."""
        if self.elapsed is None:
            raise RuntimeError("DayCycle.start() called before setup()")
        self.running = True
        logger.info(f"Day cycle started on day {self.day} at {self.clock}")
        return {"day": self.day, "hour": self.hour, "daytime": self.is_daytime}

    def subscribe(self, listener: Callable[[DayEvent], None]) -> None:
        self._listeners.append(listener)

    @property
    def day(self) -> int:
        return self._require_elapsed() // MINUTES_PER_DAY

    @property
    def hour(self) -> int:
        return (self._require_elapsed() % MINUTES_PER_DAY) // MINUTES_PER_HOUR

    @property
    def clock(self) -> str:
        minute_of_day = self._require_elapsed() % MINUTES_PER_DAY
        return f"{minute_of_day // MINUTES_PER_HOUR:02d}:{minute_of_day % MINUTES_PER_HOUR:02d}"

    @property
    def is_daytime(self) -> bool:
        return self.dawn_hour <= self.hour < self.dusk_hour

    def advance(self, minutes: int) -> list[DayEvent]:
        """
        Move the clock forward and emit the events crossed on the way.

        Returns:
            Emitted events, in time order

        Raises:
            RuntimeError: If the cycle is not running
            ValueError: If minutes is negative
        """
        if not self.running:
            raise RuntimeError("DayCycle is not running")
        if minutes < 0:
            raise ValueError("Time cannot move backwards")

        before = self._require_elapsed()
        after = before + minutes
        events = self._events_between(before, after)
        self.elapsed = after

        for event in events:
            for listener in self._listeners:
                listener(event)
        return events

    def _events_between(self, before: int, after: int) -> list[DayEvent]:
        """Events in the half-open interval (before, after]."""
        events = []
        first_day = before // MINUTES_PER_DAY
        last_day = after // MINUTES_PER_DAY
        for day in range(first_day, last_day + 1):
            day_start = day * MINUTES_PER_DAY
            marks = [
                ("new_day", day_start),
                ("dawn", day_start + self.dawn_hour * MINUTES_PER_HOUR),
                ("dusk", day_start + self.dusk_hour * MINUTES_PER_HOUR),
            ]
            for kind, minute in marks:
                if before < minute <= after:
                    events.append(DayEvent(kind=kind, day=day, minute=minute))
        events.sort(key=lambda e: e.minute)
        return events

    def _require_elapsed(self) -> int:
        if self.elapsed is None:
            raise RuntimeError("DayCycle has not been set up")
        return self.elapsed
