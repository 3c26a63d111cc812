"""Time period catalog.

Longitudinal data is partitioned into rolling date-range buckets. Periods are
evaluated in priority order and the first whose window contains a date wins;
the unbounded "Historical" period guarantees every date resolves to a label.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from clinical_memory.utils.dates import MIN_DATETIME, parse_datetime, start_of_day, utcnow

HISTORICAL_LABEL = "Historical"


class RangeKind(str, Enum):
    CURRENT_ENCOUNTER = "current"
    HOURS = "hours"
    DAYS = "days"
    UNBOUNDED = "unbounded"


class PeriodRange(BaseModel):
    """Window definition for a time period."""

    model_config = ConfigDict(frozen=True)

    kind: RangeKind
    amount: int = 0

    @classmethod
    def current(cls) -> "PeriodRange":
        return cls(kind=RangeKind.CURRENT_ENCOUNTER)

    @classmethod
    def hours(cls, amount: int) -> "PeriodRange":
        return cls(kind=RangeKind.HOURS, amount=amount)

    @classmethod
    def days(cls, amount: int) -> "PeriodRange":
        return cls(kind=RangeKind.DAYS, amount=amount)

    @classmethod
    def unbounded(cls) -> "PeriodRange":
        return cls(kind=RangeKind.UNBOUNDED)


class TimePeriod(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    range: PeriodRange
    priority: int


class PeriodBounds(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_date: datetime
    end_date: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start_date <= moment <= self.end_date


DEFAULT_TIME_PERIODS: tuple[TimePeriod, ...] = (
    TimePeriod(label="Current Encounter", range=PeriodRange.current(), priority=1),
    TimePeriod(label="Past 24 Hours", range=PeriodRange.hours(24), priority=2),
    TimePeriod(label="Past 7 Days", range=PeriodRange.days(7), priority=3),
    TimePeriod(label="Past 30 Days", range=PeriodRange.days(30), priority=4),
    TimePeriod(label="Past 90 Days", range=PeriodRange.days(90), priority=5),
    TimePeriod(label="Past Year", range=PeriodRange.days(365), priority=6),
    TimePeriod(label=HISTORICAL_LABEL, range=PeriodRange.unbounded(), priority=7),
)


class TimePeriodCatalog:
    """Resolves dates to period labels over an injected, immutable period list."""

    def __init__(
        self,
        periods: Sequence[TimePeriod] = DEFAULT_TIME_PERIODS,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize catalog.

        Args:
            periods: Period definitions; evaluated in ascending priority
            clock: Returns the current (aware) time; injectable for tests
        """
        self._periods: tuple[TimePeriod, ...] = tuple(sorted(periods, key=lambda p: p.priority))
        self._clock = clock

    @property
    def periods(self) -> tuple[TimePeriod, ...]:
        return self._periods

    @property
    def labels(self) -> list[str]:
        return [p.label for p in self._periods]

    def now(self) -> datetime:
        return self._clock()

    def get_period(self, label: str) -> Optional[TimePeriod]:
        for period in self._periods:
            if period.label == label:
                return period
        return None

    def get_period_bounds(
        self,
        period: TimePeriod,
        encounter_start: Optional[datetime] = None,
    ) -> PeriodBounds:
        """Compute the window for ``period`` relative to now.

        The current-encounter period is anchored to ``encounter_start``,
        falling back to the start of today.
        """
        now = self.now()
        kind = period.range.kind

        if kind == RangeKind.CURRENT_ENCOUNTER:
            start = encounter_start or start_of_day(now)
        elif kind == RangeKind.HOURS:
            start = now - timedelta(hours=period.range.amount)
        elif kind == RangeKind.DAYS:
            start = now - timedelta(days=period.range.amount)
        else:
            start = MIN_DATETIME

        return PeriodBounds(start_date=start, end_date=now)

    def is_in_period(
        self,
        value: Any,
        period: TimePeriod,
        encounter_start: Optional[datetime] = None,
    ) -> bool:
        moment = parse_datetime(value)
        if moment is None:
            return False
        return self.get_period_bounds(period, encounter_start).contains(moment)

    def get_time_period_for_date(
        self,
        value: Any,
        encounter_start: Optional[datetime] = None,
    ) -> str:
        """Return the label of the first period containing ``value``.

        Dates outside every bounded window (including future and unparseable
        dates) resolve to "Historical".
        """
        for period in self._periods:
            if self.is_in_period(value, period, encounter_start):
                return period.label
        return HISTORICAL_LABEL
