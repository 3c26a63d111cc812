"""Lab trend — per-lab value history with derived trend and baseline."""
from __future__ import annotations

import re
import statistics
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from clinical_memory.utils.dates import format_short_date, parse_datetime, utcnow

TREND_WINDOW = 5
FLUCTUATION_CV_PERCENT = 20.0
STABLE_PERCENT = 5.0
SIGNIFICANT_PERCENT = 20.0
CRITICAL_FLAGS = frozenset({"critical", "HH", "LL"})

_NUMERIC_PREFIX = re.compile(r"^\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


class TrendDirection(str, Enum):
    INSUFFICIENT_DATA = "insufficient data"
    STABLE = "stable"
    RISING = "rising"
    RISING_SIGNIFICANTLY = "rising significantly"
    FALLING = "falling"
    FALLING_SIGNIFICANTLY = "falling significantly"
    FLUCTUATING = "fluctuating"


TREND_ARROWS: dict[TrendDirection, str] = {
    TrendDirection.RISING: "↑",
    TrendDirection.RISING_SIGNIFICANTLY: "↑",
    TrendDirection.FALLING: "↓",
    TrendDirection.FALLING_SIGNIFICANTLY: "↓",
    TrendDirection.FLUCTUATING: "↕",
}


def parse_numeric(raw: Any) -> Optional[float]:
    """Parse the leading number of a lab value ("5.2 H" -> 5.2, ">60" -> None)."""
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        match = _NUMERIC_PREFIX.match(str(raw))
        if not match:
            return None
        value = float(match.group(0))
    if value != value or value in (float("inf"), float("-inf")):
        return None
    return value


def format_value(value: float) -> str:
    return format(value, "g")


def is_critical_flag(flag: Optional[str]) -> bool:
    return flag in CRITICAL_FLAGS


class LabValue(BaseModel):
    date: datetime
    value: float
    unit: str = ""
    flag: Optional[str] = None
    context: Optional[str] = None


class LabTrend(BaseModel):
    """Ordered (most-recent-first) history of one lab."""

    name: str
    reference_range: Optional[str] = None
    values: list[LabValue] = Field(default_factory=list)
    trend: TrendDirection = TrendDirection.INSUFFICIENT_DATA
    baseline: Optional[float] = None
    critical_events: list[LabValue] = Field(default_factory=list)

    @property
    def latest_value(self) -> Optional[LabValue]:
        return self.values[0] if self.values else None

    def add_value(
        self,
        date: Any,
        raw_value: Any,
        unit: Optional[str] = None,
        flag: Optional[str] = None,
        context: Optional[str] = None,
    ) -> bool:
        """Insert a point; unparseable values and dates are dropped.

        Returns:
            True if the point was recorded
        """
        value = parse_numeric(raw_value)
        when = parse_datetime(date)
        if value is None or when is None:
            return False

        entry = LabValue(date=when, value=value, unit=unit or "", flag=flag, context=context)
        self.values.append(entry)
        self.values.sort(key=lambda v: v.date, reverse=True)

        if is_critical_flag(flag):
            self.critical_events.append(entry)

        self.compute_trend()
        return True

    def compute_trend(self) -> TrendDirection:
        if len(self.values) < 2:
            self.trend = TrendDirection.INSUFFICIENT_DATA
            return self.trend

        window = [v.value for v in self.values[:TREND_WINDOW]]
        newest, oldest = window[0], window[-1]

        if len(window) >= 3:
            mean = statistics.fmean(window)
            if mean != 0:
                cv = statistics.pstdev(window) / abs(mean) * 100
                if cv > FLUCTUATION_CV_PERCENT:
                    self.trend = TrendDirection.FLUCTUATING
                    return self.trend

        if oldest == 0:
            self.trend = TrendDirection.STABLE
            return self.trend

        change = (newest - oldest) / abs(oldest) * 100
        if abs(change) < STABLE_PERCENT:
            self.trend = TrendDirection.STABLE
        elif change > SIGNIFICANT_PERCENT:
            self.trend = TrendDirection.RISING_SIGNIFICANTLY
        elif change < -SIGNIFICANT_PERCENT:
            self.trend = TrendDirection.FALLING_SIGNIFICANTLY
        elif change > 0:
            self.trend = TrendDirection.RISING
        else:
            self.trend = TrendDirection.FALLING
        return self.trend

    def compute_baseline(
        self,
        older_than_days: int = 30,
        now: Optional[datetime] = None,
    ) -> Optional[float]:
        """Median of the values older than ``older_than_days``; ``None`` if there are none."""
        cutoff = (now or utcnow()) - timedelta(days=older_than_days)
        older = [v.value for v in self.values if v.date < cutoff]
        self.baseline = statistics.median(older) if older else None
        return self.baseline

    def get_values_by_period(self, start: datetime, end: datetime) -> list[LabValue]:
        return [v for v in self.values if start <= v.date <= end]

    @property
    def arrow(self) -> str:
        return TREND_ARROWS.get(self.trend, "→")

    def to_summary_string(self) -> str:
        latest = self.latest_value
        if latest is None:
            return f"{self.name}: No data"
        flag = f" ({latest.flag})" if latest.flag else ""
        return f"{self.name}: {format_value(latest.value)}{latest.unit}{flag} {self.arrow}"

    def to_detailed_string(self, max_entries: int = 10) -> str:
        if not self.values:
            return f"{self.name}: No data\n"

        lines = [f"{self.name} ({self.trend.value}):"]
        entries = self.values[:max_entries]
        for v in entries:
            flag = f" ({v.flag})" if v.flag else ""
            lines.append(f"  {format_short_date(v.date)}: {format_value(v.value)}{v.unit}{flag}")
        if self.baseline is not None:
            lines.append(f"  Baseline: {format_value(self.baseline)}{entries[0].unit}")
        return "\n".join(lines) + "\n"
