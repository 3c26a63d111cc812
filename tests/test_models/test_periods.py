"""Tests for the time period catalog."""

from datetime import datetime, timedelta, timezone

import pytest

from clinical_memory.models.periods import (
    DEFAULT_TIME_PERIODS,
    HISTORICAL_LABEL,
    PeriodRange,
    TimePeriod,
    TimePeriodCatalog,
)
from clinical_memory.utils.dates import MIN_DATETIME


@pytest.fixture
def catalog(clock):
    return TimePeriodCatalog(clock=clock)


class TestPeriodBounds:
    """Tests for get_period_bounds."""

    def test_rolling_days(self, catalog, now):
        period = catalog.get_period("Past 7 Days")
        bounds = catalog.get_period_bounds(period)

        assert bounds.start_date == now - timedelta(days=7)
        assert bounds.end_date == now

    def test_rolling_hours(self, catalog, now):
        bounds = catalog.get_period_bounds(catalog.get_period("Past 24 Hours"))
        assert bounds.start_date == now - timedelta(hours=24)

    def test_current_encounter_defaults_to_midnight(self, catalog, now):
        bounds = catalog.get_period_bounds(catalog.get_period("Current Encounter"))
        assert bounds.start_date == now.replace(hour=0, minute=0)

    def test_current_encounter_anchors_to_encounter_start(self, catalog, now):
        start = now - timedelta(days=3)
        bounds = catalog.get_period_bounds(catalog.get_period("Current Encounter"), start)
        assert bounds.start_date == start

    def test_historical_is_unbounded(self, catalog):
        bounds = catalog.get_period_bounds(catalog.get_period(HISTORICAL_LABEL))
        assert bounds.start_date == MIN_DATETIME

    def test_bounds_follow_the_clock(self):
        current = [datetime(2025, 1, 1, tzinfo=timezone.utc)]
        catalog = TimePeriodCatalog(clock=lambda: current[0])
        period = catalog.get_period("Past 30 Days")

        first = catalog.get_period_bounds(period)
        current[0] += timedelta(days=1)
        second = catalog.get_period_bounds(period)

        assert second.start_date - first.start_date == timedelta(days=1)


class TestGetTimePeriodForDate:
    """Tests for date -> period label resolution."""

    @pytest.mark.parametrize(
        "delta,expected",
        [
            (timedelta(hours=1), "Current Encounter"),
            (timedelta(hours=20), "Past 24 Hours"),
            (timedelta(days=3), "Past 7 Days"),
            (timedelta(days=20), "Past 30 Days"),
            (timedelta(days=60), "Past 90 Days"),
            (timedelta(days=200), "Past Year"),
            (timedelta(days=800), HISTORICAL_LABEL),
        ],
    )
    def test_first_matching_period_wins(self, catalog, now, delta, expected):
        assert catalog.get_time_period_for_date(now - delta) == expected

    @pytest.mark.parametrize(
        "value",
        ["1970-01-01", "2999-12-31T00:00:00Z", "not a date", None, 0],
    )
    def test_unmatched_dates_fall_back_to_historical(self, catalog, value):
        assert catalog.get_time_period_for_date(value) == HISTORICAL_LABEL

    def test_accepts_iso_strings(self, catalog, now):
        value = (now - timedelta(days=2)).isoformat()
        assert catalog.get_time_period_for_date(value) == "Past 7 Days"

    def test_encounter_start_widens_current_period(self, catalog, now):
        start = now - timedelta(days=3)
        value = now - timedelta(days=2)

        assert catalog.get_time_period_for_date(value) == "Past 7 Days"
        assert catalog.get_time_period_for_date(value, start) == "Current Encounter"


class TestCatalog:
    """Tests for catalog construction."""

    def test_default_labels_in_priority_order(self, catalog):
        assert catalog.labels == [
            "Current Encounter",
            "Past 24 Hours",
            "Past 7 Days",
            "Past 30 Days",
            "Past 90 Days",
            "Past Year",
            "Historical",
        ]

    def test_injected_periods_sorted_by_priority(self, clock, now):
        periods = [
            TimePeriod(label="Older", range=PeriodRange.unbounded(), priority=9),
            TimePeriod(label="Recent", range=PeriodRange.days(2), priority=1),
        ]
        catalog = TimePeriodCatalog(periods, clock=clock)

        assert catalog.labels == ["Recent", "Older"]
        assert catalog.get_time_period_for_date(now - timedelta(days=1)) == "Recent"
        assert catalog.get_time_period_for_date(now - timedelta(days=5)) == "Older"

    def test_is_in_period(self, catalog, now):
        period = catalog.get_period("Past 7 Days")
        assert catalog.is_in_period(now - timedelta(days=6), period)
        assert not catalog.is_in_period(now - timedelta(days=8), period)
        assert not catalog.is_in_period("garbage", period)

    def test_unknown_label(self, catalog):
        assert catalog.get_period("Next Week") is None

    def test_default_periods_are_immutable(self):
        with pytest.raises(Exception):
            DEFAULT_TIME_PERIODS[0].label = "Changed"
