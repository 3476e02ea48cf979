"""
Tests for stay arithmetic and price quotes.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from pet_boarding.core.timeutils import as_utc, booking_dates, date_span, stay_days
from pet_boarding.services.pricing import daily_rate, quote_total


def _at(day: int, hour: int = 0) -> datetime:
    return datetime(2024, 6, day, hour, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "start, end, days",
    [
        (_at(1), _at(3), 2),
        (_at(1, 10), _at(3, 9), 2),
        (_at(1, 10), _at(3, 11), 3),
        (_at(1), _at(2, 1), 2),
    ],
)
def test_stay_days_rounds_up(start, end, days):
    assert stay_days(start, end) == days


def test_booking_dates_include_both_ends():
    assert booking_dates(_at(1), _at(3)) == [date(2024, 6, 1), date(2024, 6, 2), date(2024, 6, 3)]


def test_date_span_single_day():
    assert date_span(date(2024, 6, 1), date(2024, 6, 1)) == [date(2024, 6, 1)]


def test_as_utc_treats_naive_as_utc():
    assert as_utc(datetime(2024, 6, 1, 12)) == _at(1, 12)


def test_daily_rate_by_species(settings):
    assert daily_rate("cat", settings) == Decimal("120.00")
    assert daily_rate(" Dog ", settings) == Decimal("150.00")
    assert daily_rate("rabbit", settings) == Decimal("100.00")


def test_quote_total(settings):
    assert quote_total("dog", _at(1), _at(4), settings) == Decimal("450.00")
    assert quote_total("hamster", _at(1, 10), _at(3, 9), settings) == Decimal("200.00")
