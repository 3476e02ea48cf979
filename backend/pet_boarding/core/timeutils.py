"""
Clock and calendar helpers shared by the ledger, lifecycle and scheduler.

All datetimes handled by the services are timezone-aware UTC. Some backends
(SQLite) hand naive values back, so reads go through ``as_utc``.
"""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]

ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def stay_days(start: datetime, end: datetime) -> int:
    """Whole boarding days covered by a stay, partial days rounded up."""
    return math.ceil((end - start) / ONE_DAY)


def booking_dates(start: datetime, end: datetime) -> list[date]:
    """
    Calendar dates an order occupies.

    Walks ``stay_days`` days forward from the start date, inclusive of both
    ends, so 06-01 00:00 -> 06-03 00:00 covers 06-01, 06-02 and 06-03.
    """
    first = start.date()
    return [first + timedelta(days=i) for i in range(stay_days(start, end) + 1)]


def date_span(start: date, end: date) -> list[date]:
    """Inclusive list of calendar dates from start to end."""
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]
