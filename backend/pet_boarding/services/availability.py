"""
Availability queries over a date or date range.

A range is only bookable if every day in it has room, so the headline
number is the minimum remaining capacity across the range, not a sum.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from pet_boarding.core.exceptions import ValidationError
from pet_boarding.core.logging import get_logger
from pet_boarding.core.timeutils import date_span
from pet_boarding.db.session import Database
from pet_boarding.services.ledger import CapacityLedger, DayAvailability

logger = get_logger(__name__)


@dataclass(frozen=True)
class RangeAvailability:
    per_date: list[DayAvailability]

    @property
    def start_date(self) -> date:
        return self.per_date[0].date

    @property
    def end_date(self) -> date:
        return self.per_date[-1].date

    @property
    def binding_day(self) -> DayAvailability:
        """The day with the least room left; earliest on ties."""
        return min(self.per_date, key=lambda day: day.available)

    @property
    def min_available(self) -> int:
        return self.binding_day.available

    @property
    def max_slots(self) -> int:
        return self.binding_day.max_slots

    @property
    def bookable(self) -> bool:
        return self.min_available > 0

    def first_exhausted(self) -> Optional[DayAvailability]:
        for day in self.per_date:
            if day.available <= 0:
                return day
        return None


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


class AvailabilityService:
    def __init__(self, db: Database, ledger: CapacityLedger, max_query_days: int = 366):
        self.db = db
        self.ledger = ledger
        self.max_query_days = max_query_days

    async def for_dates(self, session: AsyncSession, days: list[date]) -> RangeAvailability:
        """Ensure counters exist for ``days`` and read them, inside the caller's transaction."""
        await self.ledger.ensure_dates(session, days)
        return RangeAvailability(await self.ledger.get_many(session, days))

    async def check_range(
        self,
        start: Union[date, datetime],
        end: Optional[Union[date, datetime]] = None,
    ) -> RangeAvailability:
        start_day = _as_date(start)
        end_day = _as_date(end) if end is not None else start_day

        if end_day < start_day:
            raise ValidationError("End date cannot be earlier than start date")

        days = date_span(start_day, end_day)
        if len(days) > self.max_query_days:
            raise ValidationError(f"Date range cannot exceed {self.max_query_days} days")

        async with self.db.transaction() as session:
            availability = await self.for_dates(session, days)

        logger.debug(
            "availability_checked",
            start_date=start_day.isoformat(),
            end_date=end_day.isoformat(),
            min_available=availability.min_available,
        )
        return availability
