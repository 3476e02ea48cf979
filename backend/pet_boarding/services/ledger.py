"""
Capacity ledger: per-date booked/max slot counters.

CONCURRENCY STRATEGY: Single-statement conditional updates
==========================================================

Problem:
  Two bookings race for the last slot on the same date. Both read
  booked=4/max=5, both write booked=5+1. Result: overbooking.

Solution:
  Never read-modify-write in Python. Each mutation is one statement whose
  WHERE clause carries the guard:

    reserve:  UPDATE capacity_days SET booked_slots = booked_slots + 1
              WHERE date = :d AND booked_slots < max_slots
    release:  UPDATE capacity_days SET booked_slots = booked_slots - 1
              WHERE date = :d AND booked_slots > 0

  rowcount == 0 means the guard failed (exhausted / already at zero). The
  row lock taken by the UPDATE serializes racing transactions on one date,
  and the loser re-evaluates the guard after the winner commits.

  Rows are created lazily with INSERT .. ON CONFLICT DO NOTHING so that two
  requests touching a fresh date never collide on the unique key.

Every method runs inside the caller's transaction; the ledger never commits.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pet_boarding.core.logging import get_logger
from pet_boarding.core.metrics import record_ledger_operation
from pet_boarding.models.capacity import CapacityDay

logger = get_logger(__name__)


@dataclass(frozen=True)
class DayAvailability:
    date: date
    max_slots: int
    booked_slots: int

    @property
    def available(self) -> int:
        return self.max_slots - self.booked_slots


def _insert_ignoring_conflicts(dialect_name: str):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Unsupported database dialect: {dialect_name}")

    return insert(CapacityDay)


class CapacityLedger:
    def __init__(self, default_max_slots: int):
        self.default_max_slots = default_max_slots

    async def ensure_dates(self, session: AsyncSession, days: Iterable[date], default_max: int = None) -> None:
        """Create a row for each date that has none. Existing rows are untouched."""
        rows = [
            {
                "date": day,
                "max_slots": self.default_max_slots if default_max is None else default_max,
                "booked_slots": 0,
            }
            for day in sorted(set(days))
        ]
        if not rows:
            return

        stmt = _insert_ignoring_conflicts(session.bind.dialect.name).values(rows)
        await session.execute(stmt.on_conflict_do_nothing(index_elements=["date"]))

    async def ensure_date(self, session: AsyncSession, day: date, default_max: int = None) -> None:
        await self.ensure_dates(session, [day], default_max)

    async def get_availability(self, session: AsyncSession, day: date) -> DayAvailability:
        result = await self.get_many(session, [day])
        return result[0]

    async def get_many(self, session: AsyncSession, days: list[date]) -> list[DayAvailability]:
        """
        Read counters for the given dates, in the order given.
        Dates with no row yet report the default ceiling and nothing booked.
        """
        result = await session.execute(
            select(CapacityDay.date, CapacityDay.max_slots, CapacityDay.booked_slots).where(
                CapacityDay.date.in_(days)
            )
        )
        found = {row.date: row for row in result}
        availability = []
        for day in days:
            row = found.get(day)
            if row is None:
                availability.append(DayAvailability(day, self.default_max_slots, 0))
            else:
                availability.append(DayAvailability(day, row.max_slots, row.booked_slots))
        return availability

    async def reserve(self, session: AsyncSession, day: date) -> bool:
        """Take one slot on ``day``. Returns False when the date is exhausted."""
        await self.ensure_date(session, day)
        result = await session.execute(
            update(CapacityDay)
            .where(
                CapacityDay.date == day,
                CapacityDay.booked_slots < CapacityDay.max_slots,
            )
            .values(booked_slots=CapacityDay.booked_slots + 1)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            record_ledger_operation("reserve", "exhausted")
            logger.info("slot_reserve_exhausted", date=day.isoformat())
            return False

        record_ledger_operation("reserve", "ok")
        logger.debug("slot_reserved", date=day.isoformat())
        return True

    async def release(self, session: AsyncSession, day: date) -> bool:
        """
        Give back one slot on ``day``, floored at zero.
        Returns False when there was nothing to release (no-op).
        """
        result = await session.execute(
            update(CapacityDay)
            .where(
                CapacityDay.date == day,
                CapacityDay.booked_slots > 0,
            )
            .values(booked_slots=CapacityDay.booked_slots - 1)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            record_ledger_operation("release", "noop")
            logger.debug("slot_release_noop", date=day.isoformat())
            return False

        record_ledger_operation("release", "ok")
        logger.debug("slot_released", date=day.isoformat())
        return True

    async def set_max_slots(self, session: AsyncSession, day: date, max_slots: int) -> bool:
        """
        Adjust the ceiling for a date, creating the row if needed.
        Refuses (returns False) to drop the ceiling below what is already booked.
        """
        await self.ensure_date(session, day, max_slots)
        result = await session.execute(
            update(CapacityDay)
            .where(
                CapacityDay.date == day,
                CapacityDay.booked_slots <= max_slots,
            )
            .values(max_slots=max_slots)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
