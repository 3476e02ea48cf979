"""
Per-date capacity counter.

Key design decisions:
- One row per calendar date (unique), created lazily on first touch
- booked_slots is only ever changed by single-statement conditional
  increments/decrements, never read-modify-write in Python
- The storage layer only enforces booked_slots >= 0; the upper bound is
  enforced by the reserve statement's WHERE clause
"""

from sqlalchemy import CheckConstraint, Column, Date, Integer

from pet_boarding.db.base import Base, TimestampMixin


class CapacityDay(Base, TimestampMixin):
    __tablename__ = "capacity_days"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, unique=True, nullable=False, index=True)
    max_slots = Column(Integer, nullable=False)
    booked_slots = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("booked_slots >= 0", name="check_booked_slots_non_negative"),
        CheckConstraint("max_slots >= 0", name="check_max_slots_non_negative"),
    )

    @property
    def available(self) -> int:
        return self.max_slots - self.booked_slots

    def __repr__(self) -> str:
        return f"<CapacityDay(date={self.date}, booked={self.booked_slots}/{self.max_slots})>"
