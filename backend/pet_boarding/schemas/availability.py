"""
Pydantic schemas for capacity lookups.
"""

from datetime import date

from pydantic import BaseModel, Field


class DayAvailabilityResponse(BaseModel):
    date: date
    max_slots: int
    booked_slots: int
    available: int


class AvailabilityResponse(BaseModel):
    start_date: date
    end_date: date
    min_available: int
    max_slots: int
    bookable: bool
    per_date: list[DayAvailabilityResponse]


class CapacityUpdate(BaseModel):
    max_slots: int = Field(..., ge=0, le=1000)
