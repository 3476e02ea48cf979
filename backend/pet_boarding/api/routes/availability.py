"""
Capacity lookup and ceiling management endpoints.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from pet_boarding.api.deps import get_controller
from pet_boarding.schemas.availability import (
    AvailabilityResponse,
    CapacityUpdate,
    DayAvailabilityResponse,
)
from pet_boarding.services.availability import RangeAvailability
from pet_boarding.services.lifecycle import OrderLifecycleController

router = APIRouter(prefix="/availability", tags=["Availability"])


def _to_response(availability: RangeAvailability) -> AvailabilityResponse:
    return AvailabilityResponse(
        start_date=availability.start_date,
        end_date=availability.end_date,
        min_available=availability.min_available,
        max_slots=availability.max_slots,
        bookable=availability.bookable,
        per_date=[
            DayAvailabilityResponse(
                date=day.date,
                max_slots=day.max_slots,
                booked_slots=day.booked_slots,
                available=day.available,
            )
            for day in availability.per_date
        ],
    )


@router.get("", response_model=AvailabilityResponse)
async def check_availability(
    start_date: date = Query(...),
    end_date: Optional[date] = Query(None),
    controller: OrderLifecycleController = Depends(get_controller),
):
    """
    Remaining slots per date over an inclusive range.
    The headline min_available is the tightest day; 0 means not bookable.
    Never cached (stale counts would let bookings through).
    """
    availability = await controller.check_availability(start_date, end_date)
    return _to_response(availability)


@router.put("/{day}", response_model=AvailabilityResponse)
async def set_capacity(
    day: date,
    update: CapacityUpdate,
    controller: OrderLifecycleController = Depends(get_controller),
):
    """Set the boarding ceiling for one date."""
    availability = await controller.set_capacity(day, update.max_slots)
    return _to_response(availability)
