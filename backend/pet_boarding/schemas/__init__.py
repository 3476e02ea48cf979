from pet_boarding.schemas.order import (
    CreateOrderInput, OrderResponse, OrderListResponse, OrderStatsResponse,
)
from pet_boarding.schemas.availability import (
    AvailabilityResponse, DayAvailabilityResponse, CapacityUpdate,
)

__all__ = [
    "CreateOrderInput", "OrderResponse", "OrderListResponse", "OrderStatsResponse",
    "AvailabilityResponse", "DayAvailabilityResponse", "CapacityUpdate",
]
