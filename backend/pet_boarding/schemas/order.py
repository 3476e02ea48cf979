"""
Pydantic schemas for order-related request/response validation.
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from pet_boarding.models.order import OrderStatus


class CreateOrderInput(BaseModel):
    requester_user_id: int = Field(..., gt=0)
    pet_id: int = Field(..., gt=0)
    host_user_id: int = Field(..., gt=0)
    start_date: datetime
    end_date: datetime
    special_requests: Optional[str] = Field(None, max_length=1000)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _accept_plain_dates(cls, value):
        # "2024-06-01" means midnight of that day
        if isinstance(value, str) and len(value) == 10:
            value = date.fromisoformat(value)
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime.combine(value, time.min)
        return value


class OrderResponse(BaseModel):
    id: int
    pet_id: int
    host_user_id: int
    start_date: datetime
    end_date: datetime
    status: OrderStatus
    total_amount: Decimal
    special_requests: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    page: int
    page_size: int
    total: int
    total_pages: int


class OrderStatsResponse(BaseModel):
    host_user_id: int
    total: int
    by_status: dict[OrderStatus, int]
