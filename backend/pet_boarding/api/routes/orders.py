"""
Order endpoints. Thin wrappers over the lifecycle controller; all capacity
and status rules live in the service layer.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from pet_boarding.api.deps import get_controller
from pet_boarding.models.order import OrderStatus
from pet_boarding.schemas.order import (
    CreateOrderInput,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
)
from pet_boarding.services.lifecycle import OrderLifecycleController

router = APIRouter(tags=["Orders"])


@router.post("/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: CreateOrderInput,
    controller: OrderLifecycleController = Depends(get_controller),
):
    """
    Book a boarding stay.

    Every date in the range must have a free slot. The new order holds the
    start date's slot and waits for confirmation.
    """
    return await controller.create_order(order_data)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    controller: OrderLifecycleController = Depends(get_controller),
):
    return await controller.get_order(order_id)


@router.post("/orders/{order_id}/confirm", response_model=OrderResponse)
async def confirm_order(
    order_id: int,
    controller: OrderLifecycleController = Depends(get_controller),
):
    """Confirm a pending order, reserving a slot on every date of the stay."""
    return await controller.confirm_order(order_id)


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int,
    controller: OrderLifecycleController = Depends(get_controller),
):
    """Cancel an order that has not started yet and release its slots."""
    return await controller.cancel_order(order_id)


@router.post("/orders/{order_id}/complete", response_model=OrderResponse)
async def complete_order(
    order_id: int,
    controller: OrderLifecycleController = Depends(get_controller),
):
    return await controller.complete_order(order_id)


@router.get("/hosts/{host_user_id}/orders", response_model=OrderListResponse)
async def list_host_orders(
    host_user_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    controller: OrderLifecycleController = Depends(get_controller),
):
    """List a host's orders, newest first, optionally filtered by status."""
    result = await controller.list_orders(host_user_id, page, page_size, status)
    return OrderListResponse(
        items=[OrderResponse.model_validate(order) for order in result.items],
        page=result.page,
        page_size=result.page_size,
        total=result.total,
        total_pages=result.total_pages,
    )


@router.get("/hosts/{host_user_id}/orders/stats", response_model=OrderStatsResponse)
async def host_order_stats(
    host_user_id: int,
    controller: OrderLifecycleController = Depends(get_controller),
):
    counts = await controller.order_stats(host_user_id)
    return OrderStatsResponse(
        host_user_id=host_user_id,
        total=sum(counts.values()),
        by_status=counts,
    )
