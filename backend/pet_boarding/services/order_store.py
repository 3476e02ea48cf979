"""
Order record store.

set_status is the only status mutator. It is a compare-and-swap on the
current status so that two transitions racing on one order (user action vs
scheduler sweep, or two user clicks) cannot both apply: the loser matches
zero rows and gets False back.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pet_boarding.core.exceptions import NotFound
from pet_boarding.core.timeutils import utcnow
from pet_boarding.models.order import Order, OrderStatus


class OrderStore:
    async def create(self, session: AsyncSession, order: Order) -> int:
        session.add(order)
        await session.flush()
        return order.id

    async def get(self, session: AsyncSession, order_id: int) -> Order:
        result = await session.execute(select(Order).where(Order.id == order_id))
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    async def current_status(self, session: AsyncSession, order_id: int) -> Optional[OrderStatus]:
        result = await session.execute(select(Order.status).where(Order.id == order_id))
        status = result.scalar_one_or_none()
        return OrderStatus(status) if status is not None else None

    async def set_status(
        self,
        session: AsyncSession,
        order_id: int,
        expected: OrderStatus,
        new: OrderStatus,
        now: Optional[datetime] = None,
    ) -> bool:
        result = await session.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == expected.value)
            .values(status=new.value, updated_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_by_host(
        self,
        session: AsyncSession,
        host_user_id: int,
        page: int = 1,
        page_size: int = 10,
        status: Optional[OrderStatus] = None,
    ) -> tuple[list[Order], int]:
        """
        List a host's orders, newest first.
        Uses the ix_orders_host_created index.
        """
        query = select(Order).where(Order.host_user_id == host_user_id)
        if status is not None:
            query = query.where(Order.status == status.value)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await session.execute(count_query)).scalar()

        orders_query = (
            query
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await session.execute(orders_query)
        return list(result.scalars().all()), total

    async def count_by_status(self, session: AsyncSession, host_user_id: int) -> dict[OrderStatus, int]:
        result = await session.execute(
            select(Order.status, func.count())
            .where(Order.host_user_id == host_user_id)
            .group_by(Order.status)
        )
        counts = {status: 0 for status in OrderStatus}
        for status, count in result:
            counts[OrderStatus(status)] = count
        return counts

    # Sweep selectors. They only return ids; each order is then transitioned
    # in its own transaction through the lifecycle controller.

    async def select_stale_pending(self, session: AsyncSession, cutoff: datetime) -> list[int]:
        result = await session.execute(
            select(Order.id)
            .where(
                Order.status == OrderStatus.PENDING_CONFIRMATION.value,
                Order.created_at <= cutoff,
            )
            .order_by(Order.id)
        )
        return list(result.scalars().all())

    async def select_due_to_start(self, session: AsyncSession, now: datetime) -> list[int]:
        result = await session.execute(
            select(Order.id)
            .where(
                Order.status == OrderStatus.PENDING_START.value,
                Order.start_date <= now,
            )
            .order_by(Order.id)
        )
        return list(result.scalars().all())

    async def select_due_to_complete(self, session: AsyncSession, now: datetime) -> list[int]:
        result = await session.execute(
            select(Order.id)
            .where(
                Order.status.in_([OrderStatus.PENDING_START.value, OrderStatus.IN_PROGRESS.value]),
                Order.end_date < now,
            )
            .order_by(Order.id)
        )
        return list(result.scalars().all())
