"""
Order lifecycle controller: the state machine plus the capacity bookkeeping
that has to move in lockstep with it.

State machine
=============

  pending_confirmation --confirm--> pending_start
  pending_confirmation --cancel---> cancelled       (user, or 1h auto-cancel)
  pending_start        --cancel---> cancelled
  pending_start        --start----> in_progress     (start date reached)
  pending_start        --complete-> completed
  in_progress          --complete-> completed       (end date reached)

completed and cancelled are terminal.

Slot policy
===========

  create    reserves the START DATE only
  confirm   reserves EVERY date in the range
  cancel    releases every date in the range
  complete  releases every date in the range, plus the start-date hold
            taken at creation

Creation and confirm are asymmetric. A pending multi-day order
holds one slot; a confirmed one holds the whole range on top of it. Cancel
after confirm therefore leaves the creation hold on the start date in place.
Tests pin all of this.

Transactions
============

Every operation is one transaction. Inside it, the status compare-and-swap
runs BEFORE any ledger effect: the loser of a race on the same order sees
rowcount 0, raises InvalidTransition, and the whole unit rolls back with
the ledger untouched. When two confirms race for the last slot on a date,
the conditional reserve awards it to whichever transaction commits first.
"""

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pet_boarding.core.config import Settings
from pet_boarding.core.exceptions import (
    BoardingError,
    CapacityExhausted,
    Forbidden,
    InvalidTransition,
    NotFound,
    TransactionFailure,
    ValidationError,
)
from pet_boarding.core.logging import get_logger
from pet_boarding.core.metrics import record_transition, transition_latency
from pet_boarding.core.timeutils import Clock, as_utc, booking_dates, utcnow
from pet_boarding.db.session import Database
from pet_boarding.models.order import Order, OrderStatus
from pet_boarding.models.pet import Pet
from pet_boarding.models.user import User
from pet_boarding.schemas.order import CreateOrderInput
from pet_boarding.services.availability import AvailabilityService, RangeAvailability
from pet_boarding.services.ledger import CapacityLedger
from pet_boarding.services.order_store import OrderStore
from pet_boarding.services.pricing import quote_total

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100

TRANSITIONS: dict[str, dict[OrderStatus, OrderStatus]] = {
    "confirm": {
        OrderStatus.PENDING_CONFIRMATION: OrderStatus.PENDING_START,
    },
    "cancel": {
        OrderStatus.PENDING_CONFIRMATION: OrderStatus.CANCELLED,
        OrderStatus.PENDING_START: OrderStatus.CANCELLED,
    },
    "start": {
        OrderStatus.PENDING_START: OrderStatus.IN_PROGRESS,
    },
    "complete": {
        OrderStatus.PENDING_START: OrderStatus.COMPLETED,
        OrderStatus.IN_PROGRESS: OrderStatus.COMPLETED,
    },
}

LedgerEffect = Callable[[AsyncSession, Order], Awaitable[None]]


def next_status(current: OrderStatus, action: str) -> OrderStatus:
    """Target status for ``action`` from ``current``, or InvalidTransition."""
    target = TRANSITIONS[action].get(current)
    if target is None:
        raise InvalidTransition(current.value, action)
    return target


@dataclass(frozen=True)
class OrderPage:
    items: list[Order]
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0


class OrderLifecycleController:
    def __init__(
        self,
        db: Database,
        store: OrderStore,
        ledger: CapacityLedger,
        availability: AvailabilityService,
        settings: Settings,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.store = store
        self.ledger = ledger
        self.availability = availability
        self.settings = settings
        self.clock = clock

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def _validate_stay(self, start, end) -> None:
        today = self.clock().date()
        if start.date() < today:
            raise ValidationError("Start date cannot be in the past")
        if end <= start:
            raise ValidationError("End date must be after start date")
        if end - start <= timedelta(hours=self.settings.MIN_STAY_HOURS):
            raise ValidationError(
                f"A stay must be longer than {self.settings.MIN_STAY_HOURS} hours"
            )

    async def create_order(self, data: CreateOrderInput) -> Order:
        """
        Book a stay. Every date in the range must have room; only the start
        date's slot is reserved until the order is confirmed.
        """
        start = as_utc(data.start_date)
        end = as_utc(data.end_date)

        with transition_latency.labels(transition="create").time():
            try:
                self._validate_stay(start, end)
                days = booking_dates(start, end)

                async with self.db.transaction() as session:
                    pet = await self._load_pet(session, data)
                    if await session.get(User, data.host_user_id) is None:
                        raise NotFound(f"Host {data.host_user_id} not found")

                    availability = await self.availability.for_dates(session, days)
                    self._require_capacity(availability)

                    now = self.clock()
                    order = Order(
                        pet_id=pet.id,
                        host_user_id=data.host_user_id,
                        start_date=start,
                        end_date=end,
                        status=OrderStatus.PENDING_CONFIRMATION.value,
                        total_amount=quote_total(pet.species, start, end, self.settings),
                        special_requests=data.special_requests,
                        created_at=now,
                        updated_at=now,
                    )
                    await self.store.create(session, order)

                    # Lost the last start-date slot to a concurrent booking
                    if not await self.ledger.reserve(session, start.date()):
                        raise CapacityExhausted(start.date())
            except BoardingError as e:
                self._record_failure("create", e, requester_user_id=data.requester_user_id)
                raise

        record_transition("create", "applied")
        logger.info(
            "order_created",
            order_id=order.id,
            pet_id=order.pet_id,
            host_user_id=order.host_user_id,
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            days=len(days),
            total_amount=str(order.total_amount),
        )
        return order

    async def _load_pet(self, session: AsyncSession, data: CreateOrderInput) -> Pet:
        if await session.get(User, data.requester_user_id) is None:
            raise NotFound(f"User {data.requester_user_id} not found")

        pet = await session.get(Pet, data.pet_id)
        if pet is None:
            raise NotFound(f"Pet {data.pet_id} not found")
        if pet.owner_id != data.requester_user_id:
            raise Forbidden("You can only book stays for your own pets")
        return pet

    @staticmethod
    def _require_capacity(availability: RangeAvailability) -> None:
        exhausted = availability.first_exhausted()
        if exhausted is not None:
            raise CapacityExhausted(exhausted.date)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def confirm_order(self, order_id: int) -> Order:
        """Re-check capacity for the whole range, then reserve every date."""

        async def precheck(session: AsyncSession, order: Order) -> None:
            days = booking_dates(as_utc(order.start_date), as_utc(order.end_date))
            self._require_capacity(await self.availability.for_dates(session, days))

        async def reserve_range(session: AsyncSession, order: Order) -> None:
            for day in self._order_dates(order):
                if not await self.ledger.reserve(session, day):
                    raise CapacityExhausted(day)

        return await self._transition(order_id, "confirm", reserve_range, precheck=precheck)

    async def cancel_order(self, order_id: int) -> Order:
        return await self._transition(order_id, "cancel", self._release_range)

    async def auto_cancel_order(self, order_id: int) -> Order:
        """Timeout cancel: only applies while the order is still awaiting confirmation."""
        return await self._transition(
            order_id,
            "cancel",
            self._release_range,
            only_from=OrderStatus.PENDING_CONFIRMATION,
        )

    async def start_order(self, order_id: int) -> Order:
        return await self._transition(order_id, "start")

    async def complete_order(self, order_id: int) -> Order:
        async def release_all(session: AsyncSession, order: Order) -> None:
            await self._release_range(session, order)
            # Settle the start-date hold taken at creation
            await self.ledger.release(session, as_utc(order.start_date).date())

        return await self._transition(order_id, "complete", release_all)

    async def _release_range(self, session: AsyncSession, order: Order) -> None:
        for day in self._order_dates(order):
            await self.ledger.release(session, day)

    @staticmethod
    def _order_dates(order: Order) -> list[date]:
        return booking_dates(as_utc(order.start_date), as_utc(order.end_date))

    async def _transition(
        self,
        order_id: int,
        action: str,
        ledger_effect: Optional[LedgerEffect] = None,
        precheck: Optional[LedgerEffect] = None,
        only_from: Optional[OrderStatus] = None,
    ) -> Order:
        with transition_latency.labels(transition=action).time():
            try:
                async with self.db.transaction() as session:
                    order = await self.store.get(session, order_id)
                    current = order.order_status
                    if only_from is not None and current != only_from:
                        raise InvalidTransition(current.value, action)
                    target = next_status(current, action)

                    if precheck is not None:
                        await precheck(session, order)

                    if not await self.store.set_status(
                        session, order_id, current, target, now=self.clock()
                    ):
                        observed = await self.store.current_status(session, order_id)
                        raise InvalidTransition((observed or current).value, action)

                    if ledger_effect is not None:
                        await ledger_effect(session, order)

                    await session.refresh(order)
            except BoardingError as e:
                self._record_failure(action, e, order_id=order_id)
                raise

        record_transition(action, "applied")
        logger.info(
            "order_transitioned",
            order_id=order_id,
            action=action,
            from_status=current.value,
            to_status=target.value,
        )
        return order

    @staticmethod
    def _record_failure(action: str, error: BoardingError, **context) -> None:
        result = "error" if isinstance(error, TransactionFailure) else "rejected"
        record_transition(action, result)
        logger.info(
            "order_transition_rejected",
            action=action,
            error=error.kind,
            reason=error.message,
            **context,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_order(self, order_id: int) -> Order:
        async with self.db.transaction() as session:
            return await self.store.get(session, order_id)

    async def list_orders(
        self,
        host_user_id: int,
        page: int = 1,
        page_size: int = 10,
        status: Optional[OrderStatus] = None,
    ) -> OrderPage:
        if page < 1:
            raise ValidationError("Page must be at least 1")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationError(f"Page size must be between 1 and {MAX_PAGE_SIZE}")

        async with self.db.transaction() as session:
            items, total = await self.store.list_by_host(session, host_user_id, page, page_size, status)
        return OrderPage(items=items, page=page, page_size=page_size, total=total)

    async def order_stats(self, host_user_id: int) -> dict[OrderStatus, int]:
        async with self.db.transaction() as session:
            return await self.store.count_by_status(session, host_user_id)

    async def check_availability(self, start, end=None) -> RangeAvailability:
        return await self.availability.check_range(start, end)

    async def set_capacity(self, day: date, max_slots: int) -> RangeAvailability:
        """Set a date's ceiling. It may not drop below the slots already booked."""
        if max_slots < 0:
            raise ValidationError("Capacity cannot be negative")

        async with self.db.transaction() as session:
            if not await self.ledger.set_max_slots(session, day, max_slots):
                raise ValidationError(
                    f"Capacity for {day.isoformat()} cannot be lower than its booked slots"
                )
            availability = await self.availability.for_dates(session, [day])

        logger.info("capacity_updated", date=day.isoformat(), max_slots=max_slots)
        return availability
