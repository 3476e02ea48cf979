"""
Tests for the order state machine and its slot bookkeeping.
"""

import asyncio
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from pet_boarding.core.exceptions import (
    CapacityExhausted,
    Forbidden,
    InvalidTransition,
    NotFound,
    TransactionFailure,
    ValidationError,
)
from pet_boarding.core.timeutils import as_utc
from pet_boarding.db.session import Database
from pet_boarding.models.order import Order, OrderStatus
from pet_boarding.services import build_services

STAY = ("2024-06-01", "2024-06-03")
STAY_DAYS = ("2024-06-01", "2024-06-02", "2024-06-03")


# ---------------------------------------------------------------------------
# Booking
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_reserves_start_date_only(controller, make_order, booked):
    """A pending multi-day order holds a slot on its first day and nowhere else."""
    order = await controller.create_order(make_order(*STAY, special_requests="No chicken"))

    assert order.status == OrderStatus.PENDING_CONFIRMATION.value
    assert order.special_requests == "No chicken"
    assert await booked(*STAY_DAYS) == [1, 0, 0]


@pytest.mark.asyncio
async def test_create_prices_by_species(controller, make_order, people):
    dog_order = await controller.create_order(make_order(*STAY))
    cat_order = await controller.create_order(make_order(*STAY, pet=people.cat))

    assert dog_order.total_amount == Decimal("300.00")  # 2 days x 150
    assert cat_order.total_amount == Decimal("240.00")  # 2 days x 120


@pytest.mark.asyncio
async def test_partial_day_rounds_up(controller, make_order, booked):
    order = await controller.create_order(
        make_order("2024-06-01T10:00:00Z", "2024-06-03T09:00:00Z")
    )

    assert order.total_amount == Decimal("300.00")
    await controller.confirm_order(order.id)
    assert await booked(*STAY_DAYS, "2024-06-04") == [2, 1, 1, 0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "start, end",
    [
        ("2024-04-30", "2024-05-03"),  # starts before today
        ("2024-06-03", "2024-06-01"),  # ends before it starts
        ("2024-06-01", "2024-06-01"),  # zero length
        ("2024-06-01", "2024-06-02"),  # exactly 24h is not enough
    ],
)
async def test_create_rejects_bad_dates(controller, make_order, booked, start, end):
    with pytest.raises(ValidationError):
        await controller.create_order(make_order(start, end))

    assert await booked("2024-06-01") == [0]


@pytest.mark.asyncio
async def test_create_allows_today(controller, make_order, booked):
    order = await controller.create_order(make_order("2024-05-01T18:00:00Z", "2024-05-03T10:00:00Z"))

    assert order.status == OrderStatus.PENDING_CONFIRMATION.value
    assert await booked("2024-05-01") == [1]


@pytest.mark.asyncio
async def test_create_for_someone_elses_pet_forbidden(controller, make_order, people, booked):
    with pytest.raises(Forbidden):
        await controller.create_order(make_order(*STAY, pet=people.rabbit))

    assert await booked("2024-06-01") == [0]


@pytest.mark.asyncio
async def test_create_with_unknown_references(controller, make_order, people):
    with pytest.raises(NotFound):
        await controller.create_order(make_order(*STAY, host=SimpleNamespace(id=9999)))

    with pytest.raises(NotFound):
        await controller.create_order(make_order(*STAY, pet=SimpleNamespace(id=9999)))

    with pytest.raises(NotFound):
        await controller.create_order(make_order(*STAY, requester=SimpleNamespace(id=9999)))


@pytest.mark.asyncio
async def test_sixth_booking_on_full_date_rejected(controller, make_order, people, booked):
    """Ceiling 5, five pending orders starting 06-01: the next range through 06-01 names it."""
    for _ in range(5):
        await controller.create_order(make_order(*STAY))
    assert await booked("2024-06-01") == [5]

    with pytest.raises(CapacityExhausted) as excinfo:
        await controller.create_order(make_order("2024-05-30", "2024-06-02"))

    assert excinfo.value.date == date(2024, 6, 1)
    assert excinfo.value.to_dict()["date"] == "2024-06-01"
    assert await booked("2024-05-30", "2024-05-31", "2024-06-01") == [0, 0, 5]

    page = await controller.list_orders(people.host.id)
    assert page.total == 5


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_confirm_reserves_whole_range(controller, make_order, booked):
    order = await controller.create_order(make_order(*STAY))

    confirmed = await controller.confirm_order(order.id)

    assert confirmed.status == OrderStatus.PENDING_START.value
    # Start date holds the creation slot plus the confirm slot
    assert await booked(*STAY_DAYS) == [2, 1, 1]


@pytest.mark.asyncio
async def test_confirm_rechecks_capacity(controller, make_order, booked):
    order = await controller.create_order(make_order(*STAY))
    await controller.set_capacity(date(2024, 6, 3), 0)

    with pytest.raises(CapacityExhausted) as excinfo:
        await controller.confirm_order(order.id)

    assert excinfo.value.date == date(2024, 6, 3)
    assert (await controller.get_order(order.id)).status == OrderStatus.PENDING_CONFIRMATION.value
    assert await booked(*STAY_DAYS) == [1, 0, 0]


@pytest.mark.asyncio
async def test_confirm_rolls_back_when_start_date_fills(controller, make_order, booked):
    """The start date already carries the creation hold, so a full start date blocks confirm."""
    order = await controller.create_order(make_order(*STAY))
    await controller.set_capacity(date(2024, 6, 1), 1)

    with pytest.raises(CapacityExhausted):
        await controller.confirm_order(order.id)

    assert (await controller.get_order(order.id)).status == OrderStatus.PENDING_CONFIRMATION.value
    assert await booked(*STAY_DAYS) == [1, 0, 0]


@pytest.mark.asyncio
async def test_cancel_pending_releases_range(controller, make_order, booked):
    order = await controller.create_order(make_order(*STAY))

    cancelled = await controller.cancel_order(order.id)

    assert cancelled.status == OrderStatus.CANCELLED.value
    # Only the start date was held; the other days stay floored at zero
    assert await booked(*STAY_DAYS) == [0, 0, 0]


@pytest.mark.asyncio
async def test_cancel_after_confirm_keeps_creation_hold(controller, make_order, booked):
    """Cancel undoes exactly what confirm reserved, restoring pre-confirm availability."""
    order = await controller.create_order(make_order(*STAY))
    pre_confirm = await booked(*STAY_DAYS)

    await controller.confirm_order(order.id)
    await controller.cancel_order(order.id)

    assert await booked(*STAY_DAYS) == pre_confirm == [1, 0, 0]


@pytest.mark.asyncio
async def test_round_trip_restores_availability(controller, make_order, booked):
    order = await controller.create_order(make_order(*STAY))
    await controller.confirm_order(order.id)

    completed = await controller.complete_order(order.id)

    assert completed.status == OrderStatus.COMPLETED.value
    assert await booked(*STAY_DAYS) == [0, 0, 0]


@pytest.mark.asyncio
async def test_round_trip_through_in_progress(controller, make_order, booked):
    order = await controller.create_order(make_order(*STAY))
    await controller.confirm_order(order.id)

    started = await controller.start_order(order.id)
    assert started.status == OrderStatus.IN_PROGRESS.value
    assert await booked(*STAY_DAYS) == [2, 1, 1]

    await controller.complete_order(order.id)
    assert await booked(*STAY_DAYS) == [0, 0, 0]


@pytest.mark.asyncio
async def test_completion_leaves_other_orders_alone(controller, make_order, booked):
    first = await controller.create_order(make_order(*STAY))
    second = await controller.create_order(make_order(*STAY))
    await controller.confirm_order(first.id)
    await controller.confirm_order(second.id)
    assert await booked(*STAY_DAYS) == [4, 2, 2]

    await controller.complete_order(first.id)

    assert await booked(*STAY_DAYS) == [2, 1, 1]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "setup, action, current",
    [
        ([], "complete_order", "pending_confirmation"),
        ([], "start_order", "pending_confirmation"),
        (["confirm_order"], "confirm_order", "pending_start"),
        (["confirm_order", "start_order"], "cancel_order", "in_progress"),
        (["confirm_order", "complete_order"], "cancel_order", "completed"),
        (["cancel_order"], "cancel_order", "cancelled"),
        (["cancel_order"], "confirm_order", "cancelled"),
    ],
)
async def test_illegal_transitions_rejected(controller, make_order, booked, setup, action, current):
    order = await controller.create_order(make_order(*STAY))
    for step in setup:
        await getattr(controller, step)(order.id)
    before = await booked(*STAY_DAYS)

    with pytest.raises(InvalidTransition) as excinfo:
        await getattr(controller, action)(order.id)

    assert excinfo.value.current == current
    assert (await controller.get_order(order.id)).status == current
    assert await booked(*STAY_DAYS) == before


@pytest.mark.asyncio
async def test_auto_cancel_only_applies_to_unconfirmed(controller, make_order, booked):
    order = await controller.create_order(make_order(*STAY))
    await controller.confirm_order(order.id)

    with pytest.raises(InvalidTransition):
        await controller.auto_cancel_order(order.id)

    assert (await controller.get_order(order.id)).status == OrderStatus.PENDING_START.value
    assert await booked(*STAY_DAYS) == [2, 1, 1]


@pytest.mark.asyncio
async def test_race_loser_does_not_touch_ledger(controller, make_order, booked, monkeypatch):
    """
    A transition that read the order before a concurrent one committed passes
    the state-machine check but loses the status compare-and-swap.
    """
    order = await controller.create_order(make_order(*STAY))
    await controller.confirm_order(order.id)
    snapshot = Order(
        id=order.id,
        pet_id=order.pet_id,
        host_user_id=order.host_user_id,
        start_date=order.start_date,
        end_date=order.end_date,
        status=OrderStatus.PENDING_START.value,
    )
    await controller.cancel_order(order.id)
    assert await booked(*STAY_DAYS) == [1, 0, 0]

    async def stale_get(session, order_id):
        return snapshot

    monkeypatch.setattr(controller.store, "get", stale_get)

    with pytest.raises(InvalidTransition) as excinfo:
        await controller.cancel_order(order.id)

    assert excinfo.value.current == "cancelled"
    assert await booked(*STAY_DAYS) == [1, 0, 0]


@pytest.mark.asyncio
async def test_concurrent_creates_for_last_slot(controller, make_order, booked):
    await controller.set_capacity(date(2024, 6, 1), 1)

    results = await asyncio.gather(
        *(controller.create_order(make_order(*STAY)) for _ in range(4)),
        return_exceptions=True,
    )

    assert sum(isinstance(r, Order) for r in results) == 1
    assert sum(isinstance(r, CapacityExhausted) for r in results) == 3
    assert await booked("2024-06-01") == [1]


@pytest.mark.asyncio
async def test_concurrent_confirms_for_last_slot(controller, make_order, booked):
    """Two confirms need the one slot left on 06-02; the first to commit gets it."""
    first = await controller.create_order(make_order(*STAY))
    second = await controller.create_order(make_order(*STAY))
    await controller.set_capacity(date(2024, 6, 2), 1)

    results = await asyncio.gather(
        controller.confirm_order(first.id),
        controller.confirm_order(second.id),
        return_exceptions=True,
    )

    assert sum(isinstance(r, Order) for r in results) == 1
    assert sum(isinstance(r, CapacityExhausted) for r in results) == 1
    statuses = sorted([
        (await controller.get_order(first.id)).status,
        (await controller.get_order(second.id)).status,
    ])
    assert statuses == [OrderStatus.PENDING_CONFIRMATION.value, OrderStatus.PENDING_START.value]
    assert await booked(*STAY_DAYS) == [3, 1, 1]


@pytest.mark.asyncio
async def test_store_error_rolls_back_status_and_ledger(controller, make_order, booked, monkeypatch):
    """A failure after the first release undoes the release and the status change."""
    order = await controller.create_order(make_order(*STAY))
    await controller.confirm_order(order.id)
    release = controller.ledger.release
    calls = []

    async def failing_release(session, day):
        calls.append(day)
        if len(calls) == 2:
            raise OperationalError("UPDATE capacity_days", {}, Exception("disk I/O error"))
        return await release(session, day)

    monkeypatch.setattr(controller.ledger, "release", failing_release)

    with pytest.raises(TransactionFailure):
        await controller.cancel_order(order.id)

    assert len(calls) == 2
    assert (await controller.get_order(order.id)).status == OrderStatus.PENDING_START.value
    assert await booked(*STAY_DAYS) == [2, 1, 1]


@pytest.mark.asyncio
async def test_transition_stamps_updated_at_from_clock(controller, make_order, clock):
    order = await controller.create_order(make_order(*STAY))
    confirmed_at = clock.advance(minutes=5)

    confirmed = await controller.confirm_order(order.id)

    assert as_utc(confirmed.created_at) == as_utc(order.created_at)
    assert as_utc(confirmed.updated_at) == confirmed_at


@pytest.mark.asyncio
async def test_unknown_order(controller):
    with pytest.raises(NotFound):
        await controller.get_order(424242)
    with pytest.raises(NotFound):
        await controller.confirm_order(424242)


@pytest.mark.asyncio
async def test_operations_time_out_before_database_is_ready(settings):
    """An unconnected store fails the request instead of hanging it."""
    db = Database("sqlite+aiosqlite://", ready_timeout=0.01)
    controller = build_services(db, settings).controller

    with pytest.raises(TransactionFailure):
        await controller.get_order(1)


@pytest.mark.asyncio
async def test_operations_wait_for_database_readiness(settings, tmp_path):
    """A call made during startup blocks until connect() finishes, then runs."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'late_start.db'}", ready_timeout=5)
    controller = build_services(db, settings).controller

    pending = asyncio.create_task(controller.check_availability(date(2024, 6, 1)))
    await asyncio.sleep(0.05)
    assert not pending.done()

    await db.connect(create_tables=True)
    try:
        availability = await asyncio.wait_for(pending, timeout=5)
    finally:
        await db.dispose()

    assert availability.min_available == settings.DEFAULT_MAX_SLOTS
    assert availability.bookable


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_orders_paginates_newest_first(controller, make_order, people, clock):
    ids = []
    for _ in range(5):
        ids.append((await controller.create_order(make_order(*STAY))).id)
        clock.advance(minutes=1)
    await controller.confirm_order(ids[0])

    first_page = await controller.list_orders(people.host.id, page=1, page_size=2)
    last_page = await controller.list_orders(people.host.id, page=3, page_size=2)
    pending_start = await controller.list_orders(
        people.host.id, status=OrderStatus.PENDING_START
    )

    assert [o.id for o in first_page.items] == [ids[4], ids[3]]
    assert (first_page.total, first_page.total_pages) == (5, 3)
    assert [o.id for o in last_page.items] == [ids[0]]
    assert [o.id for o in pending_start.items] == [ids[0]]
    assert pending_start.total_pages == 1


@pytest.mark.asyncio
async def test_list_orders_for_other_host_is_empty(controller, make_order, people):
    await controller.create_order(make_order(*STAY))

    page = await controller.list_orders(people.stranger.id)

    assert page.items == []
    assert (page.total, page.total_pages) == (0, 0)


@pytest.mark.asyncio
async def test_list_orders_validates_paging(controller, people):
    with pytest.raises(ValidationError):
        await controller.list_orders(people.host.id, page=0)
    with pytest.raises(ValidationError):
        await controller.list_orders(people.host.id, page_size=500)


@pytest.mark.asyncio
async def test_order_stats(controller, make_order, people):
    first = await controller.create_order(make_order(*STAY))
    second = await controller.create_order(make_order(*STAY))
    await controller.create_order(make_order(*STAY))
    await controller.confirm_order(first.id)
    await controller.cancel_order(second.id)

    stats = await controller.order_stats(people.host.id)

    assert stats[OrderStatus.PENDING_CONFIRMATION] == 1
    assert stats[OrderStatus.PENDING_START] == 1
    assert stats[OrderStatus.CANCELLED] == 1
    assert stats[OrderStatus.COMPLETED] == 0
