"""
Reconciliation scheduler: time-driven order transitions.

Three sweeps run as independent asyncio tasks, each on its own interval:

  stale_pending  pending_confirmation at least PENDING_TIMEOUT_MINUTES old -> cancel
  start          pending_start whose start_date has passed              -> start
  complete       pending_start / in_progress whose end_date has passed  -> complete

Each sweep selects ids in one short read transaction, then drives every
order through the lifecycle controller in its own transaction. A failure on
one order is logged and the sweep moves on. Orders that a user moved in the
meantime lose the status compare-and-swap and are counted as skipped.

A sweep that is still running when its next tick fires is skipped rather
than stacked.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

import structlog

from pet_boarding.core.config import Settings
from pet_boarding.core.exceptions import InvalidTransition
from pet_boarding.core.logging import get_logger
from pet_boarding.core.metrics import record_sweep_order, sweep_latency, sweep_runs
from pet_boarding.core.timeutils import Clock, utcnow
from pet_boarding.db.session import Database
from pet_boarding.services.lifecycle import OrderLifecycleController
from pet_boarding.services.order_store import OrderStore

logger = get_logger(__name__)

STALE_PENDING = "stale_pending"
START = "start"
COMPLETE = "complete"


@dataclass
class SweepResult:
    sweep: str
    selected: int = 0
    applied: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "sweep": self.sweep,
            "selected": self.selected,
            "applied": len(self.applied),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
        }


class ReconciliationScheduler:
    def __init__(
        self,
        controller: OrderLifecycleController,
        store: OrderStore,
        db: Database,
        settings: Settings,
        clock: Clock = utcnow,
    ):
        self.controller = controller
        self.store = store
        self.db = db
        self.settings = settings
        self.clock = clock

        self._intervals = {
            STALE_PENDING: settings.STALE_SWEEP_INTERVAL_SECONDS,
            START: settings.START_SWEEP_INTERVAL_SECONDS,
            COMPLETE: settings.COMPLETE_SWEEP_INTERVAL_SECONDS,
        }
        self._sweeps: dict[str, Callable[[], Awaitable[SweepResult]]] = {
            STALE_PENDING: self.run_stale_pending_sweep,
            START: self.run_start_sweep,
            COMPLETE: self.run_complete_sweep,
        }
        self._locks = {name: asyncio.Lock() for name in self._sweeps}
        self._tasks: list[asyncio.Task] = []
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._run_periodically(name), name=f"sweep:{name}")
            for name in self._sweeps
        ]
        logger.info("scheduler_started", intervals=self._intervals)

    async def stop(self) -> None:
        self._stopping.set()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("scheduler_stopped")

    async def _run_periodically(self, name: str) -> None:
        interval = self._intervals[name]
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass
            await self.run_sweep(name)

    async def run_sweep(self, name: str) -> Optional[SweepResult]:
        """Run one sweep by name unless the previous run is still going."""
        lock = self._locks[name]
        if lock.locked():
            sweep_runs.labels(sweep=name, outcome="skipped_overlap").inc()
            logger.warning("sweep_overlap_skipped", sweep=name)
            return None

        async with lock:
            started = time.perf_counter()
            with structlog.contextvars.bound_contextvars(sweep=name):
                try:
                    result = await self._sweeps[name]()
                except Exception as e:
                    # Selection itself failed (store down); the next tick retries
                    sweep_runs.labels(sweep=name, outcome="failed").inc()
                    logger.error("sweep_failed", error=str(e), error_type=type(e).__name__)
                    return None
                finally:
                    sweep_latency.labels(sweep=name).observe(time.perf_counter() - started)

                sweep_runs.labels(sweep=name, outcome="completed").inc()
                if result.selected:
                    logger.info("sweep_completed", **result.as_dict())
                else:
                    logger.debug("sweep_completed", **result.as_dict())
                return result

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def run_stale_pending_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or self.clock()
        cutoff = now - timedelta(minutes=self.settings.PENDING_TIMEOUT_MINUTES)
        async with self.db.transaction() as session:
            order_ids = await self.store.select_stale_pending(session, cutoff)
        return await self._drive(STALE_PENDING, order_ids, self.controller.auto_cancel_order)

    async def run_start_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or self.clock()
        async with self.db.transaction() as session:
            order_ids = await self.store.select_due_to_start(session, now)
        return await self._drive(START, order_ids, self.controller.start_order)

    async def run_complete_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or self.clock()
        async with self.db.transaction() as session:
            order_ids = await self.store.select_due_to_complete(session, now)
        return await self._drive(COMPLETE, order_ids, self.controller.complete_order)

    async def _drive(
        self,
        sweep: str,
        order_ids: list[int],
        action: Callable[[int], Awaitable[object]],
    ) -> SweepResult:
        result = SweepResult(sweep=sweep, selected=len(order_ids))
        for order_id in order_ids:
            try:
                await action(order_id)
            except InvalidTransition as e:
                # A user (or another sweep) got there first
                result.skipped.append(order_id)
                record_sweep_order(sweep, "skipped")
                logger.info("sweep_order_skipped", order_id=order_id, current_status=e.current)
            except Exception as e:
                result.failed.append(order_id)
                record_sweep_order(sweep, "failed")
                logger.error(
                    "sweep_order_failed",
                    order_id=order_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                result.applied.append(order_id)
                record_sweep_order(sweep, "applied")
        return result
