"""
Service layer wiring. Everything is built from one Database handle; there
are no module-level singletons.
"""

from dataclasses import dataclass

from pet_boarding.core.config import Settings
from pet_boarding.core.timeutils import Clock, utcnow
from pet_boarding.db.session import Database
from pet_boarding.services.availability import AvailabilityService
from pet_boarding.services.ledger import CapacityLedger
from pet_boarding.services.lifecycle import OrderLifecycleController
from pet_boarding.services.order_store import OrderStore
from pet_boarding.services.scheduler import ReconciliationScheduler


@dataclass
class Services:
    db: Database
    ledger: CapacityLedger
    store: OrderStore
    availability: AvailabilityService
    controller: OrderLifecycleController
    scheduler: ReconciliationScheduler


def build_services(db: Database, settings: Settings, clock: Clock = utcnow) -> Services:
    ledger = CapacityLedger(settings.DEFAULT_MAX_SLOTS)
    store = OrderStore()
    availability = AvailabilityService(db, ledger, settings.MAX_QUERY_DAYS)
    controller = OrderLifecycleController(db, store, ledger, availability, settings, clock=clock)
    scheduler = ReconciliationScheduler(controller, store, db, settings, clock=clock)
    return Services(db, ledger, store, availability, controller, scheduler)


__all__ = ["Services", "build_services"]
