"""
Boarding price quote: a per-day rate by species times the number of
boarding days (partial days rounded up).
"""

from datetime import datetime
from decimal import Decimal

from pet_boarding.core.config import Settings
from pet_boarding.core.timeutils import stay_days


def daily_rate(species: str, settings: Settings) -> Decimal:
    rates = {
        "cat": settings.DAILY_RATE_CAT,
        "dog": settings.DAILY_RATE_DOG,
    }
    return rates.get(species.strip().lower(), settings.DAILY_RATE_DEFAULT)


def quote_total(species: str, start: datetime, end: datetime, settings: Settings) -> Decimal:
    return (daily_rate(species, settings) * stay_days(start, end)).quantize(Decimal("0.01"))
