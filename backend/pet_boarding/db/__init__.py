from pet_boarding.db.base import Base, TimestampMixin
from pet_boarding.db.session import Database

__all__ = ["Base", "TimestampMixin", "Database"]
