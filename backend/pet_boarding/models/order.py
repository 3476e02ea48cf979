"""
Order model representing one boarding reservation.

Key design decisions:
- Status is a plain string column guarded by a CHECK constraint; transitions
  happen only through a conditional UPDATE on the current status
- Orders are never deleted, cancellation is a status
- Composite indexes back the reconciliation sweeps (status + timestamp)
"""

import enum

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from pet_boarding.db.base import Base, TimestampMixin


class OrderStatus(str, enum.Enum):
    PENDING_CONFIRMATION = "pending_confirmation"
    PENDING_START = "pending_start"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in OrderStatus)


class Order(Base, TimestampMixin):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    pet_id = Column(Integer, ForeignKey("pets.id"), nullable=False, index=True)
    host_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(32), nullable=False, default=OrderStatus.PENDING_CONFIRMATION.value)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    special_requests = Column(Text, nullable=True)

    pet = relationship("Pet")

    __table_args__ = (
        CheckConstraint("end_date > start_date", name="check_order_dates_ordered"),
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="check_order_status"),
        CheckConstraint("total_amount >= 0", name="check_order_amount_non_negative"),
        # Stale-pending sweep: status = pending_confirmation AND created_at < cutoff
        Index("ix_orders_status_created", "status", "created_at"),
        Index("ix_orders_status_start", "status", "start_date"),
        Index("ix_orders_status_end", "status", "end_date"),
        Index("ix_orders_host_created", "host_user_id", "created_at"),
    )

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, pet={self.pet_id}, status={self.status})>"
