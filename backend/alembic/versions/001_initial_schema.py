"""Initial schema: users, pets, orders, capacity_days with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ORDER_STATUSES = "'pending_confirmation', 'pending_start', 'in_progress', 'completed', 'cancelled'"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users table (pet owners and hosts)
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Pets table
    op.create_table(
        "pets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("species", sa.String(20), nullable=False),
        sa.Column("breed", sa.String(50), nullable=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_pets_id", "pets", ["id"])
    op.create_index("ix_pets_owner_id", "pets", ["owner_id"])

    # Per-date capacity counters
    op.create_table(
        "capacity_days",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("max_slots", sa.Integer(), nullable=False),
        sa.Column("booked_slots", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint("booked_slots >= 0", name="check_booked_slots_non_negative"),
        sa.CheckConstraint("max_slots >= 0", name="check_max_slots_non_negative"),
    )
    op.create_index("ix_capacity_days_id", "capacity_days", ["id"])
    # Unique date is what INSERT .. ON CONFLICT (date) DO NOTHING relies on
    op.create_index("ix_capacity_days_date", "capacity_days", ["date"], unique=True)

    # Orders table
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("pet_id", sa.Integer(), sa.ForeignKey("pets.id"), nullable=False),
        sa.Column("host_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status", sa.String(32), nullable=False, server_default=sa.text("'pending_confirmation'")
        ),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("special_requests", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("end_date > start_date", name="check_order_dates_ordered"),
        sa.CheckConstraint(f"status IN ({ORDER_STATUSES})", name="check_order_status"),
        sa.CheckConstraint("total_amount >= 0", name="check_order_amount_non_negative"),
    )
    op.create_index("ix_orders_id", "orders", ["id"])
    op.create_index("ix_orders_pet_id", "orders", ["pet_id"])
    op.create_index("ix_orders_host_user_id", "orders", ["host_user_id"])
    # Reconciliation sweeps filter on status plus one timestamp each:
    #   stale pending -> created_at, start -> start_date, complete -> end_date
    op.create_index("ix_orders_status_created", "orders", ["status", "created_at"])
    op.create_index("ix_orders_status_start", "orders", ["status", "start_date"])
    op.create_index("ix_orders_status_end", "orders", ["status", "end_date"])
    # Host order listing, newest first
    op.create_index("ix_orders_host_created", "orders", ["host_user_id", "created_at"])


def downgrade() -> None:
    op.drop_table("orders")
    op.drop_table("capacity_days")
    op.drop_table("pets")
    op.drop_table("users")
