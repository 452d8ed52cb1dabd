"""Initial schema: session templates, slot ledger, reservations, users.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "wellness_sessions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("recurring_days", sa.JSON(), nullable=False),
        sa.Column("specialized_topic", sa.String(100), nullable=True),
        sa.Column("rotating_topic", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.CheckConstraint("capacity > 0", name="check_session_capacity_positive"),
        sa.CheckConstraint("price >= 0", name="check_session_price_non_negative"),
    )

    # Ledger: one row per occurrence, remaining seats guarded by CHECKs
    op.create_table(
        "slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.String(64), sa.ForeignKey("wellness_sessions.id"), nullable=False),
        sa.Column("date_key", sa.String(10), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("remaining_capacity", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("session_id", "date_key", name="uq_slot_session_date"),
        sa.CheckConstraint("remaining_capacity >= 0", name="check_slot_remaining_non_negative"),
        sa.CheckConstraint("remaining_capacity <= capacity", name="check_slot_remaining_lte_capacity"),
        sa.CheckConstraint("capacity > 0", name="check_slot_capacity_positive"),
    )

    op.create_table(
        "slot_occupants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("slot_id", sa.Integer(), sa.ForeignKey("slots.id"), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("reservation_id", sa.String(32), nullable=False, unique=True),
        *_timestamps(),
    )
    op.create_index("ix_slot_occupants_slot_id", "slot_occupants", ["slot_id"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("session_id", sa.String(64), nullable=False),
        sa.Column("scheduled_date", sa.String(10), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("booked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(32), nullable=True),
        sa.Column("checkout_id", sa.String(255), nullable=True),
        sa.Column("session_snapshot", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled')",
            name="check_reservation_status",
        ),
    )
    op.create_index("ix_reservations_user_id", "reservations", ["user_id"])
    op.create_index("ix_reservations_slot", "reservations", ["session_id", "scheduled_date"])
    # Expiry sweep scans pending rows by age
    op.create_index("ix_reservations_status_booked_at", "reservations", ["status", "booked_at"])
    # At most one confirmed reservation per user per occurrence
    op.create_index(
        "uq_reservations_confirmed_slot",
        "reservations",
        ["user_id", "session_id", "scheduled_date"],
        unique=True,
        postgresql_where=sa.text("status = 'confirmed'"),
    )


def downgrade() -> None:
    op.drop_table("reservations")
    op.drop_table("slot_occupants")
    op.drop_table("slots")
    op.drop_table("wellness_sessions")
    op.drop_table("users")
