"""Initial schema: events and bookings with the one-occupant-per-slot constraint.

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


def upgrade() -> None:
    # Events table
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("creator_id", sa.BigInteger(), nullable=False),
        sa.Column("slots_count", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_events"),
        sa.CheckConstraint("slots_count > 0", name="ck_events_slots_count_positive"),
    )
    # Serves ORDER BY start_time DESC on listing and the reminder window scan
    op.create_index("ix_events_start_time", "events", ["start_time"])

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("slot_index", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("user_name", sa.String(255), nullable=True),
        sa.Column("user_photo", sa.String(1024), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("notification_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id", name="pk_bookings"),
        sa.ForeignKeyConstraint(
            ["event_id"], ["events.id"],
            name="fk_bookings_event_id_events",
            ondelete="CASCADE",
        ),
        # ONE OCCUPANT PER SLOT: the constraint, not application code, decides
        # which of two simultaneous claims wins. Rows are hard-deleted on
        # cancellation, so every row here is a live booking.
        sa.UniqueConstraint("event_id", "slot_index", name="uq_booking_event_slot"),
        sa.CheckConstraint("slot_index >= 0", name="ck_bookings_slot_index_non_negative"),
    )
    op.create_index("ix_bookings_event_id", "bookings", ["event_id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_notification_sent", "bookings", ["notification_sent"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("events")
