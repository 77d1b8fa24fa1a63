"""
Booking model: one occupant's claim on one slot of one event.

Key design decisions:
- Unique constraint on (event_id, slot_index) is the only arbiter of who gets a slot.
  Bookings are hard-deleted, so every row in the table is live.
- user_name / user_photo are a snapshot taken at booking time
- notification_sent flips to true once a reminder went out
"""

from typing import Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, ForeignKey, Integer, String, UniqueConstraint, false
from sqlalchemy.orm import Mapped, mapped_column, relationship

from slotboard.db.base import Base

DEFAULT_STATUS = "pending"


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slot_index: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_photo: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=DEFAULT_STATUS)
    notification_sent: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(), index=True
    )

    event = relationship("Event", back_populates="participants")

    __table_args__ = (
        # One occupant per slot
        UniqueConstraint("event_id", "slot_index", name="uq_booking_event_slot"),
        CheckConstraint("slot_index >= 0", name="slot_index_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, event={self.event_id}, slot={self.slot_index}, user={self.user_id})>"
