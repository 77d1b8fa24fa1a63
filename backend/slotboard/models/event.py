"""
Event model: a scheduled activity with a fixed number of slots.

Key design decisions:
- `slots_count` is fixed at creation; slot positions are [0, slots_count)
- Index on `start_time` serves both the listing order and the reminder sweep
- Participants are loaded with selectin so async callers never lazy-load
"""

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from slotboard.db.base import Base


class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    creator_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    slots_count: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    participants = relationship(
        "Booking",
        back_populates="event",
        lazy="selectin",
        order_by="Booking.slot_index",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("slots_count > 0", name="slots_count_positive"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, slots={self.slots_count}, start={self.start_time})>"
