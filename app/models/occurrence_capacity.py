"""Capacity ledger row: seats taken on one occurrence of a time slot.

Derived data. booked_count must always equal the number of non-cancelled
bookings for (time_slot_id, occurrence_date) and can be rebuilt from them.
"""

from sqlalchemy import Column, Date, DateTime, Integer, ForeignKey, Uuid, UniqueConstraint, CheckConstraint
import uuid
from app.core.database import Base, utcnow


class OccurrenceCapacity(Base):
    __tablename__ = "occurrence_capacity"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    time_slot_id = Column(Uuid, ForeignKey("time_slots.id", ondelete="CASCADE"), nullable=False)
    occurrence_date = Column(Date, nullable=False)
    booked_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("time_slot_id", "occurrence_date", name="uq_occurrence_capacity_occurrence"),
        CheckConstraint("booked_count >= 0", name="ck_occurrence_capacity_non_negative"),
    )
