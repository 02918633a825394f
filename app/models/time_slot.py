"""Recurring weekly availability rule of a service.

A TimeSlot is a template; the bookable unit is an occurrence of it on a
concrete date (see OccurrenceCapacity).
"""

from sqlalchemy import (
    Column, DateTime, Integer, Time, ForeignKey, Uuid, CheckConstraint, Index,
)
import uuid
from app.core.database import Base, utcnow


class TimeSlot(Base):
    __tablename__ = "time_slots"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    service_id = Column(Uuid, ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0..6, see DAY_OF_WEEK_CONVENTION
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_bookings = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    version = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_time_slots_day_of_week"),
        CheckConstraint("max_bookings >= 1", name="ck_time_slots_max_bookings"),
        CheckConstraint("start_time < end_time", name="ck_time_slots_time_range"),
        Index("ix_time_slots_service_day", "service_id", "day_of_week"),
    )
    __mapper_args__ = {"version_id_col": version}
