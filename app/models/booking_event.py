"""Outbox of booking lifecycle events awaiting webhook delivery."""

from sqlalchemy import Column, String, Integer, Text, DateTime, Uuid, JSON
import uuid
from app.core.database import Base, utcnow


class BookingEvent(Base):
    __tablename__ = "booking_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_type = Column(String, nullable=False, index=True)  # booking.created, booking.cancelled, ...
    service_id = Column(Uuid, nullable=False, index=True)
    booking_id = Column(Uuid, nullable=False)
    payload = Column(JSON, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="pending", index=True)  # pending, retrying, delivered, failed
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
