"""Booking model: a customer's claim on one seat of one occurrence."""

from sqlalchemy import (
    Column, Date, DateTime, Integer, Text, ForeignKey, Uuid, Index, Enum as SQLEnum, text,
)
import uuid
import enum
from app.core.database import Base, utcnow


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


LIVE_BOOKING_CLAUSE = "status <> 'cancelled'"


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    service_id = Column(Uuid, ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True)
    time_slot_id = Column(Uuid, ForeignKey("time_slots.id", ondelete="CASCADE"), nullable=False)
    customer_id = Column(Uuid, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    occurrence_date = Column(Date, nullable=False)
    status = Column(
        SQLEnum(
            BookingStatus,
            name="booking_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    cancel_reason = Column(Text, nullable=True)
    message = Column(Text, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    version = Column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_bookings_occurrence", "time_slot_id", "occurrence_date"),
        # At most one live booking per (customer, occurrence)
        Index(
            "uq_bookings_live_customer_occurrence",
            "customer_id",
            "time_slot_id",
            "occurrence_date",
            unique=True,
            postgresql_where=text(LIVE_BOOKING_CLAUSE),
            sqlite_where=text(LIVE_BOOKING_CLAUSE),
        ),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def is_live(self) -> bool:
        return self.status != BookingStatus.CANCELLED
