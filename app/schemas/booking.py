"""Pydantic schemas for Bookings."""

from datetime import date as date_type, datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, EmailStr, field_validator

from app.models.booking import BookingStatus
from app.schemas.common import Pagination
from app.schemas.customer import CustomerIn, CustomerOut, validate_phone


class BookingCreate(BaseModel):
    """Body of POST /v1/bookings?service_id=...

    ``date`` stays a string here; the admission pipeline parses it strictly.
    """
    time_slot_id: UUID
    date: str
    customer_name: Optional[str] = None
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = None
    message: Optional[str] = None

    @field_validator("customer_phone")
    @classmethod
    def _phone(cls, value):
        return validate_phone(value)

    def customer_info(self) -> CustomerIn:
        return CustomerIn(
            name=self.customer_name,
            email=self.customer_email,
            phone=self.customer_phone,
        )


class BookingUpdate(BaseModel):
    status: Optional[BookingStatus] = None
    cancel_reason: Optional[str] = None
    date: Optional[str] = None
    time_slot_id: Optional[UUID] = None
    message: Optional[str] = None
    version: Optional[int] = None


class BookingOut(BaseModel):
    id: UUID
    service_id: UUID
    time_slot_id: UUID
    customer_id: Optional[UUID] = None
    date: date_type
    status: BookingStatus
    cancel_reason: Optional[str] = None
    message: Optional[str] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    customer: Optional[CustomerOut] = None
    version: int
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BookingList(BaseModel):
    bookings: list[BookingOut]
    pagination: Pagination
