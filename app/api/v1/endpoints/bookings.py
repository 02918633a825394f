"""Booking endpoints: admission, listing, status changes, reschedule, delete,
and the booking's customer."""

from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.database import get_db
from app.core.deps import Principal, PageParams, get_current_provider, get_page_params
from app.models.booking import BookingStatus
from app.schemas.booking import BookingCreate, BookingList, BookingOut, BookingUpdate
from app.schemas.common import Envelope, DeletedOut, Pagination
from app.schemas.customer import CustomerIn, CustomerOut
from app.services import admission, bookings, catalog
from app.services.clock import parse_date

router = APIRouter()


async def _view(db: AsyncSession, booking) -> BookingOut:
    views = await bookings.booking_views(db, [booking])
    return views[0]


@router.post("", response_model=Envelope[BookingOut], status_code=201)
async def create_booking(
    body: BookingCreate,
    service_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
):
    """Book one seat of the occurrence (time_slot_id, date).

    The booking starts as ``pending``. Customer details are optional; when
    given, the same person is recognised across bookings by email or phone.
    """
    booking, _ = await admission.create_booking(
        db,
        provider_id=principal.provider_id,
        service_id=service_id,
        time_slot_id=body.time_slot_id,
        date_string=body.date,
        customer_info=body.customer_info(),
        message=body.message,
    )
    return Envelope(data=await _view(db, booking))


@router.get("", response_model=Envelope[BookingList])
async def list_bookings(
    service_id: UUID = Query(...),
    status: Optional[BookingStatus] = Query(None),
    date: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
    paging: PageParams = Depends(get_page_params),
):
    service = await catalog.get_service(db, principal.provider_id, service_id)
    occurrence_date = parse_date(date) if date is not None else None
    rows, total = await bookings.list_bookings(
        db, service.id, paging.page, paging.page_size,
        status=status, occurrence_date=occurrence_date,
    )
    return Envelope(data=BookingList(
        bookings=await bookings.booking_views(db, rows),
        pagination=Pagination.build(paging.page, paging.page_size, total),
    ))


@router.get("/{booking_id}", response_model=Envelope[BookingOut])
async def get_booking(
    booking_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
):
    booking = await bookings.get_booking(db, principal.provider_id, booking_id)
    return Envelope(data=await _view(db, booking))


@router.patch("/{booking_id}", response_model=Envelope[BookingOut])
async def update_booking(
    booking_id: UUID,
    body: BookingUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
):
    """Confirm, cancel (cancel_reason required), reschedule via ``date`` and
    ``time_slot_id``, or edit the message. A cancelled booking is final."""
    booking = await bookings.update_booking(db, principal.provider_id, booking_id, body)
    return Envelope(data=await _view(db, booking))


@router.delete("/{booking_id}", response_model=Envelope[DeletedOut])
async def delete_booking(
    booking_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
):
    await bookings.delete_booking(db, principal.provider_id, booking_id)
    return Envelope(data=DeletedOut(id=str(booking_id)))


@router.get("/{booking_id}/customer", response_model=Envelope[CustomerOut])
async def get_booking_customer(
    booking_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
):
    customer = await bookings.get_booking_customer(db, principal.provider_id, booking_id)
    return Envelope(data=CustomerOut.model_validate(customer))


@router.patch("/{booking_id}/customer", response_model=Envelope[CustomerOut])
async def update_booking_customer(
    booking_id: UUID,
    body: CustomerIn,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
):
    customer = await bookings.update_booking_customer(
        db, principal.provider_id, booking_id, body, body.model_fields_set
    )
    return Envelope(data=CustomerOut.model_validate(customer))
