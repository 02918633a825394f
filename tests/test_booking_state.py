"""Tests for booking status transitions and capacity release."""

import asyncio
from datetime import date

import pytest
from sqlalchemy import update

from app.core.errors import InvalidStatusTransitionError, ValidationError, VersionConflictError
from app.models.booking import Booking, BookingStatus
from app.schemas.booking import BookingUpdate
from app.schemas.customer import CustomerIn
from app.services import admission, bookings, capacity_ledger
from app.services.booking_state import check_transition

MONDAY = "2030-01-07"
NEXT_MONDAY = "2030-01-14"


async def _book(db, service, email="ana@example.com", slot_key="single_slot_id"):
    booking, _ = await admission.create_booking(
        db,
        provider_id=service["provider_id"],
        service_id=service["service_id"],
        time_slot_id=service[slot_key],
        date_string=MONDAY,
        customer_info=CustomerIn(email=email),
    )
    return booking


def test_transition_table():
    assert check_transition(BookingStatus.PENDING, BookingStatus.CONFIRMED) is True
    assert check_transition(BookingStatus.PENDING, BookingStatus.CANCELLED, "no show") is True
    assert check_transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED, "no show") is True
    assert check_transition(BookingStatus.CONFIRMED, BookingStatus.CONFIRMED) is False


@pytest.mark.parametrize("target", [BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CANCELLED])
def test_cancelled_is_terminal(target):
    with pytest.raises(InvalidStatusTransitionError):
        check_transition(BookingStatus.CANCELLED, target, "again")


def test_confirmed_cannot_go_back_to_pending():
    with pytest.raises(InvalidStatusTransitionError):
        check_transition(BookingStatus.CONFIRMED, BookingStatus.PENDING)


def test_cancel_requires_reason():
    with pytest.raises(ValidationError) as exc:
        check_transition(BookingStatus.PENDING, BookingStatus.CANCELLED, "  ")
    assert exc.value.code == "missing_required_field"


@pytest.mark.asyncio
async def test_confirm_keeps_seat(db, service):
    booking = await _book(db, service)
    updated = await bookings.update_booking(
        db, service["provider_id"], booking.id, BookingUpdate(status="confirmed")
    )
    assert updated.status == BookingStatus.CONFIRMED
    assert updated.confirmed_at is not None
    assert await capacity_ledger.get_booked_count(db, service["single_slot_id"], updated.occurrence_date) == 1


@pytest.mark.asyncio
async def test_cancel_releases_seat_once(db, service):
    """Cancelling frees the seat; a second cancel is rejected and does not
    free it again."""
    booking = await _book(db, service)
    booking_id, occurrence_date = booking.id, booking.occurrence_date

    cancelled = await bookings.update_booking(
        db, service["provider_id"], booking_id,
        BookingUpdate(status="cancelled", cancel_reason="customer request"),
    )
    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancel_reason == "customer request"
    assert await capacity_ledger.get_booked_count(db, service["single_slot_id"], occurrence_date) == 0

    with pytest.raises(InvalidStatusTransitionError):
        await bookings.update_booking(
            db, service["provider_id"], booking_id,
            BookingUpdate(status="cancelled", cancel_reason="again"),
        )
    assert await capacity_ledger.get_booked_count(db, service["single_slot_id"], occurrence_date) == 0


@pytest.mark.asyncio
async def test_concurrent_cancels_release_one_seat(service, session_factory):
    async with session_factory() as setup:
        booking = await _book(setup, service, slot_key="group_slot_id")
        await _book(setup, service, email="bo@example.com", slot_key="group_slot_id")
        booking_id, occurrence_date = booking.id, booking.occurrence_date

    async def cancel():
        async with session_factory() as session:
            return await bookings.update_booking(
                session, service["provider_id"], booking_id,
                BookingUpdate(status="cancelled", cancel_reason="duplicate request"),
            )

    results = await asyncio.gather(cancel(), cancel(), return_exceptions=True)
    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert [type(r) for r in results if isinstance(r, Exception)] == [InvalidStatusTransitionError]

    async with session_factory() as check:
        assert await capacity_ledger.get_booked_count(check, service["group_slot_id"], occurrence_date) == 1


@pytest.mark.asyncio
async def test_delete_live_booking_releases_seat(db, service):
    booking = await _book(db, service)
    occurrence_date = booking.occurrence_date
    await bookings.delete_booking(db, service["provider_id"], booking.id)
    assert await capacity_ledger.get_booked_count(db, service["single_slot_id"], occurrence_date) == 0


@pytest.mark.asyncio
async def test_delete_cancelled_booking_does_not_release_twice(db, service):
    first = await _book(db, service, slot_key="group_slot_id")
    await _book(db, service, email="bo@example.com", slot_key="group_slot_id")
    first_id, occurrence_date = first.id, first.occurrence_date

    await bookings.update_booking(
        db, service["provider_id"], first_id,
        BookingUpdate(status="cancelled", cancel_reason="moved away"),
    )
    await bookings.delete_booking(db, service["provider_id"], first_id)
    assert await capacity_ledger.get_booked_count(db, service["group_slot_id"], occurrence_date) == 1


@pytest.mark.asyncio
async def test_reschedule_refuses_booking_moved_while_locking(db, service, monkeypatch):
    """If the booking left the locked occurrence before the lock was taken,
    nothing is reserved or released."""
    booking = await _book(db, service)
    booking_id = booking.id
    read_booking = bookings.get_booking

    async def moved_meanwhile(session, provider_id, target_id, refresh=False):
        if refresh:
            await session.execute(
                update(Booking).where(Booking.id == target_id).values(occurrence_date=date(2030, 1, 21))
            )
        return await read_booking(session, provider_id, target_id, refresh=refresh)

    monkeypatch.setattr(bookings, "get_booking", moved_meanwhile)
    with pytest.raises(VersionConflictError):
        await bookings.update_booking(
            db, service["provider_id"], booking_id, BookingUpdate(date=NEXT_MONDAY)
        )
    monkeypatch.undo()

    slot_id = service["single_slot_id"]
    assert await capacity_ledger.get_booked_count(db, slot_id, date.fromisoformat(MONDAY)) == 1
    assert await capacity_ledger.get_booked_count(db, slot_id, date.fromisoformat(NEXT_MONDAY)) == 0
    unchanged = await bookings.get_booking(db, service["provider_id"], booking_id, refresh=True)
    assert unchanged.occurrence_date == date.fromisoformat(MONDAY)
