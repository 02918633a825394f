"""Tests for the booking admission pipeline: capacity, duplicates, weekday
matching, atomicity and conflict retries."""

import asyncio
from datetime import date

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from app.core.errors import (
    CapacityExceededError,
    DuplicateBookingError,
    FormatError,
    InternalError,
    NotFoundError,
)
from app.models.booking import Booking, BookingStatus
from app.models.booking_event import BookingEvent
from app.models.customer import Customer
from app.schemas.customer import CustomerIn
from app.services import admission, capacity_ledger, outbox

MONDAY = "2030-01-07"
TUESDAY = "2030-01-08"
NEXT_MONDAY = "2030-01-14"


async def _admit(session, service, slot_key="single_slot_id", date=MONDAY, **customer):
    return await admission.create_booking(
        session,
        provider_id=service["provider_id"],
        service_id=service["service_id"],
        time_slot_id=service[slot_key],
        date_string=date,
        customer_info=CustomerIn(**customer) if customer else None,
    )


async def _live_count(db, slot_id, date):
    result = await db.execute(
        select(func.count(Booking.id)).where(
            Booking.time_slot_id == slot_id,
            Booking.occurrence_date == date,
            Booking.status != BookingStatus.CANCELLED,
        )
    )
    return result.scalar()


@pytest.mark.asyncio
async def test_admission_creates_pending_booking(db, service):
    booking, customer = await _admit(db, service, name="Ana", email="ana@example.com")

    assert booking.status == BookingStatus.PENDING
    assert booking.occurrence_date.isoformat() == MONDAY
    assert customer.email == "ana@example.com"
    assert await capacity_ledger.get_booked_count(db, service["single_slot_id"], booking.occurrence_date) == 1

    events = (await db.execute(select(BookingEvent))).scalars().all()
    assert [e.event_type for e in events] == [outbox.BOOKING_CREATED]


@pytest.mark.asyncio
async def test_concurrent_admissions_for_last_seat(service, session_factory):
    """Two customers race for a slot with max_bookings=1: exactly one wins."""
    async with session_factory() as first, session_factory() as second:
        results = await asyncio.gather(
            _admit(first, service, email="first@example.com"),
            _admit(second, service, email="second@example.com"),
            return_exceptions=True,
        )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], CapacityExceededError)
    assert losers[0].code == "time_slot_full"

    async with session_factory() as check:
        booked = await capacity_ledger.get_booked_count(check, service["single_slot_id"], winners[0][0].occurrence_date)
        assert booked == 1
        assert await _live_count(check, service["single_slot_id"], winners[0][0].occurrence_date) == 1


@pytest.mark.asyncio
async def test_concurrent_admissions_fill_group_slot_exactly(service, session_factory):
    async with session_factory() as s1, session_factory() as s2, session_factory() as s3, session_factory() as s4:
        results = await asyncio.gather(
            *[
                _admit(session, service, slot_key="group_slot_id", email=f"p{i}@example.com")
                for i, session in enumerate((s1, s2, s3, s4))
            ],
            return_exceptions=True,
        )

    assert sum(1 for r in results if not isinstance(r, Exception)) == 3
    assert [type(r) for r in results if isinstance(r, Exception)] == [CapacityExceededError]


@pytest.mark.asyncio
async def test_duplicate_booking_is_rejected(db, service):
    first, _ = await _admit(db, service, slot_key="group_slot_id", email="Ana@Example.com")
    first_id, first_date = first.id, first.occurrence_date

    with pytest.raises(DuplicateBookingError) as exc:
        await _admit(db, service, slot_key="group_slot_id", email="ana@example.com")

    assert exc.value.code == "duplicate_booking"
    assert exc.value.details == {"booking_id": str(first_id)}
    assert await capacity_ledger.get_booked_count(db, service["group_slot_id"], first_date) == 1


@pytest.mark.asyncio
async def test_same_customer_may_book_another_date(db, service):
    await _admit(db, service, email="ana@example.com")
    booking, _ = await _admit(db, service, date=NEXT_MONDAY, email="ana@example.com")
    assert booking.occurrence_date.isoformat() == NEXT_MONDAY


@pytest.mark.asyncio
async def test_customer_matched_by_phone(db, service):
    _, first = await _admit(db, service, slot_key="group_slot_id", name="Bo", phone="+1 (555) 010-2000")
    _, second = await _admit(db, service, slot_key="group_slot_id", date=NEXT_MONDAY, phone="+15550102000")
    assert first.id == second.id
    assert second.phone == "+15550102000"


@pytest.mark.asyncio
async def test_email_and_phone_of_two_different_customers(db, service):
    """The email wins; the phone stays with the customer who already owns it."""
    _, ana = await _admit(db, service, slot_key="group_slot_id", email="ana@example.com")
    _, bo = await _admit(db, service, slot_key="group_slot_id", phone="+15550102000")
    ana_id, bo_id = ana.id, bo.id

    booking, customer = await _admit(
        db, service, slot_key="group_slot_id", date=NEXT_MONDAY,
        email="ana@example.com", phone="+1 555 010 2000",
    )

    assert customer.id == ana_id
    assert booking.customer_id == ana_id
    assert customer.phone is None
    owner = await db.execute(select(Customer).where(Customer.phone == "+15550102000"))
    assert owner.scalar_one().id == bo_id


@pytest.mark.asyncio
async def test_anonymous_bookings_skip_duplicate_guard(db, service):
    await _admit(db, service, slot_key="group_slot_id")
    booking, customer = await _admit(db, service, slot_key="group_slot_id")
    assert customer is None
    assert booking.customer_id is None


@pytest.mark.asyncio
async def test_date_on_wrong_weekday_is_rejected(db, service):
    with pytest.raises(NotFoundError) as exc:
        await _admit(db, service, date=TUESDAY, email="ana@example.com")
    assert exc.value.code == "time_slot_not_found"

    count = await db.execute(select(func.count(Booking.id)))
    assert count.scalar() == 0


@pytest.mark.asyncio
async def test_malformed_date_is_rejected_before_anything_else(db, service):
    with pytest.raises(FormatError):
        await _admit(db, service, date="2030-02-30", email="ana@example.com")

    customers = await db.execute(select(func.count(Customer.id)))
    assert customers.scalar() == 0


@pytest.mark.asyncio
async def test_failed_admission_leaves_no_trace(db, service, monkeypatch, session_factory):
    """A failure after the seat was taken rolls back seat, customer and booking."""
    def boom(*args, **kwargs):
        raise RuntimeError("event store unavailable")

    monkeypatch.setattr(outbox, "record_event", boom)

    with pytest.raises(RuntimeError):
        await _admit(db, service, email="ana@example.com")

    async with session_factory() as check:
        assert (await check.execute(select(func.count(Booking.id)))).scalar() == 0
        assert (await check.execute(select(func.count(Customer.id)))).scalar() == 0
        assert await capacity_ledger.get_booked_count(check, service["single_slot_id"], date.fromisoformat(MONDAY)) == 0


@pytest.mark.asyncio
async def test_cancel_then_rebook_same_occurrence(db, service):
    from app.schemas.booking import BookingUpdate
    from app.services import bookings

    booking, _ = await _admit(db, service, email="ana@example.com")
    await bookings.update_booking(
        db, service["provider_id"], booking.id,
        BookingUpdate(status="cancelled", cancel_reason="sick"),
    )

    again, _ = await _admit(db, service, email="ana@example.com")
    assert again.id != booking.id
    assert await capacity_ledger.get_booked_count(db, service["single_slot_id"], again.occurrence_date) == 1


@pytest.mark.asyncio
async def test_lock_conflict_is_retried(db, service, monkeypatch):
    original = capacity_ledger.lock_occurrence
    calls = {"n": 0}

    async def flaky(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("SELECT", {}, Exception("database is locked"))
        return await original(*args, **kwargs)

    monkeypatch.setattr(capacity_ledger, "lock_occurrence", flaky)

    booking, _ = await _admit(db, service, email="ana@example.com")
    assert booking.status == BookingStatus.PENDING
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_persistent_conflict_gives_up_with_internal_error(db, service, monkeypatch):
    async def always_locked(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(capacity_ledger, "lock_occurrence", always_locked)

    with pytest.raises(InternalError) as exc:
        await _admit(db, service, email="ana@example.com")
    assert exc.value.status_code == 500
