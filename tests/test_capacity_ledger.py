"""Tests for the capacity ledger: counters, release floor and reconciliation."""

from datetime import date

import pytest
from sqlalchemy import update

from app.core.errors import CapacityExceededError
from app.models.occurrence_capacity import OccurrenceCapacity
from app.schemas.customer import CustomerIn
from app.services import admission, capacity_ledger

MONDAY = "2030-01-07"
OCCURRENCE = date.fromisoformat(MONDAY)


@pytest.mark.asyncio
async def test_reserve_until_full(db, service):
    slot_id = service["group_slot_id"]
    await capacity_ledger.lock_occurrence(db, slot_id, OCCURRENCE)
    for expected in (1, 2, 3):
        reservation = await capacity_ledger.reserve_seat(db, slot_id, OCCURRENCE, 3)
        assert reservation.booked_count == expected

    with pytest.raises(CapacityExceededError):
        await capacity_ledger.reserve_seat(db, slot_id, OCCURRENCE, 3)
    await db.rollback()


@pytest.mark.asyncio
async def test_release_never_goes_below_zero(db, service, caplog):
    slot_id = service["single_slot_id"]
    await capacity_ledger.lock_occurrence(db, slot_id, OCCURRENCE)

    assert await capacity_ledger.release_seat(db, slot_id, OCCURRENCE) is False
    assert await capacity_ledger.get_booked_count(db, slot_id, OCCURRENCE) == 0
    assert "empty occurrence" in caplog.text
    await db.commit()


@pytest.mark.asyncio
async def test_lowered_capacity_blocks_new_seats_only(db, service):
    """Existing bookings survive a capacity cut; new admissions are refused
    until the count drops below the new maximum."""
    slot_id = service["group_slot_id"]
    await capacity_ledger.lock_occurrence(db, slot_id, OCCURRENCE)
    await capacity_ledger.reserve_seat(db, slot_id, OCCURRENCE, 3)
    await capacity_ledger.reserve_seat(db, slot_id, OCCURRENCE, 3)
    await db.commit()

    with pytest.raises(CapacityExceededError):
        await capacity_ledger.reserve_seat(db, slot_id, OCCURRENCE, 1)
    await db.rollback()
    assert await capacity_ledger.get_booked_count(db, slot_id, OCCURRENCE) == 2


@pytest.mark.asyncio
async def test_reconcile_repairs_drifted_counter(db, service):
    for email in ("a@example.com", "b@example.com"):
        await admission.create_booking(
            db,
            provider_id=service["provider_id"],
            service_id=service["service_id"],
            time_slot_id=service["group_slot_id"],
            date_string=MONDAY,
            customer_info=CustomerIn(email=email),
        )

    await db.execute(
        update(OccurrenceCapacity)
        .where(OccurrenceCapacity.time_slot_id == service["group_slot_id"])
        .values(booked_count=3)
    )
    await db.commit()

    corrections = await capacity_ledger.reconcile_service(db, service["service_id"])
    assert corrections == [{
        "time_slot_id": str(service["group_slot_id"]),
        "date": MONDAY,
        "previous": 3,
        "actual": 2,
    }]
    assert await capacity_ledger.get_booked_count(db, service["group_slot_id"], OCCURRENCE) == 2

    assert await capacity_ledger.reconcile_service(db, service["service_id"]) == []


@pytest.mark.asyncio
async def test_reconcile_script_covers_all_services(db, service, monkeypatch, capsys, session_factory):
    from app.scripts import reconcile_capacity

    monkeypatch.setattr(reconcile_capacity, "async_session", session_factory)
    await capacity_ledger.lock_occurrence(db, service["single_slot_id"], OCCURRENCE)
    await db.execute(
        update(OccurrenceCapacity)
        .where(OccurrenceCapacity.time_slot_id == service["single_slot_id"])
        .values(booked_count=1)
    )
    await db.commit()

    assert await reconcile_capacity.reconcile([]) == 1
    assert "1 counter(s) corrected" in capsys.readouterr().out
