"""Tests for booking event delivery from the outbox."""

from datetime import timedelta

import httpx

import pytest
from sqlalchemy import select, update

from app.core.config import settings
from app.models.booking_event import BookingEvent
from app.schemas.customer import CustomerIn
from app.services import admission, outbox

MONDAY = "2030-01-07"


async def _booking(db, service):
    booking, _ = await admission.create_booking(
        db,
        provider_id=service["provider_id"],
        service_id=service["service_id"],
        time_slot_id=service["single_slot_id"],
        date_string=MONDAY,
        customer_info=CustomerIn(email="ana@example.com"),
    )
    return booking


@pytest.mark.asyncio
async def test_process_outbox_delivers_pending_events(db, service):
    booking = await _booking(db, service)
    delivered = []

    async def deliver(event_type, payload):
        delivered.append((event_type, payload))

    stats = await outbox.process_outbox(db, deliver)

    assert stats == {"processed": 1, "delivered": 1, "failed": 0}
    assert delivered[0][0] == "booking.created"
    assert delivered[0][1]["booking"]["id"] == str(booking.id)
    assert delivered[0][1]["booking"]["date"] == MONDAY

    # Nothing left to send
    assert await outbox.process_outbox(db, deliver) == {"processed": 0, "delivered": 0, "failed": 0}


@pytest.mark.asyncio
async def test_failed_delivery_is_retried_after_backoff(db, service, monkeypatch):
    monkeypatch.setattr(settings, "OUTBOX_RETRY_DELAYS", [60])
    await _booking(db, service)

    async def broken(event_type, payload):
        raise ConnectionError("receiver down")

    stats = await outbox.process_outbox(db, broken)
    assert stats["failed"] == 1

    event = (await db.execute(select(BookingEvent))).scalar_one()
    assert event.status == "retrying"
    assert event.attempts == 1
    assert event.last_error == "receiver down"

    # Still inside the backoff window
    assert await outbox.get_ready_events(db) == []

    await db.execute(
        update(BookingEvent).values(updated_at=event.updated_at - timedelta(hours=1))
    )
    await db.commit()
    ready = await outbox.get_ready_events(db)
    assert [e.id for e in ready] == [event.id]


@pytest.mark.asyncio
async def test_event_fails_permanently_after_max_attempts(db, service, monkeypatch):
    monkeypatch.setattr(settings, "OUTBOX_MAX_ATTEMPTS", 2)
    monkeypatch.setattr(settings, "OUTBOX_RETRY_DELAYS", [0])
    await _booking(db, service)

    async def broken(event_type, payload):
        raise ConnectionError("receiver down")

    await outbox.process_outbox(db, broken)
    await outbox.process_outbox(db, broken)

    event = (await db.execute(select(BookingEvent).execution_options(populate_existing=True))).scalar_one()
    assert event.status == "failed"
    assert event.attempts == 2
    assert await outbox.get_ready_events(db) == []


@pytest.mark.asyncio
async def test_webhook_deliverer_posts_payload(db, service):
    await _booking(db, service)
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(204)

    deliver = outbox.webhook_deliverer("https://hooks.example.com/bookings", transport=httpx.MockTransport(handler))
    stats = await outbox.process_outbox(db, deliver)

    assert stats["delivered"] == 1
    assert received[0].headers["x-reservekit-event"] == "booking.created"
    assert b'"booking.created"' in received[0].content


@pytest.mark.asyncio
async def test_webhook_error_status_counts_as_failure(db, service):
    await _booking(db, service)
    deliver = outbox.webhook_deliverer(
        "https://hooks.example.com/bookings",
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    stats = await outbox.process_outbox(db, deliver)
    assert stats == {"processed": 1, "delivered": 0, "failed": 1}
