"""TimeSlot endpoints: list, batch upsert, delete."""

from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.database import get_db
from app.core.deps import Principal, PageParams, get_current_provider, get_page_params
from app.schemas.common import Envelope, DeletedOut, Pagination
from app.schemas.time_slot import (
    TimeSlotBatchUpsert,
    TimeSlotList,
    TimeSlotOut,
    TimeSlotsDeleted,
)
from app.services import catalog

router = APIRouter()


@router.get("", response_model=Envelope[TimeSlotList])
async def list_time_slots(
    service_id: UUID = Query(...),
    no_pagination: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
    paging: PageParams = Depends(get_page_params),
):
    service = await catalog.get_service(db, principal.provider_id, service_id)
    slots, total = await catalog.list_time_slots(
        db, service.id, paging.page, paging.page_size, no_pagination=no_pagination
    )
    return Envelope(data=TimeSlotList(
        time_slots=[TimeSlotOut.model_validate(s) for s in slots],
        pagination=None if no_pagination else Pagination.build(paging.page, paging.page_size, total),
    ))


@router.patch("", response_model=Envelope[TimeSlotList])
async def batch_upsert_time_slots(
    body: TimeSlotBatchUpsert,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
):
    """Insert slots without ``id``, update slots with one.

    If any slot is invalid, none are saved and the error lists every
    failing slot by index.
    """
    service = await catalog.get_service(db, principal.provider_id, body.service_id)
    slots = await catalog.batch_upsert_time_slots(db, service, body.time_slots)
    return Envelope(data=TimeSlotList(time_slots=[TimeSlotOut.model_validate(s) for s in slots]))


@router.delete("/{time_slot_id}", response_model=Envelope[DeletedOut])
async def delete_time_slot(
    time_slot_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
):
    slot = await catalog.get_time_slot(db, principal.provider_id, time_slot_id)
    await catalog.delete_time_slot(db, slot)
    return Envelope(data=DeletedOut(id=str(time_slot_id)))


@router.delete("", response_model=Envelope[TimeSlotsDeleted])
async def delete_time_slots_by_day(
    service_id: UUID = Query(...),
    day_of_week: int = Query(..., ge=0, le=6),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
):
    """Delete every slot of a service on one weekday. Succeeds with
    deleted_count=0 when nothing matches."""
    service = await catalog.get_service(db, principal.provider_id, service_id)
    deleted = await catalog.delete_time_slots_by_day_of_week(db, service, day_of_week)
    return Envelope(data=TimeSlotsDeleted(
        service_id=service_id, day_of_week=day_of_week, deleted_count=deleted,
    ))
