"""Service CRUD endpoints."""

from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.database import get_db
from app.core.deps import Principal, PageParams, get_current_provider, get_page_params
from app.schemas.common import Envelope, DeletedOut, Pagination
from app.schemas.service import (
    ServiceCreate,
    ServiceDetailOut,
    ServiceList,
    ServiceOut,
    ServiceUpdate,
)
from app.schemas.time_slot import TimeSlotOut
from app.services import catalog

router = APIRouter()


async def _detail(db: AsyncSession, service) -> ServiceDetailOut:
    slots, _ = await catalog.list_time_slots(db, service.id, no_pagination=True)
    detail = ServiceDetailOut.model_validate(service)
    detail.time_slots = [TimeSlotOut.model_validate(slot) for slot in slots]
    return detail


@router.post("", response_model=Envelope[ServiceDetailOut], status_code=201)
async def create_service(
    body: ServiceCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
):
    """Create a service, optionally with its initial weekly time slots."""
    service, _ = await catalog.create_service(
        db,
        provider_id=principal.provider_id,
        name=body.name,
        description=body.description,
        timezone=body.timezone,
        initial_time_slots=body.time_slots,
    )
    return Envelope(data=await _detail(db, service))


@router.get("", response_model=Envelope[ServiceList])
async def list_services(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
    paging: PageParams = Depends(get_page_params),
):
    services, total = await catalog.list_services(
        db, principal.provider_id, paging.page, paging.page_size
    )
    return Envelope(data=ServiceList(
        services=[ServiceOut.model_validate(s) for s in services],
        pagination=Pagination.build(paging.page, paging.page_size, total),
    ))


@router.get("/{service_id}", response_model=Envelope[ServiceDetailOut])
async def get_service(
    service_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
):
    service = await catalog.get_service(db, principal.provider_id, service_id)
    return Envelope(data=await _detail(db, service))


@router.patch("/{service_id}", response_model=Envelope[ServiceOut])
async def update_service(
    service_id: UUID,
    body: ServiceUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
):
    """Update name, description or timezone. Send ``version`` to fail with
    409 if the service changed since it was read."""
    service = await catalog.get_service(db, principal.provider_id, service_id)
    updates = body.model_dump(exclude_unset=True, exclude={"version"})
    service = await catalog.update_service(db, service, updates, expected_version=body.version)
    return Envelope(data=ServiceOut.model_validate(service))


@router.delete("/{service_id}", response_model=Envelope[DeletedOut])
async def delete_service(
    service_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_provider),
):
    """Delete a service together with its time slots, customers and bookings."""
    service = await catalog.get_service(db, principal.provider_id, service_id)
    await catalog.delete_service(db, service)
    return Envelope(data=DeletedOut(id=str(service_id)))
