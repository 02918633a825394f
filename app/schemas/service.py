"""Pydantic schemas for Services."""

from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict

from app.schemas.common import Pagination
from app.schemas.time_slot import TimeSlotIn, TimeSlotOut


class ServiceCreate(BaseModel):
    name: str
    description: Optional[str] = None
    timezone: str = "UTC"
    time_slots: list[TimeSlotIn] = []


class ServiceUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    timezone: Optional[str] = None
    version: Optional[int] = None  # optimistic concurrency check when given


class ServiceOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    timezone: str
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ServiceDetailOut(ServiceOut):
    time_slots: list[TimeSlotOut] = []


class ServiceList(BaseModel):
    services: list[ServiceOut]
    pagination: Pagination
