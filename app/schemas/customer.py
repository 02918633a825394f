"""Pydantic schemas for Customers."""

import re
from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

PHONE_RE = re.compile(r"^\+?[0-9 ()\-.]{7,20}$")


def validate_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not PHONE_RE.match(value):
        raise ValueError("invalid phone number format")
    return value


class CustomerIn(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def _phone(cls, value):
        return validate_phone(value)

    @field_validator("name")
    @classmethod
    def _name(cls, value):
        if value is not None:
            value = value.strip() or None
        return value

    def is_empty(self) -> bool:
        return not (self.name or self.email or self.phone)


class CustomerOut(BaseModel):
    id: UUID
    service_id: UUID
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
