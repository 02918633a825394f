"""Customer upsert by natural key, scoped per service.

Identity: lower-cased email when given, otherwise the normalized phone
number. A name-only customer is always a new record.
"""

import logging
import re
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, ValidationError
from app.models.customer import Customer
from app.schemas.customer import CustomerIn

logger = logging.getLogger(__name__)

_PHONE_STRIP = re.compile(r"[\s()\-.]")


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return str(email).strip().lower() or None


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return None
    return _PHONE_STRIP.sub("", phone.strip()) or None


async def find_customer(
    db: AsyncSession, service_id: UUID, email: Optional[str], phone: Optional[str]
) -> Optional[Customer]:
    if email:
        result = await db.execute(
            select(Customer).where(Customer.service_id == service_id, Customer.email == email)
        )
        customer = result.scalar_one_or_none()
        if customer:
            return customer
    if phone:
        result = await db.execute(
            select(Customer).where(Customer.service_id == service_id, Customer.phone == phone)
        )
        return result.scalar_one_or_none()
    return None


async def upsert_customer(
    db: AsyncSession, service_id: UUID, info: Optional[CustomerIn]
) -> Optional[Customer]:
    """Return the customer matching ``info`` for this service, creating or
    completing it as needed. Returns None when no contact detail is given.

    Flushes but does not commit; runs inside the caller's transaction.
    """
    if info is None or info.is_empty():
        return None

    email = normalize_email(info.email)
    phone = normalize_phone(info.phone)
    customer = await find_customer(db, service_id, email, phone)

    if customer is None:
        customer = Customer(service_id=service_id, name=info.name, email=email, phone=phone)
        db.add(customer)
    else:
        # Fill in details we did not know yet; never overwrite a known key
        # and never take one that belongs to another customer.
        if info.name and not customer.name:
            customer.name = info.name
        if email and not customer.email:
            if await _key_owner(db, customer, Customer.email, email) is None:
                customer.email = email
            else:
                logger.info("Email already belongs to another customer of service %s", service_id)
        if phone and not customer.phone:
            if await _key_owner(db, customer, Customer.phone, phone) is None:
                customer.phone = phone
            else:
                logger.info("Phone already belongs to another customer of service %s", service_id)
    await db.flush()
    return customer


async def _key_owner(db: AsyncSession, customer: Customer, column, value: str) -> Optional[UUID]:
    """Id of another customer of the same service already holding ``value``."""
    result = await db.execute(
        select(Customer.id).where(
            Customer.service_id == customer.service_id,
            column == value,
            Customer.id != customer.id,
        )
    )
    return result.scalar_one_or_none()


async def get_customer(db: AsyncSession, customer_id: UUID) -> Customer:
    result = await db.execute(select(Customer).where(Customer.id == customer_id))
    customer = result.scalar_one_or_none()
    if not customer:
        raise NotFoundError(f"Customer not found: {customer_id}", code="customer_not_found")
    return customer


async def update_customer(db: AsyncSession, customer: Customer, info: CustomerIn, fields: set[str]) -> Customer:
    """Patch name/email/phone. Changing email or phone to one already used
    by another customer of the same service is rejected."""
    email = normalize_email(info.email) if "email" in fields else customer.email
    phone = normalize_phone(info.phone) if "phone" in fields else customer.phone

    for value, column, label in ((email, Customer.email, "email"), (phone, Customer.phone, "phone")):
        if value and value != getattr(customer, label):
            if await _key_owner(db, customer, column, value) is not None:
                raise ValidationError(
                    f"Another customer of this service already uses this {label}",
                    code="invalid_request",
                )

    if "name" in fields:
        customer.name = info.name
    customer.email = email
    customer.phone = phone
    await db.commit()
    await db.refresh(customer)
    return customer
