"""Customer model, scoped per service."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid, UniqueConstraint
import uuid
from app.core.database import Base, utcnow


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    service_id = Column(Uuid, ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=True)
    email = Column(String, nullable=True)  # stored lower-cased
    phone = Column(String, nullable=True)  # stored normalized
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("service_id", "email", name="uq_customers_service_email"),
        UniqueConstraint("service_id", "phone", name="uq_customers_service_phone"),
    )
