"""Service model: a bookable offering owned by one provider."""

from sqlalchemy import Column, String, Text, DateTime, Integer, ForeignKey, Uuid
import uuid
from app.core.database import Base, utcnow


class Service(Base):
    __tablename__ = "services"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id = Column(Uuid, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    timezone = Column(String, nullable=False, default="UTC")  # IANA name
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
