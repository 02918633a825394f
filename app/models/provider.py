"""Provider (account) and API key models.

A provider owns services; every API request is authenticated with one of the
provider's API keys. Only a SHA-256 hash of each key is stored.
"""

from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Uuid
import uuid
from app.core.database import Base, utcnow


class Provider(Base):
    __tablename__ = "providers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ApiKey(Base):
    __tablename__ = "api_keys"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id = Column(Uuid, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=True)
    key_prefix = Column(String(12), nullable=False)  # first chars, shown in dashboards
    key_hash = Column(String(64), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    last_used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
