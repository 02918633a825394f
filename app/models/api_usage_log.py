from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid
import uuid

from app.core.database import Base, utcnow


class APIUsageLog(Base):
    __tablename__ = "api_usage_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    api_key_id = Column(Uuid, ForeignKey("api_keys.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_id = Column(Uuid, nullable=False, index=True)
    method = Column(String, nullable=False)
    endpoint = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
