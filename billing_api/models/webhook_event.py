from sqlalchemy import Column, String, Integer, Text, DateTime
from sqlalchemy.dialects.postgresql import UUID, JSONB
import uuid
import enum
from .base import Base, TimestampMixin, StringEnum


class WebhookEventStatus(str, enum.Enum):
    PROCESSED = "processed"
    FAILED = "failed"


class WebhookEventRecord(Base, TimestampMixin):
    """One row per Creem event id: replay guard and queryable failure sink"""
    __tablename__ = "webhook_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Creem event id for idempotency
    event_id = Column(String(255), nullable=False, unique=True, index=True)
    event_type = Column(String(100), nullable=False)
    status = Column(StringEnum(WebhookEventStatus), nullable=False, index=True)
    action = Column(String(100), nullable=True)  # what the handler did
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, default=1, nullable=False)
    payload = Column(JSONB, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
