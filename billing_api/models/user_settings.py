from sqlalchemy import Column, ForeignKey
from sqlalchemy.dialects.postgresql import UUID, JSONB
import uuid
from .base import Base, TimestampMixin


class UserSettings(Base, TimestampMixin):
    """Free-form per-user settings blob (notifications, license flags, ...)"""
    __tablename__ = "user_settings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    settings = Column(JSONB, nullable=False, default=dict)
