from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, DateTime, Enum as SQLEnum
from datetime import datetime, timezone

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def StringEnum(enum_cls, length: int = 20) -> SQLEnum:
    """Enum stored by value as text, matching the hosted schema's TEXT + CHECK columns"""
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class TimestampMixin:
    """Mixin to add created_at and updated_at timestamps to models"""
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
