from sqlalchemy import Column, String, Boolean
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum
from .base import Base, TimestampMixin, StringEnum


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"
    MODERATOR = "moderator"


class User(Base, TimestampMixin):
    """Local dashboard account; email is stored lower-cased and is unique"""
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(StringEnum(UserRole), default=UserRole.USER, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
