from sqlalchemy import Column, String, Numeric, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum
from .base import Base, TimestampMixin, StringEnum


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_id = Column(UUID(as_uuid=True), ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)  # major units, e.g. 29.99
    currency = Column(String(10), default="USD", nullable=False)
    status = Column(StringEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    # Creem checkout/transaction id; natural dedup key for redelivered webhooks
    transaction_id = Column(String(255), nullable=True, unique=True, index=True)
    payment_method = Column(String(100), nullable=True)
