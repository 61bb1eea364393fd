"""
Creem webhook envelope and per-event payload schemas.

The envelope is validated once when the request body is parsed; the `data`
object is then decoded into the payload model for its event family so the
reconciliation handlers never poke at raw dictionaries.
"""
import json
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Type, Union

from dateutil import parser as date_parser
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from billing_api.core.exceptions import WebhookParseError


class WebhookEventType(str, Enum):
    CHECKOUT_COMPLETED = "checkout.completed"
    CHECKOUT_EXPIRED = "checkout.expired"
    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_UPDATED = "subscription.updated"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"
    SUBSCRIPTION_RENEWED = "subscription.renewed"
    LICENSE_ACTIVATED = "license.activated"
    LICENSE_DEACTIVATED = "license.deactivated"
    TRANSACTION_COMPLETED = "transaction.completed"
    TRANSACTION_FAILED = "transaction.failed"
    REFUND_PROCESSED = "refund.processed"

    @classmethod
    def from_value(cls, value: str) -> Optional["WebhookEventType"]:
        try:
            return cls(value)
        except ValueError:
            return None


class WebhookEnvelope(BaseModel):
    id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("createdAt", "created_at")
    )

    @property
    def event_type(self) -> Optional[WebhookEventType]:
        return WebhookEventType.from_value(self.type)


def _reject_constant(name: str) -> None:
    # NaN / Infinity / -Infinity are not JSON
    raise ValueError(f"non-standard JSON constant {name}")


def parse_event(raw_body: Union[bytes, str]) -> WebhookEnvelope:
    """Decode and structurally validate a webhook body"""
    try:
        payload = json.loads(raw_body, parse_constant=_reject_constant)
    except (ValueError, UnicodeDecodeError):
        raise WebhookParseError("Invalid JSON payload")

    if not isinstance(payload, dict):
        raise WebhookParseError("Invalid event structure")

    event_id = payload.get("id")
    event_type = payload.get("type")
    if not isinstance(event_id, str) or not event_id.strip():
        raise WebhookParseError("Invalid event structure")
    if not isinstance(event_type, str) or not event_type.strip():
        raise WebhookParseError("Invalid event structure")

    data = payload.get("data")
    if not isinstance(data, dict):
        data = {}

    created_at = payload.get("createdAt") or payload.get("created_at")
    return WebhookEnvelope(
        id=event_id,
        type=event_type,
        data=data,
        createdAt=str(created_at) if created_at is not None else None,
    )


# Payload schemas. Creem sends camelCase; snake_case is accepted too.

class _EventData(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    customer_email: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("customerEmail", "customer_email", "email")
    )
    customer_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("customerName", "customer_name", "name")
    )

    @field_validator("customer_email")
    @classmethod
    def _normalize_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().lower()
        return value or None

    @field_validator(
        "current_period_start", "current_period_end", "trial_start", "trial_end", "activated_at",
        mode="before",
        check_fields=False,
    )
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Any:
        return parse_timestamp(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO strings, loose date strings and epoch seconds/milliseconds; naive values are UTC"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            if not math.isfinite(value):
                raise ValueError("not a finite number")
            seconds = value / 1000 if value > 1e11 else value
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f"timestamp out of range: {value!r}") from e
    elif isinstance(value, str):
        try:
            parsed = date_parser.parse(value)
        except (ValueError, OverflowError) as e:
            raise ValueError(f"invalid timestamp: {value!r}") from e
    else:
        raise ValueError(f"invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CheckoutData(_EventData):
    checkout_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("checkoutId", "checkout_id", "id")
    )
    amount: Optional[int] = None
    currency: str = "USD"
    payment_method: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("paymentMethod", "payment_method")
    )
    product_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("productId", "product_id")
    )


class SubscriptionData(_EventData):
    subscription_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("subscriptionId", "subscription_id", "id")
    )
    plan: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("plan", "planName", "productName")
    )
    status: Optional[str] = None
    billing_cycle: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("billingCycle", "billing_cycle", "billingPeriod")
    )
    current_period_start: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("currentPeriodStart", "current_period_start")
    )
    current_period_end: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("currentPeriodEnd", "current_period_end")
    )
    cancel_at_period_end: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("cancelAtPeriodEnd", "cancel_at_period_end")
    )
    trial_start: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("trialStart", "trial_start")
    )
    trial_end: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("trialEnd", "trial_end")
    )


class LicenseData(_EventData):
    license_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("licenseId", "license_id", "id")
    )
    license_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("licenseKey", "license_key", "key")
    )
    activated_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("activatedAt", "activated_at")
    )


class TransactionData(_EventData):
    transaction_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("transactionId", "transaction_id", "id")
    )
    subscription_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("subscriptionId", "subscription_id")
    )
    amount: Optional[int] = None
    currency: str = "USD"
    payment_method: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("paymentMethod", "payment_method")
    )


class RefundData(_EventData):
    refund_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("refundId", "refund_id", "id")
    )
    transaction_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("transactionId", "transaction_id")
    )
    subscription_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("subscriptionId", "subscription_id")
    )
    amount: Optional[int] = None


EventData = Union[CheckoutData, SubscriptionData, LicenseData, TransactionData, RefundData]

EVENT_DATA_SCHEMAS: Dict[WebhookEventType, Type[BaseModel]] = {
    WebhookEventType.CHECKOUT_COMPLETED: CheckoutData,
    WebhookEventType.CHECKOUT_EXPIRED: CheckoutData,
    WebhookEventType.SUBSCRIPTION_CREATED: SubscriptionData,
    WebhookEventType.SUBSCRIPTION_UPDATED: SubscriptionData,
    WebhookEventType.SUBSCRIPTION_CANCELLED: SubscriptionData,
    WebhookEventType.SUBSCRIPTION_RENEWED: SubscriptionData,
    WebhookEventType.LICENSE_ACTIVATED: LicenseData,
    WebhookEventType.LICENSE_DEACTIVATED: LicenseData,
    WebhookEventType.TRANSACTION_COMPLETED: TransactionData,
    WebhookEventType.TRANSACTION_FAILED: TransactionData,
    WebhookEventType.REFUND_PROCESSED: RefundData,
}


def decode_event_data(event_type: WebhookEventType, data: Dict[str, Any]) -> EventData:
    """Validate `data` against its event family's schema (raises pydantic.ValidationError)"""
    return EVENT_DATA_SCHEMAS[event_type].model_validate(data)
