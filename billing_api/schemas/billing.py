from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from billing_api.models.user import UserRole
from billing_api.models.subscription import SubscriptionPlan, SubscriptionStatus, BillingCycle
from billing_api.models.payment import PaymentStatus


# User Schemas
class UserCreate(BaseModel):
    email: str
    full_name: Optional[str] = None
    role: UserRole = UserRole.USER
    email_verified: bool = False


# Subscription Schemas
class SubscriptionCreate(BaseModel):
    user_id: UUID
    plan: SubscriptionPlan
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    external_subscription_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False


class SubscriptionUpdate(BaseModel):
    plan: Optional[SubscriptionPlan] = None
    status: Optional[SubscriptionStatus] = None
    external_subscription_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: Optional[bool] = None


# Payment Schemas
class PaymentCreate(BaseModel):
    user_id: UUID
    amount: Decimal
    currency: str = "USD"
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    subscription_id: Optional[UUID] = None
    payment_method: Optional[str] = None


# Activity log
class ActivityLogCreate(BaseModel):
    action: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    user_id: Optional[UUID] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    meta_data: Dict[str, Any] = Field(default_factory=dict)


# User subscription endpoint responses (camelCase for the dashboard)
PLAN_DISPLAY_NAMES = {
    SubscriptionPlan.STARTER: "Basic",
    SubscriptionPlan.PRO: "Pro",
    SubscriptionPlan.BUSINESS: "Business",
    SubscriptionPlan.ENTERPRISE: "Enterprise",
}


class UserSubscriptionInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    plan: SubscriptionPlan
    plan_display_name: str = Field(serialization_alias="planDisplayName")
    status: SubscriptionStatus
    billing_cycle: BillingCycle = Field(serialization_alias="billingCycle")
    current_period_start: Optional[datetime] = Field(default=None, serialization_alias="currentPeriodStart")
    current_period_end: Optional[datetime] = Field(default=None, serialization_alias="currentPeriodEnd")
    cancel_at_period_end: bool = Field(serialization_alias="cancelAtPeriodEnd")
    is_trial: bool = Field(serialization_alias="isTrial")
    created_at: datetime = Field(serialization_alias="createdAt")

    @classmethod
    def from_subscription(cls, subscription) -> "UserSubscriptionInfo":
        return cls(
            id=subscription.id,
            plan=subscription.plan,
            plan_display_name=PLAN_DISPLAY_NAMES.get(subscription.plan, str(subscription.plan)),
            status=subscription.status,
            billing_cycle=subscription.billing_cycle,
            current_period_start=subscription.current_period_start,
            current_period_end=subscription.current_period_end,
            cancel_at_period_end=subscription.cancel_at_period_end,
            is_trial=subscription.status == SubscriptionStatus.TRIALING,
            created_at=subscription.created_at,
        )


class CancelSubscriptionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cancel_immediately: bool = Field(default=False, alias="cancelImmediately")
