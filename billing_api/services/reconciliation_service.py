"""
Reconciliation of Creem lifecycle events onto local users, subscriptions,
payments and license flags.

Every handler is idempotent: creations are keyed by the provider's ids and
updates set absolute values, so redelivered events converge on the same rows.
Handlers raise ReconciliationError for domain problems; `apply` turns any
failure into a failed ReconciliationResult instead of propagating it.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from billing_api.core.exceptions import ReconciliationError
from billing_api.crud import payment_crud, subscription_crud, user_settings_crud
from billing_api.models.base import utcnow
from billing_api.models.payment import Payment, PaymentStatus
from billing_api.models.subscription import (
    BillingCycle,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)
from billing_api.models.user import User
from billing_api.schemas.billing import PaymentCreate, SubscriptionCreate
from billing_api.schemas.webhook import (
    CheckoutData,
    EventData,
    LicenseData,
    RefundData,
    SubscriptionData,
    TransactionData,
    WebhookEventType,
)
from billing_api.services.user_resolver import UserResolver

logger = logging.getLogger(__name__)

PLAN_MAPPING = {
    "basic": SubscriptionPlan.STARTER,
    "starter": SubscriptionPlan.STARTER,
    "free": SubscriptionPlan.STARTER,
    "pro": SubscriptionPlan.PRO,
    "business": SubscriptionPlan.BUSINESS,
    "enterprise": SubscriptionPlan.ENTERPRISE,
}

CENTS = Decimal("0.01")


def cents_to_decimal(amount: Optional[int]) -> Decimal:
    """Provider amounts are integer minor units: 2999 -> Decimal('29.99')"""
    return (Decimal(amount or 0) / Decimal(100)).quantize(CENTS, rounding=ROUND_HALF_UP)


def map_plan(plan_name: Optional[str]) -> SubscriptionPlan:
    if not plan_name:
        return SubscriptionPlan.STARTER
    return PLAN_MAPPING.get(plan_name.strip().lower(), SubscriptionPlan.STARTER)


def map_status(
    provider_status: Optional[str],
    trial_start: Any = None,
    trial_end: Any = None
) -> SubscriptionStatus:
    if trial_start and trial_end:
        return SubscriptionStatus.TRIALING
    status = (provider_status or "").strip().lower()
    if status in ("cancelled", "canceled", "expired"):
        return SubscriptionStatus.CANCELED
    if status == "past_due":
        return SubscriptionStatus.PAST_DUE
    return SubscriptionStatus.ACTIVE


def map_billing_cycle(value: Optional[str]) -> BillingCycle:
    value = (value or "").lower()
    if "year" in value or "annual" in value:
        return BillingCycle.YEARLY
    return BillingCycle.MONTHLY


def mask_license_key(license_key: str) -> str:
    return f"{license_key[:8]}..." if len(license_key) > 8 else "****"


@dataclass
class ReconciliationResult:
    event_type: str
    success: bool
    action: str
    detail: Optional[str] = None
    user_id: Optional[UUID] = None
    resource_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "success": self.success,
            "action": self.action,
            "detail": self.detail,
            "user_id": str(self.user_id) if self.user_id else None,
            "resource_id": self.resource_id,
        }


class ReconciliationService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserResolver(db)
        self._handlers: Dict[WebhookEventType, Callable[[Any], Awaitable[ReconciliationResult]]] = {
            WebhookEventType.CHECKOUT_COMPLETED: self.handle_checkout_completed,
            WebhookEventType.CHECKOUT_EXPIRED: self.handle_checkout_expired,
            WebhookEventType.SUBSCRIPTION_CREATED: self.handle_subscription_created,
            WebhookEventType.SUBSCRIPTION_UPDATED: self.handle_subscription_updated,
            WebhookEventType.SUBSCRIPTION_CANCELLED: self.handle_subscription_cancelled,
            WebhookEventType.SUBSCRIPTION_RENEWED: self.handle_subscription_renewed,
            WebhookEventType.LICENSE_ACTIVATED: self.handle_license_activated,
            WebhookEventType.LICENSE_DEACTIVATED: self.handle_license_deactivated,
            WebhookEventType.TRANSACTION_COMPLETED: self.handle_transaction_completed,
            WebhookEventType.TRANSACTION_FAILED: self.handle_transaction_failed,
            WebhookEventType.REFUND_PROCESSED: self.handle_refund_processed,
        }

    async def apply(self, event_type: WebhookEventType, data: EventData) -> ReconciliationResult:
        """Run the handler for `event_type`; failures come back as a failed result"""
        handler = self._handlers[event_type]
        try:
            return await handler(data)
        except ReconciliationError as e:
            logger.warning("Reconciliation of %s dropped: %s", event_type.value, e.message)
            return ReconciliationResult(event_type.value, False, "dropped", detail=e.message)
        except Exception as e:
            logger.exception("Error handling %s: %s", event_type.value, str(e))
            await self._rollback()
            return ReconciliationResult(event_type.value, False, "error", detail=str(e))

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except Exception as e:
            logger.debug("Rollback failed: %s", e)

    # Lookups

    @staticmethod
    def _require_email(data: EventData, event_type: WebhookEventType) -> str:
        if not data.customer_email:
            raise ReconciliationError("missing customer email", event_type=event_type.value)
        return data.customer_email

    async def _require_user(self, data: EventData, event_type: WebhookEventType) -> User:
        email = self._require_email(data, event_type)
        user = await self.users.resolve(email)
        if user is None:
            raise ReconciliationError(f"user not found for {email}", event_type=event_type.value)
        return user

    async def _target_subscription(self, user_id: UUID, external_id: Optional[str]) -> Optional[Subscription]:
        """Row matching the provider id, else the user's most recently created subscription"""
        if external_id:
            subscription = await subscription_crud.get_by_external_id(self.db, external_id, user_id=user_id)
            if subscription:
                return subscription
        return await subscription_crud.get_latest_for_user(self.db, user_id)

    async def _require_subscription(self, user: User, data: SubscriptionData, event_type: WebhookEventType) -> Subscription:
        subscription = await self._target_subscription(user.id, data.subscription_id)
        if subscription is None:
            raise ReconciliationError(f"no subscription for user {user.id}", event_type=event_type.value)
        return subscription

    async def _find_payment(self, transaction_id: Optional[str], email: Optional[str]) -> Optional[Payment]:
        # fall back to the user's latest payment only when the event has no transaction id
        if transaction_id:
            return await payment_crud.get_by_transaction_id(self.db, transaction_id)
        user = await self.users.resolve(email)
        if user is None:
            return None
        return await payment_crud.get_latest_for_user(self.db, user.id)

    # Checkout

    async def handle_checkout_completed(self, data: CheckoutData) -> ReconciliationResult:
        event_type = WebhookEventType.CHECKOUT_COMPLETED
        email = self._require_email(data, event_type)
        if not data.checkout_id:
            raise ReconciliationError("missing checkout id", event_type=event_type.value)

        resolved = await self.users.get_or_create(email, data.customer_name)
        if resolved is None:
            raise ReconciliationError(f"could not resolve user for {email}", event_type=event_type.value)

        payment, created = await payment_crud.upsert_by_transaction_id(
            self.db,
            obj_in=PaymentCreate(
                user_id=resolved.id,
                amount=cents_to_decimal(data.amount),
                currency=(data.currency or "USD").upper(),
                status=PaymentStatus.COMPLETED,
                transaction_id=data.checkout_id,
                payment_method=data.payment_method,
            ),
        )
        logger.info("Checkout %s recorded as payment %s", data.checkout_id, payment.id)
        return ReconciliationResult(
            event_type.value, True, "payment_created" if created else "payment_updated",
            user_id=resolved.id, resource_id=str(payment.id),
        )

    async def handle_checkout_expired(self, data: CheckoutData) -> ReconciliationResult:
        event_type = WebhookEventType.CHECKOUT_EXPIRED
        if not data.checkout_id:
            raise ReconciliationError("missing checkout id", event_type=event_type.value)

        payment = await payment_crud.get_by_transaction_id(self.db, data.checkout_id)
        if payment is None:
            logger.info("Expired checkout %s has no payment row", data.checkout_id)
            return ReconciliationResult(event_type.value, True, "no_matching_payment")

        await payment_crud.update(self.db, db_obj=payment, obj_in={"status": PaymentStatus.FAILED})
        return ReconciliationResult(
            event_type.value, True, "payment_failed", user_id=payment.user_id, resource_id=str(payment.id)
        )

    # Subscriptions

    async def handle_subscription_created(self, data: SubscriptionData) -> ReconciliationResult:
        event_type = WebhookEventType.SUBSCRIPTION_CREATED
        email = self._require_email(data, event_type)
        resolved = await self.users.get_or_create(email, data.customer_name)
        if resolved is None:
            raise ReconciliationError(f"could not resolve user for {email}", event_type=event_type.value)

        values = SubscriptionCreate(
            user_id=resolved.id,
            plan=map_plan(data.plan),
            status=map_status(data.status, data.trial_start, data.trial_end),
            billing_cycle=map_billing_cycle(data.billing_cycle),
            external_subscription_id=data.subscription_id,
            current_period_start=data.current_period_start,
            current_period_end=data.current_period_end,
            cancel_at_period_end=bool(data.cancel_at_period_end),
        )

        if data.subscription_id:
            existing = await subscription_crud.get_by_external_id(self.db, data.subscription_id, user_id=resolved.id)
            if existing:
                # replay of an event we already applied
                subscription = await subscription_crud.update(
                    self.db, db_obj=existing, obj_in=values.model_dump(exclude={"user_id"}, exclude_none=True)
                )
                return ReconciliationResult(
                    event_type.value, True, "subscription_updated",
                    user_id=resolved.id, resource_id=str(subscription.id),
                )

        subscription = await subscription_crud.create(self.db, obj_in=values)
        logger.info("Created %s subscription %s for user %s", subscription.plan.value, subscription.id, resolved.id)
        return ReconciliationResult(
            event_type.value, True, "subscription_created", user_id=resolved.id, resource_id=str(subscription.id)
        )

    async def handle_subscription_updated(self, data: SubscriptionData) -> ReconciliationResult:
        event_type = WebhookEventType.SUBSCRIPTION_UPDATED
        user = await self._require_user(data, event_type)
        subscription = await self._require_subscription(user, data, event_type)

        patch: Dict[str, Any] = {}
        if data.status:
            patch["status"] = map_status(data.status, data.trial_start, data.trial_end)
        if data.current_period_start:
            patch["current_period_start"] = data.current_period_start
        if data.current_period_end:
            patch["current_period_end"] = data.current_period_end
        if data.cancel_at_period_end is not None:
            patch["cancel_at_period_end"] = data.cancel_at_period_end
        if data.plan:
            patch["plan"] = map_plan(data.plan)
        if data.subscription_id and not subscription.external_subscription_id:
            patch["external_subscription_id"] = data.subscription_id

        if not patch:
            return ReconciliationResult(
                event_type.value, True, "no_changes", user_id=user.id, resource_id=str(subscription.id)
            )

        await subscription_crud.update(self.db, db_obj=subscription, obj_in=patch)
        return ReconciliationResult(
            event_type.value, True, "subscription_updated", user_id=user.id, resource_id=str(subscription.id)
        )

    async def handle_subscription_cancelled(self, data: SubscriptionData) -> ReconciliationResult:
        event_type = WebhookEventType.SUBSCRIPTION_CANCELLED
        user = await self._require_user(data, event_type)
        subscription = await self._require_subscription(user, data, event_type)

        await subscription_crud.update(
            self.db,
            db_obj=subscription,
            obj_in={
                "status": SubscriptionStatus.CANCELED,
                "cancel_at_period_end": bool(data.cancel_at_period_end),
            },
        )
        return ReconciliationResult(
            event_type.value, True, "subscription_canceled", user_id=user.id, resource_id=str(subscription.id)
        )

    async def handle_subscription_renewed(self, data: SubscriptionData) -> ReconciliationResult:
        event_type = WebhookEventType.SUBSCRIPTION_RENEWED
        user = await self._require_user(data, event_type)
        subscription = await self._require_subscription(user, data, event_type)

        patch: Dict[str, Any] = {"status": SubscriptionStatus.ACTIVE}
        if data.current_period_start:
            patch["current_period_start"] = data.current_period_start
        if data.current_period_end:
            patch["current_period_end"] = data.current_period_end

        await subscription_crud.update(self.db, db_obj=subscription, obj_in=patch)
        return ReconciliationResult(
            event_type.value, True, "subscription_renewed", user_id=user.id, resource_id=str(subscription.id)
        )

    # Licenses

    async def handle_license_activated(self, data: LicenseData) -> ReconciliationResult:
        event_type = WebhookEventType.LICENSE_ACTIVATED
        user = await self._require_user(data, event_type)

        values: Dict[str, Any] = {
            "license_activated": True,
            "license_activated_at": (data.activated_at or utcnow()).isoformat(),
        }
        if data.license_key:
            values["license_key"] = mask_license_key(data.license_key)

        await user_settings_crud.merge(self.db, user.id, values)
        return ReconciliationResult(
            event_type.value, True, "license_activated", user_id=user.id, resource_id=data.license_id
        )

    async def handle_license_deactivated(self, data: LicenseData) -> ReconciliationResult:
        event_type = WebhookEventType.LICENSE_DEACTIVATED
        user = await self._require_user(data, event_type)

        await user_settings_crud.merge(
            self.db,
            user.id,
            {"license_activated": False, "license_deactivated_at": utcnow().isoformat()},
        )
        return ReconciliationResult(
            event_type.value, True, "license_deactivated", user_id=user.id, resource_id=data.license_id
        )

    # Transactions

    async def handle_transaction_completed(self, data: TransactionData) -> ReconciliationResult:
        event_type = WebhookEventType.TRANSACTION_COMPLETED
        if not data.transaction_id:
            raise ReconciliationError("missing transaction id", event_type=event_type.value)
        user = await self._require_user(data, event_type)

        subscription = await self._target_subscription(user.id, data.subscription_id)
        payment, created = await payment_crud.upsert_by_transaction_id(
            self.db,
            obj_in=PaymentCreate(
                user_id=user.id,
                subscription_id=subscription.id if subscription else None,
                amount=cents_to_decimal(data.amount),
                currency=(data.currency or "USD").upper(),
                status=PaymentStatus.COMPLETED,
                transaction_id=data.transaction_id,
                payment_method=data.payment_method,
            ),
        )
        return ReconciliationResult(
            event_type.value, True, "payment_created" if created else "payment_updated",
            user_id=user.id, resource_id=str(payment.id),
        )

    async def handle_transaction_failed(self, data: TransactionData) -> ReconciliationResult:
        event_type = WebhookEventType.TRANSACTION_FAILED
        payment = await self._find_payment(data.transaction_id, data.customer_email)
        if payment is None:
            raise ReconciliationError("no payment matches failed transaction", event_type=event_type.value)

        await payment_crud.update(self.db, db_obj=payment, obj_in={"status": PaymentStatus.FAILED})
        return ReconciliationResult(
            event_type.value, True, "payment_failed", user_id=payment.user_id, resource_id=str(payment.id)
        )

    async def handle_refund_processed(self, data: RefundData) -> ReconciliationResult:
        event_type = WebhookEventType.REFUND_PROCESSED
        payment = await self._find_payment(data.transaction_id, data.customer_email)
        if payment is not None:
            await payment_crud.update(self.db, db_obj=payment, obj_in={"status": PaymentStatus.REFUNDED})

        canceled: Optional[Subscription] = None
        if data.subscription_id and data.customer_email:
            user = await self.users.resolve(data.customer_email)
            if user is not None:
                canceled = await self._target_subscription(user.id, data.subscription_id)
                if canceled is not None:
                    await subscription_crud.update(
                        self.db, db_obj=canceled, obj_in={"status": SubscriptionStatus.CANCELED}
                    )

        if payment is None and canceled is None:
            raise ReconciliationError("no payment or subscription matches refund", event_type=event_type.value)

        action = "payment_refunded" if payment is not None else "subscription_canceled"
        if payment is not None and canceled is not None:
            action = "payment_refunded_subscription_canceled"
        return ReconciliationResult(
            event_type.value, True, action,
            user_id=payment.user_id if payment is not None else canceled.user_id,
            resource_id=str(payment.id) if payment is not None else str(canceled.id),
        )
