from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from billing_api.core.auth import get_current_user
from billing_api.core.database import get_optional_db
from billing_api.core.exceptions import CreemApiError, NotFoundError, ServiceUnavailableError, handle_database_errors
from billing_api.crud import subscription_crud, user_crud
from billing_api.models.subscription import Subscription, SubscriptionStatus
from billing_api.models.user import User
from billing_api.schemas.auth import TokenData
from billing_api.schemas.billing import CancelSubscriptionRequest, UserSubscriptionInfo
from billing_api.services.activity_logger import extract_request_info, log_activity
from billing_api.services.creem_service import CreemService, get_creem_service

logger = logging.getLogger(__name__)

router = APIRouter()


async def _local_user(db: AsyncSession, current_user: TokenData) -> Optional[User]:
    if not current_user.email:
        return None
    return await user_crud.get_by_email(db, current_user.email)


async def _active_subscription(db: AsyncSession, current_user: TokenData) -> Optional[Subscription]:
    user = await _local_user(db, current_user)
    if user is None:
        return None
    return await subscription_crud.get_active_for_user(db, user.id)


@router.get("/subscription")
@handle_database_errors
async def get_user_subscription(
    current_user: TokenData = Depends(get_current_user),
    db: Optional[AsyncSession] = Depends(get_optional_db)
):
    """Current user's active (or trialing) subscription, or null"""
    if db is None:
        raise ServiceUnavailableError()

    try:
        subscription = await _active_subscription(db, current_user)
    except Exception as e:
        logger.error("Error fetching subscription for %s: %s", current_user.email, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch subscription: {str(e)}"
        )

    return {
        "success": True,
        "subscription": (
            UserSubscriptionInfo.from_subscription(subscription).model_dump(mode="json", by_alias=True)
            if subscription else None
        ),
    }


@router.post("/subscription/cancel")
async def cancel_user_subscription(
    request: Request,
    body: Optional[CancelSubscriptionRequest] = None,
    current_user: TokenData = Depends(get_current_user),
    db: Optional[AsyncSession] = Depends(get_optional_db),
    creem: CreemService = Depends(get_creem_service)
):
    """Cancel at period end, or immediately when cancelImmediately is set"""
    if db is None:
        raise ServiceUnavailableError()

    cancel_immediately = bool(body and body.cancel_immediately)
    try:
        subscription = await _active_subscription(db, current_user)
        if subscription is None:
            raise NotFoundError("Active subscription")

        if subscription.cancel_at_period_end and not cancel_immediately:
            return {
                "success": True,
                "message": "Subscription is already set to cancel at period end",
                "alreadyCancelled": True,
            }

        update_data = {"cancel_at_period_end": not cancel_immediately}
        if cancel_immediately:
            update_data["status"] = SubscriptionStatus.CANCELED
        subscription = await subscription_crud.update(db, db_obj=subscription, obj_in=update_data)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error cancelling subscription for %s: %s", current_user.email, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to cancel subscription: {str(e)}"
        )

    provider_cancelled = False
    if subscription.external_subscription_id and creem.is_configured:
        try:
            await creem.cancel_subscription(
                subscription.external_subscription_id,
                cancel_immediately=cancel_immediately,
            )
            provider_cancelled = True
        except CreemApiError as e:
            # Local state already reflects the cancellation
            logger.warning("Failed to cancel %s in Creem (non-critical): %s", subscription.external_subscription_id, e.message)

    request_info = extract_request_info(request)
    await log_activity(
        db,
        action="user.subscription.cancelled",
        resource_type="subscription",
        resource_id=str(subscription.id),
        user_id=subscription.user_id,
        ip_address=request_info["ip_address"],
        user_agent=request_info["user_agent"],
        metadata={
            "plan": subscription.plan.value,
            "cancel_immediately": cancel_immediately,
            "cancel_at_period_end": not cancel_immediately,
            "provider_cancelled": provider_cancelled,
        },
    )

    return {
        "success": True,
        "message": (
            "Subscription cancelled immediately"
            if cancel_immediately
            else "Subscription will be cancelled at the end of the billing period"
        ),
        "subscription": {
            "id": str(subscription.id),
            "cancelAtPeriodEnd": subscription.cancel_at_period_end,
            "status": subscription.status.value,
        },
    }
