from fastapi import APIRouter, Depends, Request, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from datetime import datetime, timezone
import logging

from billing_api.core.config import settings
from billing_api.core.database import get_optional_db
from billing_api.core.auth import require_admin
from billing_api.core.exceptions import ServiceUnavailableError, WebhookParseError, handle_database_errors
from billing_api.crud import webhook_event_crud
from billing_api.models.user import User
from billing_api.schemas.webhook import parse_event
from billing_api.services.activity_logger import extract_request_info, log_activity
from billing_api.services.webhook_service import WebhookService
from billing_api.services.webhook_signature import extract_signature, verify

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/creem")
async def creem_webhook(
    request: Request,
    db: Optional[AsyncSession] = Depends(get_optional_db)
):
    """
    Handle Creem webhook events.
    Always answers 200 once the signature and event structure are valid, so
    the provider does not retry events whose reconciliation failed locally.
    """
    try:
        payload = await request.body()

        secret = settings.creem_webhook_secret
        if secret:
            signature = extract_signature(request.headers)
            if not signature:
                logger.error("Webhook secret configured but no signature header present")
                return JSONResponse(status_code=401, content={"error": "Signature required"})
            if not verify(payload, signature, secret):
                logger.error("Invalid Creem webhook signature")
                return JSONResponse(status_code=401, content={"error": "Invalid signature"})
        else:
            logger.debug("CREEM_WEBHOOK_SECRET not set; accepting unsigned webhook")

        try:
            event = parse_event(payload)
        except WebhookParseError as e:
            logger.warning("Rejected webhook body: %s", e.message)
            return JSONResponse(status_code=400, content={"error": e.message})

        outcome = await WebhookService(db).process(event)

        request_info = extract_request_info(request)
        await log_activity(
            db,
            action=f"webhook.creem.{event.type}",
            resource_type="webhook",
            resource_id=event.id,
            user_id=outcome.user_id,
            ip_address=request_info["ip_address"],
            user_agent=request_info["user_agent"],
            metadata={
                "event_type": event.type,
                "event_id": event.id,
                "data": event.data,
                "outcome": outcome.status,
            },
        )

        return JSONResponse(content={"success": True, "message": outcome.message})
    except Exception as e:
        logger.exception("Creem webhook processing failed")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": str(e) or "Failed to process webhook"}
        )


@router.get("/creem")
async def creem_webhook_info():
    return JSONResponse(content={
        "message": "Creem webhook endpoint is active",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


@router.get("/creem/failures")
@handle_database_errors
async def list_failed_webhooks(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    admin: User = Depends(require_admin),
    db: Optional[AsyncSession] = Depends(get_optional_db)
):
    """Recent webhook events whose reconciliation failed"""
    if db is None:
        raise ServiceUnavailableError()

    records, total = await webhook_event_crud.list_failed(db, skip=skip, limit=limit)
    return {
        "total": total,
        "events": [
            {
                "eventId": r.event_id,
                "eventType": r.event_type,
                "action": r.action,
                "error": r.error_message,
                "attempts": r.attempts,
                "payload": r.payload,
                "processedAt": r.processed_at.isoformat() if r.processed_at else None,
            }
            for r in records
        ],
    }
