"""
Best-effort audit trail writer. Activity logging must never break the
request that triggered it, so every failure is logged and swallowed here.
"""
import logging
from typing import Any, Dict, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from billing_api.crud import activity_log_crud
from billing_api.schemas.billing import ActivityLogCreate

logger = logging.getLogger(__name__)


def _as_uuid(value: Union[str, UUID, None]) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


async def log_activity(
    db: Optional[AsyncSession],
    action: str,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    user_id: Union[str, UUID, None] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> bool:
    """Append an activity_logs row. Returns False (never raises) when it could not be written."""
    if db is None:
        return False

    try:
        await activity_log_crud.create(
            db,
            obj_in=ActivityLogCreate(
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                user_id=_as_uuid(user_id),
                ip_address=ip_address,
                user_agent=user_agent,
                meta_data=metadata or {},
            ),
        )
        return True
    except Exception as e:
        logger.warning("⚠️ Failed to log activity %s (non-critical): %s", action, str(e))
        try:
            await db.rollback()
        except Exception as rollback_error:
            logger.debug("Rollback after activity log failure also failed: %s", rollback_error)
        return False


def extract_request_info(request) -> Dict[str, Optional[str]]:
    """Client IP (first X-Forwarded-For hop, then X-Real-IP) and user agent"""
    headers = request.headers
    forwarded = headers.get("x-forwarded-for")
    ip_address = None
    if forwarded:
        ip_address = forwarded.split(",")[0].strip() or None
    if not ip_address:
        ip_address = headers.get("x-real-ip") or None
    if not ip_address and getattr(request, "client", None) is not None:
        ip_address = getattr(request.client, "host", None)

    return {
        "ip_address": ip_address,
        "user_agent": headers.get("user-agent") or None,
    }
