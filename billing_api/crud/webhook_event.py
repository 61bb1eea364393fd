from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel

from billing_api.crud.base import CRUDBase
from billing_api.models.base import utcnow
from billing_api.models.webhook_event import WebhookEventRecord, WebhookEventStatus


class WebhookEventCreate(BaseModel):
    event_id: str
    event_type: str
    status: WebhookEventStatus
    action: Optional[str] = None
    error_message: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    # processed_at set server-side when saving


class CRUDWebhookEvent(CRUDBase[WebhookEventRecord, WebhookEventCreate, BaseModel]):
    async def get_by_event_id(self, db: AsyncSession, event_id: str) -> Optional[WebhookEventRecord]:
        result = await db.execute(
            select(self.model).where(self.model.event_id == event_id)
        )
        return result.scalar_one_or_none()

    async def record(self, db: AsyncSession, *, obj_in: WebhookEventCreate) -> WebhookEventRecord:
        """Insert or update the row for an event id, counting delivery attempts"""
        data = obj_in.model_dump()
        data["processed_at"] = utcnow()
        existing = await self.get_by_event_id(db, obj_in.event_id)
        if existing:
            data["attempts"] = (existing.attempts or 0) + 1
            return await self.update(db, db_obj=existing, obj_in=data)
        return await self.create(db, obj_in=data)

    async def list_failed(self, db: AsyncSession, *, skip: int = 0, limit: int = 50) -> Tuple[List[WebhookEventRecord], int]:
        return await self.get_multi(
            db,
            skip=skip,
            limit=limit,
            filters={"status": WebhookEventStatus.FAILED},
            order_by="updated_at",
        )


webhook_event_crud = CRUDWebhookEvent(WebhookEventRecord)
