import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from billing_api.crud import webhook_event_crud
from billing_api.crud.webhook_event import WebhookEventCreate
from billing_api.models.webhook_event import WebhookEventRecord, WebhookEventStatus
from billing_api.schemas.webhook import WebhookEnvelope, decode_event_data
from billing_api.services.reconciliation_service import ReconciliationResult, ReconciliationService

logger = logging.getLogger(__name__)

DEGRADED_MODE_WARNING = "Supabase not configured — webhook handlers will be limited"

OUTCOME_MESSAGES = {
    "processed": "Webhook processed successfully",
    "failed": "Webhook accepted; reconciliation failed and was recorded",
    "duplicate": "Event already processed",
    "ignored": "Event type not handled",
    "skipped": "Webhook received; data store not configured",
}


@dataclass
class ProcessingOutcome:
    event_id: str
    event_type: str
    status: str  # processed | failed | duplicate | ignored | skipped
    result: Optional[ReconciliationResult] = None

    @property
    def message(self) -> str:
        return OUTCOME_MESSAGES[self.status]

    @property
    def user_id(self) -> Optional[UUID]:
        return self.result.user_id if self.result else None


class WebhookService:
    """Routes parsed Creem events to their reconciliation handler and records the outcome"""

    def __init__(self, db: Optional[AsyncSession]):
        self.db = db

    async def process(self, event: WebhookEnvelope) -> ProcessingOutcome:
        event_type = event.event_type
        if event_type is None:
            # future event types must not break delivery
            logger.warning("Unknown webhook event type: %s (event %s)", event.type, event.id)
            return ProcessingOutcome(event.id, event.type, "ignored")

        if self.db is None:
            logger.warning(DEGRADED_MODE_WARNING)
            return ProcessingOutcome(event.id, event.type, "skipped")

        logger.info("Processing Creem webhook event %s (%s)", event.type, event.id)

        previous = await self._previous_record(event.id)
        if previous is not None and previous.status == WebhookEventStatus.PROCESSED:
            logger.info("Event %s already processed, skipping", event.id)
            return ProcessingOutcome(event.id, event.type, "duplicate")

        try:
            data = decode_event_data(event_type, event.data)
        except ValidationError as e:
            result = ReconciliationResult(
                event.type, False, "invalid_payload", detail=f"invalid {event.type} payload: {e.error_count()} error(s)"
            )
            logger.warning("Event %s has an invalid payload: %s", event.id, e)
        else:
            result = await ReconciliationService(self.db).apply(event_type, data)

        await self._record(event, result)
        return ProcessingOutcome(event.id, event.type, "processed" if result.success else "failed", result)

    async def _previous_record(self, event_id: str) -> Optional[WebhookEventRecord]:
        try:
            return await webhook_event_crud.get_by_event_id(self.db, event_id)
        except Exception as e:
            logger.warning("Could not read webhook event log for %s: %s", event_id, str(e))
            await self._rollback()
            return None

    async def _record(self, event: WebhookEnvelope, result: ReconciliationResult) -> None:
        """Write the outcome to webhook_events; failed rows form the queryable error sink"""
        if not result.success:
            logger.error(
                "Webhook reconciliation failed: event_id=%s type=%s action=%s detail=%s",
                event.id, event.type, result.action, result.detail,
            )
        try:
            await webhook_event_crud.record(
                self.db,
                obj_in=WebhookEventCreate(
                    event_id=event.id,
                    event_type=event.type,
                    status=WebhookEventStatus.PROCESSED if result.success else WebhookEventStatus.FAILED,
                    action=result.action,
                    error_message=None if result.success else result.detail,
                    payload=None if result.success else event.data,
                ),
            )
        except Exception as e:
            logger.warning("⚠️ Failed to record webhook event %s (non-critical): %s", event.id, str(e))
            await self._rollback()

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except Exception as e:
            logger.debug("Rollback failed: %s", e)
