from typing import Optional, Sequence
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_

from billing_api.crud.base import CRUDBase
from billing_api.models.subscription import Subscription, SubscriptionStatus
from billing_api.schemas.billing import SubscriptionCreate, SubscriptionUpdate


class CRUDSubscription(CRUDBase[Subscription, SubscriptionCreate, SubscriptionUpdate]):
    async def get_latest_for_user(
        self,
        db: AsyncSession,
        user_id: UUID,
        statuses: Optional[Sequence[SubscriptionStatus]] = None
    ) -> Optional[Subscription]:
        """Most recently created subscription of a user, optionally restricted by status"""
        filters = {"user_id": user_id}
        if statuses:
            filters["status"] = list(statuses)
        return await self.get_latest(db, filters=filters)

    async def get_by_external_id(
        self,
        db: AsyncSession,
        external_subscription_id: str,
        user_id: Optional[UUID] = None
    ) -> Optional[Subscription]:
        conditions = [self.model.external_subscription_id == external_subscription_id]
        if user_id is not None:
            conditions.append(self.model.user_id == user_id)
        result = await db.execute(
            select(self.model)
            .where(and_(*conditions))
            .order_by(self.model.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_active_for_user(self, db: AsyncSession, user_id: UUID) -> Optional[Subscription]:
        """Get the active (or trialing) subscription for a user"""
        return await self.get_latest_for_user(
            db, user_id, statuses=[SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING]
        )


subscription_crud = CRUDSubscription(Subscription)
