from typing import Any, Dict, Optional, Tuple
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from pydantic import BaseModel

from billing_api.crud.base import CRUDBase
from billing_api.models.payment import Payment
from billing_api.schemas.billing import PaymentCreate


class CRUDPayment(CRUDBase[Payment, PaymentCreate, BaseModel]):
    async def get_by_transaction_id(self, db: AsyncSession, transaction_id: str) -> Optional[Payment]:
        result = await db.execute(
            select(self.model).where(self.model.transaction_id == transaction_id)
        )
        return result.scalar_one_or_none()

    async def get_latest_for_user(self, db: AsyncSession, user_id: UUID) -> Optional[Payment]:
        return await self.get_latest(db, filters={"user_id": user_id})

    async def upsert_by_transaction_id(
        self,
        db: AsyncSession,
        *,
        obj_in: PaymentCreate
    ) -> Tuple[Payment, bool]:
        """
        Insert a payment, or update the existing row with the same transaction id.
        Returns (payment, created).
        """
        data: Dict[str, Any] = obj_in.model_dump(exclude_none=True)
        transaction_id = data.get("transaction_id")
        if transaction_id:
            existing = await self.get_by_transaction_id(db, transaction_id)
            if existing:
                return await self.update(db, db_obj=existing, obj_in=data), False

        try:
            return await self.create(db, obj_in=data), True
        except IntegrityError:
            # concurrent delivery inserted the same transaction first
            await db.rollback()
            if not transaction_id:
                raise
            existing = await self.get_by_transaction_id(db, transaction_id)
            if existing is None:
                raise
            return await self.update(db, db_obj=existing, obj_in=data), False


payment_crud = CRUDPayment(Payment)
