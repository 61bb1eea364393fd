from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel

from billing_api.crud.base import CRUDBase
from billing_api.models.user import User, UserRole
from billing_api.schemas.billing import UserCreate


class CRUDUser(CRUDBase[User, UserCreate, BaseModel]):
    async def get_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        """Case-insensitive lookup; emails are stored lower-cased"""
        result = await db.execute(
            select(self.model).where(self.model.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def admin_exists(self, db: AsyncSession) -> bool:
        return await self.count(db, filters={"role": UserRole.ADMIN}) > 0


user_crud = CRUDUser(User)
