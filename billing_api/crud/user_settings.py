from typing import Any, Dict, Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel

from billing_api.crud.base import CRUDBase
from billing_api.models.user_settings import UserSettings


class CRUDUserSettings(CRUDBase[UserSettings, BaseModel, BaseModel]):
    async def get_by_user_id(self, db: AsyncSession, user_id: UUID) -> Optional[UserSettings]:
        result = await db.execute(select(self.model).where(self.model.user_id == user_id))
        return result.scalar_one_or_none()

    async def merge(self, db: AsyncSession, user_id: UUID, values: Dict[str, Any]) -> UserSettings:
        """Shallow-merge `values` into the user's settings blob, creating the row if needed"""
        row = await self.get_by_user_id(db, user_id)
        if row is None:
            return await self.create(db, obj_in={"user_id": user_id, "settings": dict(values)})
        # reassign so the JSON column is flagged dirty
        return await self.update(db, db_obj=row, obj_in={"settings": {**(row.settings or {}), **values}})


user_settings_crud = CRUDUserSettings(UserSettings)
