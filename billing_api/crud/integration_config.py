from typing import Any, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel

from billing_api.crud.base import CRUDBase
from billing_api.models.integration_config import IntegrationConfig


class CRUDIntegrationConfig(CRUDBase[IntegrationConfig, BaseModel, BaseModel]):
    async def upsert(self, db: AsyncSession, integration_id: str, config: Dict[str, Any]) -> IntegrationConfig:
        existing = await self.get(db, integration_id, raise_if_not_found=False)
        if existing:
            return await self.update(db, db_obj=existing, obj_in={"config": dict(config)})
        return await self.create(db, obj_in={"id": integration_id, "config": dict(config)})


integration_config_crud = CRUDIntegrationConfig(IntegrationConfig)
