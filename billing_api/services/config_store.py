"""
Integration configuration storage.

Configs are plain JSON objects keyed by integration id ("supabase", "creem", ...).
The database store persists them in integration_configs; the in-memory store
keeps them for the process lifetime and is used when no database is configured.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from billing_api.core.database import get_optional_db
from billing_api.crud import integration_config_crud
from billing_api.models.base import utcnow

logger = logging.getLogger(__name__)

SECRET_MARKERS = ("key", "secret", "password", "token", "databaseurl", "database_url")


def is_secret_field(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in SECRET_MARKERS)


def mask_secret(value: Any) -> Any:
    if not isinstance(value, str) or not value:
        return value
    if len(value) <= 8:
        return "****"
    return f"****{value[-4:]}"


def mask_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a config with secret-looking values masked, recursing into nested objects"""
    masked = {}
    for name, value in (config or {}).items():
        if isinstance(value, dict):
            masked[name] = mask_config(value)
        elif is_secret_field(name):
            masked[name] = mask_secret(value)
        else:
            masked[name] = value
    return masked


def _entry(integration_id: str, config: Dict[str, Any], updated_at: Optional[datetime]) -> Dict[str, Any]:
    return {
        "id": integration_id,
        "config": config,
        "updatedAt": updated_at.isoformat() if updated_at else None,
    }


class ConfigStore(ABC):
    """Keyed store of integration configs"""

    @abstractmethod
    async def get(self, integration_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def list(self) -> List[Dict[str, Any]]:
        """All entries as {id, config, updatedAt}"""

    @abstractmethod
    async def save(self, integration_id: str, config: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the config of an integration and return the stored entry"""

    @property
    def persistent(self) -> bool:
        return False


class InMemoryConfigStore(ConfigStore):
    def __init__(self):
        self._entries: Dict[str, Dict[str, Any]] = {}

    async def get(self, integration_id: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(integration_id)
        return dict(entry["config"]) if entry else None

    async def list(self) -> List[Dict[str, Any]]:
        return [dict(entry) for entry in self._entries.values()]

    async def save(self, integration_id: str, config: Dict[str, Any]) -> Dict[str, Any]:
        entry = _entry(integration_id, dict(config or {}), utcnow())
        self._entries[integration_id] = entry
        return dict(entry)

    def clear(self) -> None:
        self._entries.clear()


class DatabaseConfigStore(ConfigStore):
    def __init__(self, db: AsyncSession):
        self.db = db

    @property
    def persistent(self) -> bool:
        return True

    async def get(self, integration_id: str) -> Optional[Dict[str, Any]]:
        row = await integration_config_crud.get(self.db, integration_id, raise_if_not_found=False)
        return dict(row.config or {}) if row else None

    async def list(self) -> List[Dict[str, Any]]:
        rows, _ = await integration_config_crud.get_multi(self.db, limit=100, order_by="id", order_desc=False)
        return [_entry(row.id, dict(row.config or {}), row.updated_at) for row in rows]

    async def save(self, integration_id: str, config: Dict[str, Any]) -> Dict[str, Any]:
        row = await integration_config_crud.upsert(self.db, integration_id, config or {})
        logger.info("Saved integration config %s", integration_id)
        return _entry(row.id, dict(row.config or {}), row.updated_at)


# Process-lifetime fallback when no database is configured
memory_config_store = InMemoryConfigStore()


async def get_config_store(db: Optional[AsyncSession] = Depends(get_optional_db)) -> ConfigStore:
    if db is None:
        return memory_config_store
    return DatabaseConfigStore(db)
