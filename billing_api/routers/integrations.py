from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional
import logging

from billing_api.core.auth import require_admin_or_setup
from billing_api.core.exceptions import ValidationError
from billing_api.models.user import User
from billing_api.services.config_store import ConfigStore, get_config_store, mask_config

logger = logging.getLogger(__name__)

router = APIRouter()


class IntegrationSaveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    integration_id: Optional[str] = Field(default=None, alias="integrationId")
    config: Dict[str, Any] = Field(default_factory=dict)


def _masked(entry: Dict[str, Any]) -> Dict[str, Any]:
    return {**entry, "config": mask_config(entry.get("config") or {})}


@router.get("")
async def list_integrations(
    admin: Optional[User] = Depends(require_admin_or_setup),
    store: ConfigStore = Depends(get_config_store)
):
    try:
        entries = await store.list()
        return {"integrations": [_masked(e) for e in entries]}
    except Exception as e:
        logger.error("Error fetching integrations: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch integrations"
        )


@router.post("")
async def save_integration(
    request: IntegrationSaveRequest,
    admin: Optional[User] = Depends(require_admin_or_setup),
    store: ConfigStore = Depends(get_config_store)
):
    if not request.integration_id:
        raise ValidationError("Integration ID is required")

    try:
        entry = await store.save(request.integration_id, request.config)
    except Exception as e:
        logger.error("Error saving integration %s: %s", request.integration_id, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save integration configuration"
        )

    if request.config.get("enabled"):
        logger.info(
            "Integration %s enabled (api key: %s, secret: %s)",
            request.integration_id,
            bool(request.config.get("apiKey")),
            bool(request.config.get("secretKey")),
        )

    return {
        "success": True,
        "message": "Integration configuration saved successfully",
        "integration": _masked(entry),
    }
