from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from billing_api.core.auth import get_current_user
from billing_api.core.exceptions import CreemApiError, ServiceUnavailableError
from billing_api.schemas.auth import TokenData
from billing_api.schemas.creem import CheckoutCreateRequest, LicenseValidateRequest
from billing_api.services.creem_service import CreemService, get_creem_service

logger = logging.getLogger(__name__)

router = APIRouter()


def require_creem(creem: CreemService = Depends(get_creem_service)) -> CreemService:
    if not creem.is_configured:
        raise ServiceUnavailableError("Creem API")
    return creem


def _error_response(e: CreemApiError, fallback_code: str) -> JSONResponse:
    # Network errors carry status 0
    status_code = e.status_code if 400 <= e.status_code < 600 else 502
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": e.code or fallback_code, "message": e.message, "details": e.details},
        },
    )


@router.post("/checkout")
async def create_checkout(
    request: CheckoutCreateRequest,
    current_user: TokenData = Depends(get_current_user),
    creem: CreemService = Depends(require_creem)
):
    """Create a hosted checkout session"""
    payload = request.to_creem()
    if "customerEmail" not in payload and current_user.email:
        payload["customerEmail"] = current_user.email
    try:
        checkout = await creem.create_checkout(payload)
    except CreemApiError as e:
        logger.error("Creem checkout creation error: %s", e.message)
        return _error_response(e, "CHECKOUT_ERROR")
    return {"success": True, "data": checkout}


@router.get("/checkout")
async def get_checkout(
    checkout_id: str = Query(..., alias="checkoutId", min_length=1),
    current_user: TokenData = Depends(get_current_user),
    creem: CreemService = Depends(require_creem)
):
    try:
        checkout = await creem.get_checkout(checkout_id)
    except CreemApiError as e:
        logger.error("Creem checkout retrieval error: %s", e.message)
        return _error_response(e, "CHECKOUT_ERROR")
    return {"success": True, "data": checkout}


@router.get("/subscriptions/{subscription_id}")
async def get_subscription(
    subscription_id: str,
    current_user: TokenData = Depends(get_current_user),
    creem: CreemService = Depends(require_creem)
):
    try:
        subscription = await creem.get_subscription(subscription_id)
    except CreemApiError as e:
        logger.error("Creem subscription retrieval error: %s", e.message)
        return _error_response(e, "SUBSCRIPTION_ERROR")
    return {"success": True, "data": subscription}


@router.post("/licenses/validate")
async def validate_license(
    request: LicenseValidateRequest,
    current_user: TokenData = Depends(get_current_user),
    creem: CreemService = Depends(require_creem)
):
    try:
        result = await creem.validate_license(request.license_key)
    except CreemApiError as e:
        logger.error("Creem license validation error: %s", e.message)
        return _error_response(e, "LICENSE_ERROR")
    return {"success": True, "data": result}


@router.get("/products")
async def list_products(
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    search: Optional[str] = None,
    creem: CreemService = Depends(require_creem)
):
    """Product catalogue for the pricing page"""
    try:
        products = await creem.list_products(page=page, limit=limit, search=search)
    except CreemApiError as e:
        logger.error("Creem product listing error: %s", e.message)
        return _error_response(e, "PRODUCT_ERROR")
    return {"success": True, "data": products}
