import httpx
import logging
from typing import Any, Dict, Optional

from billing_api.core.config import settings
from billing_api.core.exceptions import CreemApiError

logger = logging.getLogger(__name__)

PRODUCTION_BASE_URL = "https://api.creem.io"
TEST_BASE_URL = "https://test-api.creem.io"


class CreemService:
    """Thin async client for the Creem REST API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        test_mode: Optional[bool] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.creem_api_key if api_key is None else api_key
        test_mode = settings.creem_test_mode if test_mode is None else test_mode
        self.base_url = (base_url or settings.creem_base_url or (TEST_BASE_URL if test_mode else PRODUCTION_BASE_URL)).rstrip("/")
        self.timeout = settings.creem_api_timeout if timeout is None else timeout
        # Injected in tests (httpx.MockTransport)
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
        }

    async def request(self, method: str, endpoint: str, **kwargs) -> Any:
        """Send a request and return the unwrapped `data` field (or the whole body)"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{endpoint}",
                    headers=self._get_headers(),
                    **kwargs
                )
        except httpx.HTTPError as e:
            logger.error("Creem API request %s %s failed: %s", method, endpoint, e)
            raise CreemApiError(0, "NETWORK_ERROR", str(e) or "Network request failed")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        if response.is_error:
            error = body.get("error") if isinstance(body.get("error"), dict) else {}
            raise CreemApiError(
                response.status_code,
                error.get("code") or f"HTTP_{response.status_code}",
                error.get("message") or f"HTTP {response.status_code}: {response.reason_phrase}",
                error.get("details"),
            )

        return body["data"] if "data" in body else body

    # Checkouts

    async def create_checkout(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("POST", "/v1/checkouts", json=payload)

    async def get_checkout(self, checkout_id: str) -> Dict[str, Any]:
        return await self.request("GET", "/v1/checkouts", params={"id": checkout_id})

    # Subscriptions

    async def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return await self.request("GET", "/v1/subscriptions", params={"id": subscription_id})

    async def cancel_subscription(
        self,
        subscription_id: str,
        cancel_immediately: bool = False,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"cancelImmediately": cancel_immediately}
        if reason:
            payload["reason"] = reason
        return await self.request("POST", f"/v1/subscriptions/{subscription_id}/cancel", json=payload)

    # Licenses

    async def validate_license(self, license_key: str) -> Dict[str, Any]:
        return await self.request("POST", "/v1/licenses/validate", json={"licenseKey": license_key})

    # Products

    async def list_products(self, page: Optional[int] = None, limit: Optional[int] = None, search: Optional[str] = None) -> Any:
        params = {k: v for k, v in {"page": page, "limit": limit, "search": search}.items() if v}
        return await self.request("GET", "/v1/products/search", params=params)


def get_creem_service() -> CreemService:
    """FastAPI dependency; overridden in tests"""
    return CreemService()
