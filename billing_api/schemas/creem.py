from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any


class CheckoutCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId", min_length=1)
    customer_email: Optional[str] = Field(default=None, alias="customerEmail")
    customer_name: Optional[str] = Field(default=None, alias="customerName")
    success_url: Optional[str] = Field(default=None, alias="successUrl")
    cancel_url: Optional[str] = Field(default=None, alias="cancelUrl")
    discount_code: Optional[str] = Field(default=None, alias="discountCode")
    quantity: Optional[int] = Field(default=None, ge=1)
    metadata: Optional[Dict[str, Any]] = None

    def to_creem(self) -> Dict[str, Any]:
        """camelCase body as the Creem API expects it"""
        return self.model_dump(by_alias=True, exclude_none=True)


class LicenseValidateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    license_key: str = Field(alias="licenseKey", min_length=1)
