from typing import Any, List, Optional
from pydantic import ConfigDict, Field
from storefront.common.models import ApiModel
from storefront.schema.full_schema import InstallationOption, PaymentProvider


class BuyNowLineIn(ApiModel):
    # client side price fields (unitPrice , subtotal ...) are accepted and dropped , every line is re-priced
    model_config = ConfigDict(extra="ignore")

    product_id: str = Field(..., min_length=1, max_length=64)
    selected_variant_item_ids: List[str] = []
    quantity: Any = 1
    installation_option: str = InstallationOption.NONE.value
    installation_location_id: Optional[str] = Field(None, max_length=64)


class CheckoutRequestIn(ApiModel):
    provider: PaymentProvider
    currency: Optional[str] = Field(None, max_length=8)
    items: Optional[List[BuyNowLineIn]] = None


class AvailabilityRequestIn(ApiModel):
    currency: Optional[str] = Field(None, max_length=8)
    items: Optional[List[BuyNowLineIn]] = None


class OrderStatusUpdateIn(ApiModel):
    status: str = Field(..., min_length=1, max_length=16)
