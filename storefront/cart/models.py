from typing import Any, List, Optional
from pydantic import EmailStr, Field
from storefront.common.models import ApiModel
from storefront.schema.full_schema import InstallationOption


class LineRefIn(ApiModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    selected_variant_item_ids: List[str] = []


class AddItemIn(LineRefIn):
    # validated by the cart service so a bad value reports INVALID_QUANTITY
    quantity: Any = 1
    installation_option: str = InstallationOption.NONE.value
    installation_location_id: Optional[str] = Field(None, max_length=64)


class UpdateItemIn(LineRefIn):
    quantity: Any
    installation_option: Optional[str] = None
    installation_location_id: Optional[str] = Field(None, max_length=64)


class RemoveItemIn(LineRefIn):
    pass


class BillingDetailsIn(ApiModel):
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    country: str = Field(..., min_length=2, max_length=100)
    street_address1: str = Field(..., min_length=1, max_length=255)
    street_address2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state_or_county: Optional[str] = Field(None, max_length=100)
    phone: str = Field(..., min_length=5, max_length=32)
    order_notes: Optional[str] = Field(None, max_length=1000)
