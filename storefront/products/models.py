from decimal import Decimal
from typing import List, Optional
from pydantic import Field, model_validator
from storefront.common.models import ApiModel


class VariantItemIn(ApiModel):
    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., max_length=128)


class VariantIn(ApiModel):
    variant_type_id: str = Field(..., max_length=64)
    variant_type_name: str = Field(..., max_length=128)
    selected_items: List[VariantItemIn] = Field(..., min_length=1)
    price_modifier: Decimal = Decimal("0")


class InstallationLocationIn(ApiModel):
    location_id: str = Field(..., max_length=64)
    name: str = Field(..., max_length=128)
    price_delta: Decimal = Field(Decimal("0"), ge=0)
    enabled: bool = True


class InstallationServiceIn(ApiModel):
    enabled: bool = False
    in_store_price: Decimal = Field(Decimal("0"), ge=0)
    at_home_price: Decimal = Field(Decimal("0"), ge=0)
    available_locations: List[InstallationLocationIn] = []


class ProductImageIn(ApiModel):
    url: str = Field(..., max_length=1024)
    order: int = 0
    mapped_variants: List[str] = []


class VariantStockIn(ApiModel):
    # either the "a+b" combination key or the item ids it is built from
    variant_combination_key: Optional[str] = None
    selected_variant_item_ids: List[str] = []
    stock_count: int = Field(..., ge=0)


class ProductCreateIn(ApiModel):
    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    base_price: Decimal = Field(..., ge=0)
    offer_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    variants: List[VariantIn] = []
    installation_service: Optional[InstallationServiceIn] = None
    images: List[ProductImageIn] = []
    variant_stock: List[VariantStockIn] = []

    @model_validator(mode="after")
    def variant_items_unique(self):
        seen = set()
        for variant in self.variants:
            for item in variant.selected_items:
                if item.id in seen:
                    raise ValueError(f"variant item id '{item.id}' is used by more than one variant type")
                seen.add(item.id)
        return self


class StockCheckLineIn(ApiModel):
    product_id: str = Field(..., min_length=1)
    selected_variant_item_ids: List[str] = []
    quantity: int = Field(..., ge=1)


class StockCheckIn(ApiModel):
    items: List[StockCheckLineIn] = Field(..., min_length=1)
