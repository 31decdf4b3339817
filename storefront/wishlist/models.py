from typing import List
from pydantic import Field
from storefront.common.models import ApiModel


class WishlistItemIn(ApiModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    selected_variant_item_ids: List[str] = []
