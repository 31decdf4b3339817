from typing import Any, Dict, List, Tuple
from storefront.common.errors import AppError
from storefront.common.utils import money_out
from storefront.products.constants import logger
from storefront.products.models import ProductCreateIn
from storefront.products.repository import fetch_stock_rows, insert_product, product_to_dict
from storefront.products.utils import DEFAULT_VARIANT_KEY, variant_combination_key, variant_item_ids


def stock_entries(payload: ProductCreateIn) -> List[Tuple[str, int]]:
    known = set(variant_item_ids([v.model_dump() for v in payload.variants]))
    entries = {}
    for entry in payload.variant_stock:
        if entry.variant_combination_key:
            ids = [] if entry.variant_combination_key == DEFAULT_VARIANT_KEY else entry.variant_combination_key.split("+")
        else:
            ids = entry.selected_variant_item_ids
        unknown = sorted(set(i for i in ids if i) - known)
        if unknown:
            raise AppError("UNKNOWN_VARIANT_ITEM", "Stock entry references unknown variant items",
                           details={"unknownVariantItemIds": unknown})
        entries[variant_combination_key(ids)] = entry.stock_count
    return list(entries.items())


async def create_product(session, payload: ProductCreateIn) -> Dict[str, Any]:
    dumped = payload.model_dump(mode="json", exclude={"variant_stock"})
    data = {
        "name": payload.name,
        "description": payload.description,
        "base_price": payload.base_price,
        "offer_percentage": payload.offer_percentage,
        "variants": dumped["variants"],
        "installation_service": dumped["installation_service"],
        "images": dumped["images"],
    }
    product = await insert_product(session, data, stock_entries(payload))
    logger.info("product.created", extra={"product_id": product.public_id})
    return product_to_dict(product)


def product_out(product: Dict[str, Any], stock: Dict[str, int] = None) -> Dict[str, Any]:
    service = product.get("installation_service")
    out = {
        "id": product["public_id"],
        "name": product["name"],
        "description": product.get("description"),
        "basePrice": money_out(product["base_price"]),
        "offerPercentage": money_out(product["offer_percentage"]) if product.get("offer_percentage") is not None else None,
        "variants": [
            {
                "variantTypeId": v.get("variant_type_id"),
                "variantTypeName": v.get("variant_type_name"),
                "selectedItems": v.get("selected_items") or [],
                "priceModifier": money_out(v.get("price_modifier")),
            }
            for v in product.get("variants") or []
        ],
        "installationService": None,
        "images": [
            {"url": img.get("url"), "order": img.get("order", 0), "mappedVariants": img.get("mapped_variants") or []}
            for img in product.get("images") or []
        ],
    }
    if service:
        out["installationService"] = {
            "enabled": bool(service.get("enabled")),
            "inStorePrice": money_out(service.get("in_store_price")),
            "atHomePrice": money_out(service.get("at_home_price")),
            "availableLocations": [
                {
                    "locationId": loc.get("location_id"),
                    "name": loc.get("name"),
                    "priceDelta": money_out(loc.get("price_delta")),
                    "enabled": loc.get("enabled", True),
                }
                for loc in service.get("available_locations") or []
            ],
        }
    if stock is not None:
        out["variantStock"] = [{"variantCombinationKey": k, "stockCount": v} for k, v in sorted(stock.items())]
    return out


async def product_details(session, product: Dict[str, Any]) -> Dict[str, Any]:
    return product_out(product, await fetch_stock_rows(session, product["id"]))
