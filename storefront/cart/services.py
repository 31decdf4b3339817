from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from storefront.cart.constants import logger
from storefront.cart.models import BillingDetailsIn
from storefront.cart.repository import (clear_cart_lines, delete_cart, delete_cart_line, fetch_cart_lines, find_cart,
                                        find_cart_line, get_or_create_cart, set_cart_billing, set_cart_owner,
                                        update_cart_line, upsert_cart_line)
from storefront.common.errors import AppError, not_found
from storefront.common.utils import isoformat, money_out
from storefront.config.settings import config_settings
from storefront.pricing.engine import InstallationSelection, PriceBreakdown, price_product_line, round_money
from storefront.products.repository import get_product_or_404
from storefront.products.utils import normalize_variant_ids, variant_combination_key
from storefront.schema.full_schema import Cart, CartLine
from storefront.session.dependencies import Shopper


def validate_quantity(value: Any, allow_zero: bool = False) -> int:
    """Whole number from 1 to ``MAX_LINE_QUANTITY`` (<= 0 allowed and means remove when ``allow_zero``)."""
    if isinstance(value, bool):
        value = None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or (not allow_zero and value < 1):
        raise AppError("INVALID_QUANTITY", "Quantity must be a positive whole number", details={"quantity": value})
    if value > config_settings.MAX_LINE_QUANTITY:
        raise AppError("INVALID_QUANTITY", "Quantity exceeds the maximum per line",
                       details={"quantity": value, "max": config_settings.MAX_LINE_QUANTITY})
    return value


def priced_line_values(product_id: str, selected_ids: List[str], breakdown: PriceBreakdown) -> Dict[str, Any]:
    return {
        "product_id": product_id,
        "variant_key": variant_combination_key(selected_ids),
        "selected_variant_item_ids": selected_ids,
        "unit_price": round_money(breakdown.unit_price),
        "installation_option": breakdown.installation_option,
        "installation_location_id": breakdown.installation_location_id,
        "installation_location_delta": round_money(breakdown.installation_location_delta),
        "installation_add_on_price": round_money(breakdown.installation_add_on_price),
    }


async def price_line(session, product_id: str, selected_ids: List[str],
                     installation: InstallationSelection) -> Dict[str, Any]:
    product = await get_product_or_404(session, product_id)
    return priced_line_values(product_id, selected_ids, price_product_line(product, selected_ids, installation))


def line_out(line: CartLine) -> Dict[str, Any]:
    unit_price = round_money(line.unit_price)
    return {
        "productId": line.product_id,
        "selectedVariantItemIds": list(line.selected_variant_item_ids or []),
        "quantity": line.quantity,
        "unitPrice": money_out(unit_price),
        "lineTotal": money_out(unit_price * line.quantity),
        "installationOption": line.installation_option,
        "installationLocationId": line.installation_location_id,
        "installationLocationDelta": money_out(line.installation_location_delta),
        "installationAddOnPrice": money_out(line.installation_add_on_price),
        "createdAt": isoformat(line.created_at),
        "updatedAt": isoformat(line.updated_at),
    }


def billing_out(billing: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not billing:
        return None
    return BillingDetailsIn(**billing).model_dump(by_alias=True)


def cart_totals(lines: Iterable[CartLine]) -> Dict[str, Any]:
    subtotal = Decimal("0")
    total_items = 0
    for line in lines:
        subtotal += round_money(line.unit_price) * line.quantity
        total_items += line.quantity
    return {"subtotal": round_money(subtotal), "totalItems": total_items}


def cart_out(cart: Optional[Cart], lines: List[CartLine]) -> Dict[str, Any]:
    totals = cart_totals(lines)
    return {
        "items": [line_out(line) for line in lines],
        "subtotal": money_out(totals["subtotal"]),
        "totalItems": totals["totalItems"],
        "billingDetails": billing_out(cart.billing_details if cart else None),
    }


async def _cart_id(session, shopper: Shopper) -> int:
    cart = await get_or_create_cart(session, shopper.user_id, shopper.session_id)
    return cart.id


async def get_cart(session, shopper: Shopper) -> Dict[str, Any]:
    cart = await get_or_create_cart(session, shopper.user_id, shopper.session_id)
    return cart_out(cart, await fetch_cart_lines(session, cart.id))


async def add_item(session, shopper: Shopper, product_id: str, selected_variant_item_ids: Iterable[str],
                   quantity: Any, installation: Optional[InstallationSelection] = None) -> Dict[str, Any]:
    quantity = validate_quantity(quantity)
    selected = normalize_variant_ids(selected_variant_item_ids)
    values = await price_line(session, product_id, selected, installation or InstallationSelection())

    cart_id = await _cart_id(session, shopper)
    _, created = await upsert_cart_line(session, cart_id, values, quantity)
    logger.info("cart.line.added", extra={"cart_id": cart_id, "product_id": product_id,
                                          "variant_key": values["variant_key"], "line_created": created})
    return await get_cart(session, shopper)


async def update_item_quantity(session, shopper: Shopper, product_id: str, selected_variant_item_ids: Iterable[str],
                               quantity: Any, installation: Optional[InstallationSelection] = None) -> Dict[str, Any]:
    quantity = validate_quantity(quantity, allow_zero=True)
    selected = normalize_variant_ids(selected_variant_item_ids)
    variant_key = variant_combination_key(selected)
    cart_id = await _cart_id(session, shopper)

    line = await find_cart_line(session, cart_id, product_id, variant_key)
    if line is None:
        raise not_found("CART_ITEM_NOT_FOUND", "Item is not in the cart",
                        {"productId": product_id, "selectedVariantItemIds": selected})

    if quantity <= 0:
        await delete_cart_line(session, cart_id, product_id, variant_key)
        logger.info("cart.line.removed", extra={"cart_id": cart_id, "product_id": product_id, "variant_key": variant_key})
        return await get_cart(session, shopper)

    if installation is None:
        installation = InstallationSelection(line.installation_option, line.installation_location_id)
    values = await price_line(session, product_id, selected, installation)
    values.pop("product_id")
    values.pop("variant_key")
    await update_cart_line(session, cart_id, product_id, variant_key, {"quantity": quantity, **values})
    logger.info("cart.line.updated", extra={"cart_id": cart_id, "product_id": product_id, "quantity": quantity})
    return await get_cart(session, shopper)


async def remove_item(session, shopper: Shopper, product_id: str,
                      selected_variant_item_ids: Iterable[str]) -> Dict[str, Any]:
    variant_key = variant_combination_key(selected_variant_item_ids)
    cart_id = await _cart_id(session, shopper)
    removed = await delete_cart_line(session, cart_id, product_id, variant_key)
    if removed:
        logger.info("cart.line.removed", extra={"cart_id": cart_id, "product_id": product_id, "variant_key": variant_key})
    return await get_cart(session, shopper)


async def clear_cart(session, shopper: Shopper) -> Dict[str, Any]:
    cart = await find_cart(session, shopper.user_id, shopper.session_id)
    if cart is not None:
        await clear_cart_lines(session, cart.id)
        logger.info("cart.cleared", extra={"cart_id": cart.id})
    return await get_cart(session, shopper)


async def set_billing_details(session, shopper: Shopper, details: BillingDetailsIn) -> Dict[str, Any]:
    cart = await get_or_create_cart(session, shopper.user_id, shopper.session_id)
    await set_cart_billing(session, cart, details.model_dump(mode="json"))
    return {"billingDetails": billing_out(cart.billing_details)}


async def get_billing_details(session, shopper: Shopper) -> Optional[Dict[str, Any]]:
    cart = await find_cart(session, shopper.user_id, shopper.session_id)
    return billing_out(cart.billing_details if cart else None)


async def merge_carts(session, source: Cart, target: Cart) -> int:
    """Fold every line of ``source`` into ``target`` summing quantities , then drop ``source``."""
    source_id, target_id = source.id, target.id
    lines = await fetch_cart_lines(session, source_id)
    for line in lines:
        values = {
            "product_id": line.product_id,
            "variant_key": line.variant_key,
            "selected_variant_item_ids": list(line.selected_variant_item_ids or []),
            "unit_price": line.unit_price,
            "installation_option": line.installation_option,
            "installation_location_id": line.installation_location_id,
            "installation_location_delta": line.installation_location_delta,
            "installation_add_on_price": line.installation_add_on_price,
        }
        # merged sums stop at the line maximum
        await upsert_cart_line(session, target_id, values, line.quantity, clamp=True)

    if target.billing_details is None and source.billing_details:
        await set_cart_billing(session, target, source.billing_details)

    await delete_cart(session, source_id)
    logger.info("cart.merged", extra={"source_cart_id": source_id, "target_cart_id": target_id, "lines": len(lines)})
    return target_id


async def merge_session_cart_into_user(session, session_id: str, user_id: str) -> Optional[int]:
    user_cart = await find_cart(session, user_id, None)
    guest_cart = await find_cart(session, None, session_id)

    if guest_cart is None:
        return user_cart.id if user_cart else None
    if user_cart is None:
        await set_cart_owner(session, guest_cart, user_id)
        return guest_cart.id
    if user_cart.id == guest_cart.id:
        return user_cart.id
    return await merge_carts(session, guest_cart, user_cart)


async def clear_cart_for_session(session, session_id: str, user_id: Optional[str] = None) -> None:
    cart = await find_cart(session, user_id, session_id)
    if cart is not None:
        await clear_cart_lines(session, cart.id)