from collections import OrderedDict
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional
from storefront.common.errors import AppError
from storefront.common.utils import now
from storefront.config.settings import config_settings
from storefront.products.constants import logger
from storefront.products.repository import (decrement_stock_if_available, fetch_products_by_pids, fetch_stock_count,
                                            fetch_stock_rows, insert_reservations, reserved_quantity,
                                            set_reservations_status)
from storefront.products.utils import normalize_variant_ids, variant_combination_key
from storefront.schema.full_schema import ReservationStatus


async def validate_stock_availability(session, lines: Iterable[Dict[str, Any]],
                                      exclude_session_id: Optional[str] = None) -> Dict[str, Any]:
    """Check every line against its variant combination stock.

    All shortfalls are collected , the caller gets the full list in one pass.
    A combination without a stock row is untracked and never short. Units
    held by other orders' live reservations are not available. Lines sharing
    an identity are summed first so split quantities cannot pass one by one.
    """
    lines = aggregate_lines(lines)
    products = await fetch_products_by_pids(session, (line["product_id"] for line in lines))
    stock_cache: Dict[int, Dict[str, int]] = {}
    at = now()
    insufficient: List[Dict[str, Any]] = []

    for line in lines:
        selected = line["selected_variant_item_ids"]
        variant_key = line["variant_key"]
        requested = line["quantity"]
        shortfall = {
            "productId": line["product_id"],
            "selectedVariantItemIds": selected,
            "variantKey": variant_key,
            "requested": requested,
        }

        product = products.get(line["product_id"])
        if product is None:
            insufficient.append({**shortfall, "available": 0})
            continue

        if product["id"] not in stock_cache:
            stock_cache[product["id"]] = await fetch_stock_rows(session, product["id"])
        stock_count = stock_cache[product["id"]].get(variant_key)
        if stock_count is None:
            continue

        held = await reserved_quantity(session, line["product_id"], variant_key, at, exclude_session_id)
        available = max(stock_count - held, 0)
        if requested > available:
            insufficient.append({**shortfall, "available": available})

    if insufficient:
        logger.info("stock.validate.shortfall", extra={"shortfalls": len(insufficient)})
    return {"available": not insufficient, "insufficientItems": insufficient}


def aggregate_lines(lines: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Collapse lines sharing (product, variant key) into one with the summed quantity."""
    merged: "OrderedDict[tuple, Dict[str, Any]]" = OrderedDict()
    for line in lines:
        selected = normalize_variant_ids(line.get("selected_variant_item_ids"))
        key = (line["product_id"], variant_combination_key(selected))
        if key in merged:
            merged[key]["quantity"] += int(line["quantity"])
        else:
            merged[key] = {
                "product_id": line["product_id"],
                "variant_key": key[1],
                "selected_variant_item_ids": selected,
                "quantity": int(line["quantity"]),
            }
    return list(merged.values())


async def reduce_variant_stock(session, product_pid: str, selected_variant_item_ids: Iterable[str], quantity: int) -> None:
    products = await fetch_products_by_pids(session, [product_pid])
    product = products.get(product_pid)
    if product is None:
        raise AppError("PRODUCT_NOT_FOUND", "Product not found", status_code=404, details={"productId": product_pid})

    variant_key = variant_combination_key(selected_variant_item_ids)
    current = await fetch_stock_count(session, product["id"], variant_key)
    if current is None:
        return

    if not await decrement_stock_if_available(session, product["id"], variant_key, quantity):
        available = await fetch_stock_count(session, product["id"], variant_key)
        raise AppError("INSUFFICIENT_STOCK", "Insufficient stock", details={
            "productId": product_pid,
            "variantKey": variant_key,
            "requested": quantity,
            "available": available or 0,
        })


async def reserve_stock(session, order_id: int, lines: Iterable[Dict[str, Any]],
                        ttl_minutes: Optional[int] = None) -> None:
    ttl = ttl_minutes if ttl_minutes is not None else config_settings.STOCK_RESERVATION_TTL_MINUTES
    reserved_until = now() + timedelta(minutes=ttl)
    await insert_reservations(session, order_id, aggregate_lines(lines), reserved_until)


async def commit_order_stock(session, order_id: int, items: Iterable[Dict[str, Any]]) -> None:
    """Take the paid order's units out of stock and close its reservations.

    The payment is already captured at this point , so a shortfall is logged
    for manual reconciliation instead of failing the confirmation.
    """
    for line in aggregate_lines(items):
        try:
            await reduce_variant_stock(session, line["product_id"], line["selected_variant_item_ids"], line["quantity"])
        except AppError as exc:
            logger.error("stock.commit.shortfall", extra={
                "order_id": order_id,
                "product_id": line["product_id"],
                "variant_key": line["variant_key"],
                "code": exc.code,
            })
    await set_reservations_status(session, order_id, ReservationStatus.COMMITTED.value)


async def release_order_stock(session, order_id: int) -> int:
    released = await set_reservations_status(session, order_id, ReservationStatus.RELEASED.value)
    if released:
        logger.info("stock.reservations.released", extra={"order_id": order_id, "count": released})
    return released
