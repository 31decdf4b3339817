import time
from decimal import Decimal
from typing import Any, Dict, List, Optional
from fastapi import status
from storefront.cart.repository import fetch_cart_lines, find_cart
from storefront.cart.services import billing_out, clear_cart_for_session, validate_quantity
from storefront.common.errors import AppError
from storefront.common.utils import isoformat, money_out
from storefront.config.settings import config_settings
from storefront.currency.services import convert_amount, get_exchange_rates, normalize_currency
from storefront.orders import stripe_client, tabby_client
from storefront.orders.constants import ADMIN_STATUS_TRANSITIONS, DEFAULT_CURRENCY, ORDER_HISTORY_LIMIT, logger
from storefront.orders.repository import (insert_order, orders_by_email, set_order_idempotency_key,
                                          set_order_provider_session, transition_order_status)
from storefront.orders.serializers import (build_stripe_session_payload, build_tabby_availability_payload,
                                           build_tabby_payload, order_history_entry)
from storefront.pricing.engine import InstallationSelection, price_product_line, round_money
from storefront.products.repository import fetch_products_by_pids
from storefront.products.stock import commit_order_stock, release_order_stock, reserve_stock, validate_stock_availability
from storefront.products.utils import build_variant_label, location_name, normalize_variant_ids, pick_product_image
from storefront.schema.full_schema import Orders, OrderStatus, PaymentProvider
from storefront.session.dependencies import Shopper

CHECKOUT_BUY_NOW = "buy_now"
CHECKOUT_CART = "cart"


def order_out(order: Orders) -> Dict[str, Any]:
    return {
        "id": order.public_id,
        "sessionId": order.session_id,
        "userId": order.user_id,
        "paymentProvider": order.payment_provider,
        "paymentProviderSessionId": order.payment_provider_session_id,
        "items": order.items or [],
        "totalAmount": money_out(order.total_amount),
        "currency": order.currency,
        "status": order.status,
        "billingDetails": billing_out(order.billing_details),
        "createdAt": isoformat(order.created_at),
        "updatedAt": isoformat(order.updated_at),
    }


def order_stock_lines(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {"product_id": i["productId"], "selected_variant_item_ids": i.get("selectedVariantItemIds") or [],
         "quantity": i["quantity"]}
        for i in items
    ]


# --------------------------------------------------------------------------------------------
# pipeline steps , shared by cart checkout , buy-now and the tabby availability check

async def resolve_billing(session, shopper: Shopper) -> Dict[str, Any]:
    cart = await find_cart(session, shopper.user_id, shopper.session_id)
    if cart is None or not cart.billing_details:
        raise AppError("BILLING_DETAILS_REQUIRED", "Billing details are required before checkout")
    return dict(cart.billing_details)


async def resolve_source_lines(session, shopper: Shopper, items: Optional[List[Any]]) -> Dict[str, Any]:
    if items:
        lines = [
            {
                "product_id": item.product_id,
                "selected_variant_item_ids": normalize_variant_ids(item.selected_variant_item_ids),
                "quantity": validate_quantity(item.quantity),
                "installation_option": item.installation_option,
                "installation_location_id": item.installation_location_id,
            }
            for item in items
        ]
        return {"type": CHECKOUT_BUY_NOW, "lines": lines}

    cart = await find_cart(session, shopper.user_id, shopper.session_id)
    cart_lines = await fetch_cart_lines(session, cart.id) if cart is not None else []
    if not cart_lines:
        raise AppError("CART_EMPTY", "Cart is empty")
    lines = [
        {
            "product_id": line.product_id,
            "selected_variant_item_ids": list(line.selected_variant_item_ids or []),
            "quantity": line.quantity,
            "installation_option": line.installation_option,
            "installation_location_id": line.installation_location_id,
        }
        for line in cart_lines
    ]
    return {"type": CHECKOUT_CART, "lines": lines}


async def reprice_lines(session, lines: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Authoritative price for every line from current catalog data , any failure aborts."""
    products = await fetch_products_by_pids(session, (line["product_id"] for line in lines))
    priced = []
    for line in lines:
        product = products.get(line["product_id"])
        if product is None:
            raise AppError("PRODUCT_UNAVAILABLE", f"Product {line['product_id']} is unavailable",
                           details={"productId": line["product_id"]})
        selection = InstallationSelection(line["installation_option"], line["installation_location_id"])
        breakdown = price_product_line(product, line["selected_variant_item_ids"], selection)
        priced.append({**line, "product": product, "breakdown": breakdown})
    return priced


async def ensure_lines_in_stock(session, lines: List[Dict[str, Any]], session_id: Optional[str] = None) -> None:
    result = await validate_stock_availability(session, lines, exclude_session_id=session_id)
    if not result["available"]:
        raise AppError("INSUFFICIENT_STOCK", "Insufficient stock for one or more items",
                       details={"insufficientItems": result["insufficientItems"]})


def build_order_items(priced: List[Dict[str, Any]], currency: str, rates: Dict[str, Decimal]) -> Dict[str, Any]:
    items = []
    total = Decimal("0")
    for line in priced:
        product = line["product"]
        breakdown = line["breakdown"]
        selected = line["selected_variant_item_ids"]
        base_unit = round_money(breakdown.unit_price)
        unit = convert_amount(base_unit, currency, rates)
        total += unit * line["quantity"]
        items.append({
            "productId": line["product_id"],
            "productName": product["name"],
            "productImage": pick_product_image(product.get("images") or [], selected),
            "variantName": build_variant_label(product.get("variants") or [], selected),
            "selectedVariantItemIds": selected,
            "quantity": line["quantity"],
            "unitPrice": money_out(unit),
            "baseUnitPrice": money_out(base_unit),
            "installationOption": breakdown.installation_option,
            "installationAddOnPrice": money_out(round_money(breakdown.installation_add_on_price)),
            "installationLocationId": breakdown.installation_location_id,
            "installationLocationName": location_name(product.get("installation_service"),
                                                      breakdown.installation_location_id),
            "installationLocationDelta": money_out(round_money(breakdown.installation_location_delta)),
        })
    return {"items": items, "total": total}


async def tabby_history(session, shopper: Shopper, billing: Dict[str, Any]) -> Dict[str, Any]:
    """order_history (and buyer_history) for registered shoppers , empty for guests."""
    if not shopper.user_id or not billing.get("email"):
        return {"order_history": [], "buyer_history": None}

    past = await orders_by_email(session, billing["email"], ORDER_HISTORY_LIMIT)
    history = [
        order_history_entry({
            "created_at": isoformat(o.created_at),
            "total_amount": o.total_amount,
            "currency": o.currency,
            "status": o.status,
            "billing": o.billing_details,
            "items": o.items,
        }, billing)
        for o in past
    ]
    buyer_history = None
    if past:
        buyer_history = {"registered_since": isoformat(min(o.created_at for o in past)), "loyalty_level": 0}
    return {"order_history": history, "buyer_history": buyer_history}


# --------------------------------------------------------------------------------------------

async def _abandon_order(session, order_id: int, reason: str) -> None:
    if await transition_order_status(session, order_id, OrderStatus.FAILED.value):
        await release_order_stock(session, order_id)
    await session.commit()
    logger.warning("checkout.order.failed", extra={"order_id": order_id, "reason": reason})


async def start_checkout(session, shopper: Shopper, provider: str, currency: Optional[str],
                         items: Optional[List[Any]], origin: Optional[str] = None) -> Dict[str, Any]:
    """Single pipeline for cart checkout and buy-now on either provider.

    The pending order and its stock reservations are committed before the
    provider is called , so a provider failure leaves a ``failed`` order
    behind instead of nothing.
    """
    provider = PaymentProvider(provider).value
    currency = normalize_currency(currency or DEFAULT_CURRENCY[provider])
    origin = (origin or config_settings.STOREFRONT_ORIGIN).rstrip("/")

    billing = await resolve_billing(session, shopper)
    source = await resolve_source_lines(session, shopper, items)
    priced = await reprice_lines(session, source["lines"])
    await ensure_lines_in_stock(session, source["lines"], shopper.session_id)

    rates = await get_exchange_rates()
    built = build_order_items(priced, currency, rates)
    total = round_money(built["total"], 3)

    # read before the pending order exists so it never lists itself
    history = await tabby_history(session, shopper, billing) if provider == PaymentProvider.TABBY.value else None

    order = await insert_order(session, {
        "session_id": shopper.session_id,
        "user_id": shopper.user_id,
        "payment_provider": provider,
        "items": built["items"],
        "total_amount": total,
        "currency": currency,
        "billing_details": billing,
        "billing_email": billing.get("email"),
    })
    order_id, order_pid = order.id, order.public_id
    idempotency_key = f"checkout-{order_pid}"
    await set_order_idempotency_key(session, order_id, idempotency_key)
    await reserve_stock(session, order_id, source["lines"])
    await session.commit()
    logger.info("checkout.order.pending_created", extra={"order_id": order_id, "provider": provider,
                                                         "checkout_type": source["type"], "currency": currency})

    order_view = {
        "order_id": order_pid,
        "session_id": shopper.session_id,
        "currency": currency,
        "items": built["items"],
        "total_amount": total,
        "billing": billing,
        "checkout_type": source["type"],
        "origin": origin,
    }

    try:
        if provider == PaymentProvider.STRIPE.value:
            created = await stripe_client.create_checkout_session(build_stripe_session_payload(order_view),
                                                                  idempotency_key)
            provider_session_id, url = created.get("id"), created.get("url")
        else:
            payload = build_tabby_payload(order_view, config_settings.TABBY_MERCHANT_CODE,
                                          history["order_history"], history["buyer_history"])
            created = await tabby_client.create_checkout(payload)
            if created.get("status") == "rejected":
                reason = rejection_reason(created)
                await _abandon_order(session, order_id, "rejected")
                return {"available": False, "reason": reason, "orderId": order_pid}
            provider_session_id = created.get("id")
            url = tabby_web_url(created)
    except AppError as exc:
        await _abandon_order(session, order_id, exc.code)
        raise

    if not url or not provider_session_id:
        await _abandon_order(session, order_id, "missing_redirect")
        raise AppError("PAYMENT_PROVIDER_ERROR", "Payment provider returned no redirect url",
                       status.HTTP_502_BAD_GATEWAY, {"provider": provider})

    await set_order_provider_session(session, order_id, provider_session_id)
    await session.commit()
    logger.info("checkout.session.created", extra={"order_id": order_id, "provider": provider})
    return {"url": url, "orderId": order_pid}


def tabby_web_url(created: Dict[str, Any]) -> Optional[str]:
    installments = ((created.get("configuration") or {}).get("available_products") or {}).get("installments") or []
    return installments[0].get("web_url") if installments else None


def rejection_reason(created: Dict[str, Any]) -> Optional[str]:
    products = (created.get("configuration") or {}).get("products") or {}
    return (products.get("installments") or {}).get("rejection_reason") or created.get("rejection_reason")


async def check_tabby_availability(session, shopper: Shopper, currency: Optional[str],
                                   items: Optional[List[Any]], origin: Optional[str] = None) -> Dict[str, Any]:
    """Dry run of the tabby checkout: nothing is persisted or reserved."""
    currency = normalize_currency(currency or DEFAULT_CURRENCY[PaymentProvider.TABBY.value])
    origin = (origin or config_settings.STOREFRONT_ORIGIN).rstrip("/")

    billing = await resolve_billing(session, shopper)
    source = await resolve_source_lines(session, shopper, items)
    priced = await reprice_lines(session, source["lines"])
    await ensure_lines_in_stock(session, source["lines"], shopper.session_id)

    built = build_order_items(priced, currency, await get_exchange_rates())
    history = await tabby_history(session, shopper, billing)
    check = {
        "reference_id": f"check_{int(time.time() * 1000)}_{shopper.session_id[:8]}",
        "session_id": shopper.session_id,
        "currency": currency,
        "total_amount": round_money(built["total"], 3),
        "billing": billing,
        "checkout_type": source["type"],
        "origin": origin,
    }
    payload = build_tabby_availability_payload(check, config_settings.TABBY_MERCHANT_CODE,
                                               history["order_history"], history["buyer_history"])
    try:
        created = await tabby_client.create_checkout(payload, key="TABBY_SECRET_KEY")
    except AppError as exc:
        logger.warning("checkout.tabby.availability_error", extra={"code": exc.code})
        return {"available": False, "reason": "provider_error"}

    if created.get("status") == "rejected":
        return {"available": False, "reason": rejection_reason(created)}
    return {"available": True, "status": created.get("status")}


# --------------------------------------------------------------------------------------------
# order state changes driven by webhooks and the back-office

async def mark_order_paid(session, order: Orders, **values) -> bool:
    """pending -> paid , then stock is taken and the shopper's cart emptied. False if it was not pending."""
    if not await transition_order_status(session, order.id, OrderStatus.PAID.value, **values):
        return False
    await commit_order_stock(session, order.id, order_stock_lines(order.items or []))
    await clear_cart_for_session(session, order.session_id, order.user_id)
    logger.info("order.paid", extra={"order_id": order.id, "provider": order.payment_provider})
    return True


async def close_unpaid_order(session, order: Orders, to_status: str) -> bool:
    if not await transition_order_status(session, order.id, to_status):
        return False
    await release_order_stock(session, order.id)
    return True


async def admin_update_status(session, order: Orders, new_status: str) -> Orders:
    valid = {s.value for s in OrderStatus}
    if new_status not in valid:
        raise AppError("INVALID_STATUS", f"Unknown order status '{new_status}'",
                       details={"status": new_status, "allowed": sorted(valid)})

    current = order.status
    if new_status == current:
        return order
    if new_status not in ADMIN_STATUS_TRANSITIONS.get(current, set()):
        raise AppError("INVALID_STATUS_TRANSITION", f"Cannot move an order from '{current}' to '{new_status}'",
                       details={"from": current, "to": new_status})

    if new_status == OrderStatus.PAID.value:
        moved = await mark_order_paid(session, order)
    elif new_status in (OrderStatus.CANCELLED.value, OrderStatus.FAILED.value):
        moved = await close_unpaid_order(session, order, new_status)
    else:
        moved = await transition_order_status(session, order.id, new_status, from_status=current)
        if moved and current == OrderStatus.PENDING.value:
            await commit_order_stock(session, order.id, order_stock_lines(order.items or []))

    if not moved:
        raise AppError("INVALID_STATUS_TRANSITION", "Order status changed concurrently",
                       status.HTTP_409_CONFLICT, details={"from": current, "to": new_status})
    await session.refresh(order)
    return order
