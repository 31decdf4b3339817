"""Pure request builders for the payment providers.

Nothing here does I/O: the checkout pipeline hands in the frozen order data
and gets back the exact body the provider adapter sends.
"""
import json
from typing import Any, Dict, Iterable, List, Optional, Tuple
from storefront.currency.services import format_amount, to_minor_units
from storefront.orders.constants import STRIPE_METADATA_BILLING_MAX
from storefront.schema.full_schema import OrderStatus


def billing_name(billing: Dict[str, Any]) -> str:
    return f"{billing.get('first_name') or ''} {billing.get('last_name') or ''}".strip()


def billing_address(billing: Dict[str, Any]) -> str:
    return ", ".join(p for p in (billing.get("street_address1"), billing.get("street_address2")) if p)


def billing_camel(billing: Dict[str, Any]) -> Dict[str, Any]:
    # metadata copies use the storefront's camelCase keys
    keys = {
        "email": "email", "first_name": "firstName", "last_name": "lastName", "country": "country",
        "street_address1": "streetAddress1", "street_address2": "streetAddress2", "city": "city",
        "state_or_county": "stateOrCounty", "phone": "phone", "order_notes": "orderNotes",
    }
    return {camel: billing[snake] for snake, camel in keys.items() if billing.get(snake) is not None}


def build_stripe_session_payload(order: Dict[str, Any]) -> Dict[str, Any]:
    """Checkout Session params for a pending order.

    ``order`` carries ``order_id`` , ``session_id`` , ``currency`` , ``items``
    (frozen order items) , ``billing`` , ``checkout_type`` and ``origin``.
    """
    currency = order["currency"]
    billing = order["billing"]

    metadata = {
        "sessionId": order["session_id"],
        "orderId": order["order_id"],
        "billingEmail": billing.get("email"),
        "billingCountry": billing.get("country"),
        "type": order["checkout_type"],
    }
    name = billing_name(billing)
    if name:
        metadata["billingName"] = name
    serialized = json.dumps(billing_camel(billing), separators=(",", ":"))
    if len(serialized) <= STRIPE_METADATA_BILLING_MAX:
        metadata["billingDetails"] = serialized

    return {
        "payment_method_types": ["card"],
        "mode": "payment",
        "line_items": [
            {
                "price_data": {
                    "currency": currency.lower(),
                    "product_data": {"name": item["productName"]},
                    "unit_amount": to_minor_units(item["unitPrice"], currency),
                },
                "quantity": item["quantity"],
            }
            for item in order["items"]
        ],
        "client_reference_id": order["order_id"],
        "customer_email": billing.get("email"),
        "success_url": f"{order['origin']}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{order['origin']}/checkout/cancel",
        "metadata": metadata,
    }


def encode_form(params: Dict[str, Any], prefix: Optional[str] = None) -> List[Tuple[str, str]]:
    """Flatten nested params into Stripe's ``a[b][0][c]=v`` form encoding."""
    pairs: List[Tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for index, entry in enumerate(value):
                if isinstance(entry, dict):
                    pairs.extend(encode_form(entry, f"{name}[{index}]"))
                else:
                    pairs.append((f"{name}[{index}]", _form_value(entry)))
        else:
            pairs.append((name, _form_value(value)))
    return pairs


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _buyer(billing: Dict[str, Any]) -> Dict[str, Any]:
    return {"name": billing_name(billing), "email": billing.get("email"), "phone": billing.get("phone")}


def _shipping_address(billing: Dict[str, Any]) -> Dict[str, Any]:
    return {"city": billing.get("city"), "address": billing_address(billing), "zip": billing.get("zip") or "00000"}


def order_history_entry(order: Dict[str, Any], fallback_billing: Dict[str, Any]) -> Dict[str, Any]:
    # past orders may predate some billing fields , the current billing fills the gaps
    billing = {**fallback_billing, **{k: v for k, v in (order.get("billing") or {}).items() if v}}
    currency = order["currency"]
    complete = order["status"] in (OrderStatus.PAID.value, OrderStatus.COMPLETED.value)
    return {
        "purchased_at": order["created_at"],
        "amount": format_amount(order["total_amount"], currency),
        "status": "complete" if complete else "unknown",
        "buyer": _buyer(billing),
        "shipping_address": _shipping_address(billing),
        "items": [
            {
                "title": item.get("productName"),
                "quantity": item.get("quantity"),
                "unit_price": format_amount(item.get("unitPrice"), currency),
                "category": "General",
            }
            for item in order.get("items") or []
        ],
    }


def _tabby_body(payment: Dict[str, Any], merchant_code: Optional[str], origin: str, failure_path: str) -> Dict[str, Any]:
    return {
        "payment": payment,
        "lang": "en",
        "merchant_code": merchant_code,
        "merchant_urls": {
            "success": f"{origin}/checkout/success",
            "cancel": f"{origin}/checkout/cancel",
            "failure": f"{origin}{failure_path}",
        },
    }


def build_tabby_payload(order: Dict[str, Any], merchant_code: Optional[str],
                        order_history: Iterable[Dict[str, Any]] = (),
                        buyer_history: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    currency = order["currency"]
    billing = order["billing"]
    payment = {
        "amount": format_amount(order["total_amount"], currency),
        "currency": currency,
        "description": f"Order for {billing.get('email')}",
        "buyer": _buyer(billing),
        "shipping_address": _shipping_address(billing),
        "order_history": list(order_history),
        "order": {
            "reference_id": order["order_id"],
            "items": [
                {
                    "title": item["productName"],
                    "quantity": item["quantity"],
                    "unit_price": format_amount(item["unitPrice"], currency),
                    "reference_id": item["productId"],
                    "category": "General",
                }
                for item in order["items"]
            ],
        },
        "meta": {"sessionId": order["session_id"], "orderId": order["order_id"], "type": order["checkout_type"]},
    }
    if buyer_history:
        payment["buyer_history"] = buyer_history
    return _tabby_body(payment, merchant_code, order["origin"], "/checkout/failure")


def build_tabby_availability_payload(check: Dict[str, Any], merchant_code: Optional[str],
                                     order_history: Iterable[Dict[str, Any]] = (),
                                     buyer_history: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Same shape as a real session but for one summary line under a throwaway ``check_`` reference."""
    currency = check["currency"]
    billing = check["billing"]
    amount = format_amount(check["total_amount"], currency)
    payment = {
        "amount": amount,
        "currency": currency,
        "description": f"Availability Check for {billing.get('email')}",
        "buyer": _buyer(billing),
        "shipping_address": _shipping_address(billing),
        "order_history": list(order_history),
        "order": {
            "reference_id": check["reference_id"],
            "items": [{
                "title": "Availability Check",
                "quantity": 1,
                "unit_price": amount,
                "reference_id": check["reference_id"],
                "category": "General",
            }],
        },
        "meta": {"sessionId": check["session_id"], "type": check["checkout_type"], "isCheck": "true"},
    }
    if buyer_history:
        payment["buyer_history"] = buyer_history
    return _tabby_body(payment, merchant_code, check["origin"], "/checkout/tabby-failure")
