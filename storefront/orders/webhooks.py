import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.common.errors import AppError, not_found
from storefront.common.utils import success_response
from storefront.config.settings import config_settings
from storefront.db.dependencies import get_session
from storefront.orders import tabby_client
from storefront.orders.constants import logger
from storefront.orders.repository import (get_order_by_provider_session_id, get_order_by_public_id,
                                          mark_webhook_processed, record_webhook_event)
from storefront.orders.services import close_unpaid_order, mark_order_paid
from storefront.schema.full_schema import OrderStatus, PaymentProvider

webhooks_router = APIRouter()


def verify_stripe_signature(body: bytes, header: Optional[str], secret: Optional[str],
                            tolerance: int, at: Optional[float] = None) -> None:
    """Check a ``t=<ts>,v1=<hex>`` signature header over ``"<ts>.<body>"``."""
    if not secret:
        logger.error("webhook.stripe.secret_not_configured")
        raise AppError("WEBHOOK_NOT_CONFIGURED", "Webhook secret is not configured",
                       status.HTTP_500_INTERNAL_SERVER_ERROR)
    if not header:
        raise AppError("WEBHOOK_SIGNATURE_INVALID", "Missing signature header")

    timestamp = None
    signatures = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    if not timestamp or not timestamp.isdigit() or not signatures:
        raise AppError("WEBHOOK_SIGNATURE_INVALID", "Malformed signature header")

    if abs((at if at is not None else time.time()) - int(timestamp)) > tolerance:
        raise AppError("WEBHOOK_SIGNATURE_INVALID", "Signature timestamp outside tolerance")

    signed = timestamp.encode() + b"." + body
    expected = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise AppError("WEBHOOK_SIGNATURE_INVALID", "Signature mismatch")


def parse_json_body(body: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(body)
    except ValueError:
        raise AppError("INVALID_WEBHOOK_PAYLOAD", "Webhook body is not valid JSON")
    if not isinstance(payload, dict):
        raise AppError("INVALID_WEBHOOK_PAYLOAD", "Webhook body must be a JSON object")
    return payload


async def _stripe_order(session, checkout: Dict[str, Any]):
    order = None
    if checkout.get("id"):
        order = await get_order_by_provider_session_id(session, checkout["id"])
    if order is None and checkout.get("client_reference_id"):
        order = await get_order_by_public_id(session, checkout["client_reference_id"])
    return order


@webhooks_router.post("/stripe")
async def stripe_webhook(request: Request, session: AsyncSession = Depends(get_session)):
    body = await request.body()
    try:
        verify_stripe_signature(body, request.headers.get("Stripe-Signature"), config_settings.STRIPE_WEBHOOK_SECRET,
                                config_settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS)
    except AppError as exc:
        logger.warning("webhook.stripe.rejected", extra={"code": exc.code, "reason": exc.message})
        raise

    event = parse_json_body(body)
    event_id = event.get("id")
    event_type = event.get("type")
    if not event_id:
        raise AppError("INVALID_WEBHOOK_PAYLOAD", "Event id missing")

    record = await record_webhook_event(session, PaymentProvider.STRIPE.value, event_id, event_type, event)
    if record is None:
        logger.info("webhook.stripe.duplicate", extra={"event_id": event_id})
        return success_response({"received": True, "duplicate": True})

    checkout = (event.get("data") or {}).get("object") or {}
    order = await _stripe_order(session, checkout)
    applied = False

    if order is None:
        logger.warning("webhook.stripe.order_not_found", extra={"event_id": event_id, "event_type": event_type})
    elif event_type in ("checkout.session.completed", "checkout.session.async_payment_succeeded"):
        if checkout.get("payment_status") == "paid":
            applied = await mark_order_paid(session, order)
    elif event_type == "checkout.session.expired":
        applied = await close_unpaid_order(session, order, OrderStatus.CANCELLED.value)
    elif event_type == "checkout.session.async_payment_failed":
        applied = await close_unpaid_order(session, order, OrderStatus.FAILED.value)

    await mark_webhook_processed(session, record)
    await session.commit()
    logger.info("webhook.stripe.processed", extra={"event_id": event_id, "event_type": event_type, "applied": applied})
    return success_response({"received": True, "applied": applied})


async def _tabby_order(session, payment: Dict[str, Any], payment_id: str):
    reference = (payment.get("order") or {}).get("reference_id")
    order = await get_order_by_public_id(session, reference) if reference else None
    if order is None:
        order = await get_order_by_provider_session_id(session, payment_id)
    return order


@webhooks_router.post("/tabby")
async def tabby_webhook(request: Request, session: AsyncSession = Depends(get_session)):
    body = parse_json_body(await request.body())
    payment_id = body.get("id")
    if not payment_id:
        raise AppError("INVALID_WEBHOOK_PAYLOAD", "Payment id missing")

    # the delivery itself is not trusted , the payment is read back from the provider
    payment = await tabby_client.get_payment(payment_id)
    payment_status = str(payment.get("status") or "").upper()
    event_key = f"{payment_id}:{payment_status}"

    order = await _tabby_order(session, payment, payment_id)
    if order is None:
        logger.warning("webhook.tabby.order_not_found", extra={"payment_id": payment_id})
        raise not_found("ORDER_NOT_FOUND", "Order not found for payment", {"paymentId": payment_id})

    record = await record_webhook_event(session, PaymentProvider.TABBY.value, event_key, payment_status, body)
    if record is None:
        logger.info("webhook.tabby.duplicate", extra={"payment_id": payment_id, "payment_status": payment_status})
        return success_response({"received": True, "duplicate": True})

    applied = False
    if order.status != OrderStatus.PENDING.value:
        logger.info("webhook.tabby.skipped", extra={"order_id": order.id, "order_status": order.status})
    elif payment_status == "AUTHORIZED":
        # capture failure raises , nothing is committed and the provider's retry starts over
        await tabby_client.capture_payment(payment_id, payment.get("amount"))
        applied = await mark_order_paid(session, order, payment_provider_session_id=payment_id)
    elif payment_status == "REJECTED":
        applied = await close_unpaid_order(session, order, OrderStatus.FAILED.value)
    elif payment_status == "EXPIRED":
        applied = await close_unpaid_order(session, order, OrderStatus.CANCELLED.value)

    await mark_webhook_processed(session, record)
    await session.commit()
    logger.info("webhook.tabby.processed", extra={"payment_id": payment_id, "payment_status": payment_status,
                                                  "applied": applied})
    return success_response({"received": True, "applied": applied})
