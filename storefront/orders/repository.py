from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from storefront.common.errors import not_found
from storefront.common.utils import now
from storefront.orders.constants import logger
from storefront.schema.full_schema import Orders, OrderStatus, PaymentWebhookEvent


async def insert_order(session, data: Dict[str, Any]) -> Orders:
    order = Orders(status=OrderStatus.PENDING.value, **data)
    session.add(order)
    await session.flush()
    return order


async def set_order_provider_session(session, order_id: int, provider_session_id: str) -> int:
    stmt = (
        update(Orders)
        .where(Orders.id == order_id)
        .values(payment_provider_session_id=provider_session_id, updated_at=now())
    )
    res = await session.execute(stmt)
    return res.rowcount


async def set_order_idempotency_key(session, order_id: int, idempotency_key: str) -> None:
    await session.execute(update(Orders).where(Orders.id == order_id).values(idempotency_key=idempotency_key))


async def transition_order_status(session, order_id: int, to_status: str,
                                  from_status: str = OrderStatus.PENDING.value, **values) -> bool:
    """Move the order only if it is still in ``from_status``.

    The status check is part of the UPDATE , a replayed or concurrent event
    that lost the race affects no row and gets False back.
    """
    stmt = (
        update(Orders)
        .where(Orders.id == order_id, Orders.status == from_status)
        .values(status=to_status, updated_at=now(), **values)
    )
    res = await session.execute(stmt)
    moved = res.rowcount == 1
    logger.info("order.status.transition", extra={"order_id": order_id, "from_status": from_status,
                                                  "to_status": to_status, "applied": moved})
    return moved


async def get_order_by_public_id(session, order_pid: str) -> Optional[Orders]:
    res = await session.execute(select(Orders).where(Orders.public_id == order_pid))
    return res.scalar_one_or_none()


async def get_order_or_404(session, order_pid: str) -> Orders:
    order = await get_order_by_public_id(session, order_pid)
    if order is None:
        raise not_found("ORDER_NOT_FOUND", "Order not found", {"orderId": order_pid})
    return order


async def get_order_by_provider_session_id(session, provider_session_id: str) -> Optional[Orders]:
    stmt = select(Orders).where(Orders.payment_provider_session_id == provider_session_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def list_orders_for_shopper(session, session_id: str, user_id: Optional[str] = None) -> List[Orders]:
    condition = Orders.session_id == session_id
    if user_id:
        condition = or_(condition, Orders.user_id == user_id)
    stmt = select(Orders).where(condition).order_by(Orders.created_at.desc(), Orders.id.desc())
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def list_orders_admin(session, page: int, limit: int, status: Optional[str] = None) -> Tuple[List[Orders], int]:
    count_stmt = select(func.count(Orders.id))
    stmt = select(Orders).order_by(Orders.created_at.desc(), Orders.id.desc())
    if status:
        count_stmt = count_stmt.where(Orders.status == status)
        stmt = stmt.where(Orders.status == status)

    total = (await session.execute(count_stmt)).scalar_one()
    res = await session.execute(stmt.offset((page - 1) * limit).limit(limit))
    return list(res.scalars().all()), int(total)


async def orders_by_email(session, email: str, limit: int = 10) -> List[Orders]:
    stmt = (
        select(Orders)
        .where(func.lower(Orders.billing_email) == email.lower())
        .order_by(Orders.created_at.desc())
        .limit(limit)
    )
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def record_webhook_event(session, provider: str, provider_event_id: str,
                               event_type: Optional[str], payload: Dict[str, Any]) -> Optional[PaymentWebhookEvent]:
    """Store a delivery , None when the same (provider , event id) was already processed."""
    stmt = select(PaymentWebhookEvent).where(
        PaymentWebhookEvent.provider == provider,
        PaymentWebhookEvent.provider_event_id == provider_event_id,
    )
    existing = (await session.execute(stmt)).scalar_one_or_none()
    if existing is not None:
        return None

    event = PaymentWebhookEvent(provider=provider, provider_event_id=provider_event_id,
                                event_type=event_type, payload=payload)
    session.add(event)
    try:
        await session.flush()
    except IntegrityError:
        # concurrent delivery of the same event won the insert
        await session.rollback()
        return None
    return event


async def mark_webhook_processed(session, event: PaymentWebhookEvent) -> None:
    event.processed_at = now()
    await session.flush()
