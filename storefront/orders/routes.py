from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.common.dependencies import require_admin
from storefront.common.errors import AppError
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session
from storefront.orders.constants import logger
from storefront.orders.models import AvailabilityRequestIn, CheckoutRequestIn, OrderStatusUpdateIn
from storefront.orders.repository import get_order_or_404, list_orders_admin, list_orders_for_shopper
from storefront.orders.services import admin_update_status, check_tabby_availability, order_out, start_checkout
from storefront.schema.full_schema import OrderStatus
from storefront.session.dependencies import Shopper, get_shopper

checkout_router = APIRouter()
orders_router = APIRouter()
orders_admin_router = APIRouter(dependencies=[Depends(require_admin)])


@checkout_router.post("")
async def checkout(request: Request, payload: CheckoutRequestIn, shopper: Shopper = Depends(get_shopper),
                   session: AsyncSession = Depends(get_session)):

    logger.info("checkout.attempt", extra={"provider": payload.provider.value, "buy_now": bool(payload.items)})

    result = await start_checkout(session, shopper, payload.provider.value, payload.currency, payload.items,
                                  origin=request.headers.get("origin"))
    return success_response(result)


@checkout_router.post("/tabby/availability")
async def tabby_availability(request: Request, payload: AvailabilityRequestIn,
                             shopper: Shopper = Depends(get_shopper), session: AsyncSession = Depends(get_session)):
    result = await check_tabby_availability(session, shopper, payload.currency, payload.items,
                                            origin=request.headers.get("origin"))
    return success_response(result)


@orders_router.get("")
async def my_orders(shopper: Shopper = Depends(get_shopper), session: AsyncSession = Depends(get_session)):
    orders = await list_orders_for_shopper(session, shopper.session_id, shopper.user_id)
    return success_response({"orders": [order_out(o) for o in orders]})


@orders_admin_router.get("")
async def admin_list_orders(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                            status: Optional[str] = Query(None), session: AsyncSession = Depends(get_session)):
    if status is not None and status not in {s.value for s in OrderStatus}:
        raise AppError("INVALID_STATUS", f"Unknown order status '{status}'", details={"status": status})

    orders, total = await list_orders_admin(session, page, limit, status)
    return success_response({"orders": [order_out(o) for o in orders], "total": total, "page": page, "limit": limit})


@orders_admin_router.get("/{order_id}")
async def admin_get_order(order_id: str, session: AsyncSession = Depends(get_session)):
    order = await get_order_or_404(session, order_id)
    return success_response({"order": order_out(order)})


@orders_admin_router.patch("/{order_id}")
async def admin_patch_order(order_id: str, payload: OrderStatusUpdateIn, session: AsyncSession = Depends(get_session)):
    order = await get_order_or_404(session, order_id)
    order = await admin_update_status(session, order, payload.status)
    await session.commit()

    logger.info("order.admin.status_updated", extra={"order_id": order.id, "order_status": order.status})
    return success_response({"order": order_out(order)})
