from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from storefront.common.errors import AppError, not_found
from storefront.schema.full_schema import Orders, Product, ProductStock, ReservationStatus, StockReservation


def product_to_dict(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "public_id": product.public_id,
        "name": product.name,
        "description": product.description,
        "base_price": product.base_price,
        "offer_percentage": product.offer_percentage,
        "variants": product.variants or [],
        "installation_service": product.installation_service,
        "images": product.images or [],
    }


async def find_product_by_pid(session, product_pid: str) -> Optional[Dict[str, Any]]:
    stmt = select(Product).where(Product.public_id == product_pid, Product.deleted_at.is_(None))
    res = await session.execute(stmt)
    product = res.scalar_one_or_none()
    if product is None:
        return None
    return product_to_dict(product)


async def get_product_or_404(session, product_pid: str) -> Dict[str, Any]:
    product = await find_product_by_pid(session, product_pid)
    if product is None:
        raise not_found("PRODUCT_NOT_FOUND", "Product not found", {"productId": product_pid})
    return product


async def fetch_products_by_pids(session, product_pids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    pids = list(set(product_pids))
    if not pids:
        return {}
    stmt = select(Product).where(Product.public_id.in_(pids), Product.deleted_at.is_(None))
    res = await session.execute(stmt)
    return {p.public_id: product_to_dict(p) for p in res.scalars().all()}


async def insert_product(session, data: Dict[str, Any], stock: List[Tuple[str, int]]) -> Product:
    product = Product(**data)
    session.add(product)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise AppError("PRODUCT_NAME_TAKEN", "A product with this name already exists", status_code=409,
                       details={"name": data.get("name")})

    for variant_key, stock_count in stock:
        session.add(ProductStock(product_id=product.id, variant_key=variant_key, stock_count=stock_count))
    await session.flush()
    return product


async def fetch_stock_rows(session, product_id: int) -> Dict[str, int]:
    stmt = select(ProductStock.variant_key, ProductStock.stock_count).where(ProductStock.product_id == product_id)
    res = await session.execute(stmt)
    return {row[0]: int(row[1]) for row in res.all()}


async def fetch_stock_count(session, product_id: int, variant_key: str) -> Optional[int]:
    stmt = select(ProductStock.stock_count).where(
        ProductStock.product_id == product_id, ProductStock.variant_key == variant_key)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def reserved_quantity(session, product_pid: str, variant_key: str, at: datetime,
                            exclude_session_id: Optional[str] = None) -> int:
    """Units held by active , unexpired reservations of other orders."""
    conditions = [
        StockReservation.product_id == product_pid,
        StockReservation.variant_key == variant_key,
        StockReservation.status == ReservationStatus.ACTIVE.value,
        StockReservation.reserved_until > at,
    ]
    if exclude_session_id is not None:
        # a shopper retrying checkout is never blocked by their own earlier attempt
        own_orders = select(Orders.id).where(Orders.session_id == exclude_session_id)
        conditions.append(StockReservation.order_id.notin_(own_orders))
    stmt = select(func.coalesce(func.sum(StockReservation.quantity), 0)).where(and_(*conditions))
    res = await session.execute(stmt)
    return int(res.scalar_one())


async def decrement_stock_if_available(session, product_id: int, variant_key: str, quantity: int) -> bool:
    # single conditional update , concurrent decrements can never push stock below zero
    stmt = (
        update(ProductStock)
        .where(
            ProductStock.product_id == product_id,
            ProductStock.variant_key == variant_key,
            ProductStock.stock_count >= quantity,
        )
        .values(stock_count=ProductStock.stock_count - quantity)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def insert_reservations(session, order_id: int, lines: List[Dict[str, Any]], reserved_until: datetime) -> None:
    for line in lines:
        session.add(StockReservation(
            order_id=order_id,
            product_id=line["product_id"],
            variant_key=line["variant_key"],
            quantity=line["quantity"],
            reserved_until=reserved_until,
        ))
    await session.flush()


async def set_reservations_status(session, order_id: int, status: str) -> int:
    stmt = (
        update(StockReservation)
        .where(StockReservation.order_id == order_id,
               StockReservation.status == ReservationStatus.ACTIVE.value)
        .values(status=status)
    )
    res = await session.execute(stmt)
    return res.rowcount
