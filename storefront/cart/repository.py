from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import case, delete, select, update
from sqlalchemy.exc import IntegrityError
from storefront.cart.constants import logger
from storefront.common.errors import AppError
from storefront.common.utils import now
from storefront.config.settings import config_settings
from storefront.schema.full_schema import Cart, CartLine


async def find_cart(session, user_id: Optional[str], session_id: Optional[str]) -> Optional[Cart]:
    if user_id is not None:
        res = await session.execute(select(Cart).where(Cart.user_id == user_id).limit(1))
        cart = res.scalar_one_or_none()
        if cart is not None:
            return cart

    if session_id is not None:
        res = await session.execute(select(Cart).where(Cart.session_id == session_id).limit(1))
        return res.scalar_one_or_none()
    return None


async def get_or_create_cart(session, user_id: Optional[str], session_id: Optional[str]) -> Cart:
    cart = await find_cart(session, user_id, session_id)
    if cart is not None:
        return cart

    cart = Cart(user_id=user_id) if user_id is not None else Cart(session_id=session_id)
    session.add(cart)
    try:
        await session.commit()
        return cart
    except IntegrityError:
        # concurrent first touch created it
        await session.rollback()
        logger.info("cart.create.conflict", extra={"session_id": session_id})
        return await find_cart(session, user_id, session_id)


async def fetch_cart_lines(session, cart_id: int) -> List[CartLine]:
    stmt = select(CartLine).where(CartLine.cart_id == cart_id).order_by(CartLine.created_at, CartLine.id)
    res = await session.execute(stmt)
    return list(res.scalars().all())


def _identity(cart_id: int, product_id: str, variant_key: str):
    return (CartLine.cart_id == cart_id, CartLine.product_id == product_id, CartLine.variant_key == variant_key)


async def find_cart_line(session, cart_id: int, product_id: str, variant_key: str) -> Optional[CartLine]:
    res = await session.execute(select(CartLine).where(*_identity(cart_id, product_id, variant_key)))
    return res.scalar_one_or_none()


async def _increment_line(session, cart_id: int, values: Dict[str, Any], quantity: int, clamp: bool = False) -> int:
    max_qty = config_settings.MAX_LINE_QUANTITY
    new_qty = CartLine.quantity + quantity
    stmt = update(CartLine).where(*_identity(cart_id, values["product_id"], values["variant_key"]))
    if clamp:
        new_qty = case((new_qty > max_qty, max_qty), else_=new_qty)
    else:
        stmt = stmt.where(new_qty <= max_qty)
    stmt = stmt.values(quantity=new_qty, updated_at=now(),
                       **{k: v for k, v in values.items() if k not in ("product_id", "variant_key")})
    res = await session.execute(stmt)
    return res.rowcount


def _over_limit(line: CartLine, quantity: int) -> AppError:
    return AppError("INVALID_QUANTITY", "Line quantity would exceed the maximum", details={
        "quantity": line.quantity + quantity,
        "max": config_settings.MAX_LINE_QUANTITY,
    })


async def upsert_cart_line(session, cart_id: int, values: Dict[str, Any], quantity: int,
                           clamp: bool = False) -> Tuple[CartLine, bool]:
    """Add ``quantity`` to the line with the same identity or insert it.

    ``values`` carries the identity (product_id , variant_key) plus the freshly
    priced fields , which always overwrite what the line held before. A sum
    above ``MAX_LINE_QUANTITY`` raises unless ``clamp`` is set.
    """
    product_id, variant_key = values["product_id"], values["variant_key"]
    if await _increment_line(session, cart_id, values, quantity, clamp):
        return await find_cart_line(session, cart_id, product_id, variant_key), False

    existing = await find_cart_line(session, cart_id, product_id, variant_key)
    if existing is not None:
        raise _over_limit(existing, quantity)

    line = CartLine(cart_id=cart_id, quantity=quantity, **values)
    try:
        # only the savepoint rolls back on a conflict
        async with session.begin_nested():
            session.add(line)
        return line, True
    except IntegrityError:
        # a concurrent add inserted the same identity first , retry once as an increment
        logger.info("cart.line.upsert_conflict", extra={"cart_id": cart_id, "product_id": product_id})
        if not await _increment_line(session, cart_id, values, quantity, clamp):
            raise _over_limit(await find_cart_line(session, cart_id, product_id, variant_key), quantity)
        return await find_cart_line(session, cart_id, product_id, variant_key), False



async def update_cart_line(session, cart_id: int, product_id: str, variant_key: str, values: Dict[str, Any]) -> int:
    stmt = update(CartLine).where(*_identity(cart_id, product_id, variant_key)).values(updated_at=now(), **values)
    res = await session.execute(stmt)
    return res.rowcount


async def delete_cart_line(session, cart_id: int, product_id: str, variant_key: str) -> int:
    res = await session.execute(delete(CartLine).where(*_identity(cart_id, product_id, variant_key)))
    return res.rowcount


async def clear_cart_lines(session, cart_id: int) -> int:
    res = await session.execute(delete(CartLine).where(CartLine.cart_id == cart_id))
    return res.rowcount


async def set_cart_billing(session, cart: Cart, billing: Dict[str, Any]) -> Cart:
    cart.billing_details = billing
    cart.updated_at = now()
    await session.flush()
    return cart


async def set_cart_owner(session, cart: Cart, user_id: str) -> Cart:
    cart.user_id = user_id
    cart.updated_at = now()
    await session.flush()
    return cart


async def delete_cart(session, cart_id: int) -> None:
    # lines first , sqlite does not enforce the cascade
    await clear_cart_lines(session, cart_id)
    await session.execute(delete(Cart).where(Cart.id == cart_id))
