from datetime import datetime
from typing import List, Optional
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from storefront.common.utils import now
from storefront.schema.full_schema import Wishlist, WishlistItem
from storefront.wishlist.constants import logger


async def find_wishlist(session, user_id: Optional[str], session_id: Optional[str]) -> Optional[Wishlist]:
    if user_id is not None:
        res = await session.execute(select(Wishlist).where(Wishlist.user_id == user_id).limit(1))
        wishlist = res.scalar_one_or_none()
        if wishlist is not None:
            return wishlist

    if session_id is not None:
        res = await session.execute(select(Wishlist).where(Wishlist.session_id == session_id).limit(1))
        return res.scalar_one_or_none()
    return None


async def get_or_create_wishlist(session, user_id: Optional[str], session_id: Optional[str]) -> Wishlist:
    wishlist = await find_wishlist(session, user_id, session_id)
    if wishlist is not None:
        return wishlist

    wishlist = Wishlist(user_id=user_id) if user_id is not None else Wishlist(session_id=session_id)
    session.add(wishlist)
    try:
        await session.commit()
        return wishlist
    except IntegrityError:
        await session.rollback()
        logger.info("wishlist.create.conflict", extra={"session_id": session_id})
        return await find_wishlist(session, user_id, session_id)


async def fetch_wishlist_items(session, wishlist_id: int) -> List[WishlistItem]:
    stmt = (
        select(WishlistItem)
        .where(WishlistItem.wishlist_id == wishlist_id)
        .order_by(WishlistItem.created_at, WishlistItem.id)
    )
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def find_wishlist_item(session, wishlist_id: int, product_id: str, variant_key: str) -> Optional[WishlistItem]:
    stmt = select(WishlistItem).where(
        WishlistItem.wishlist_id == wishlist_id,
        WishlistItem.product_id == product_id,
        WishlistItem.variant_key == variant_key,
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def insert_wishlist_item(session, wishlist_id: int, product_id: str, variant_key: str,
                               selected_ids: List[str], created_at: Optional[datetime] = None) -> bool:
    """False when the item was already there."""
    if await find_wishlist_item(session, wishlist_id, product_id, variant_key) is not None:
        return False
    item = WishlistItem(wishlist_id=wishlist_id, product_id=product_id, variant_key=variant_key,
                        selected_variant_item_ids=selected_ids, created_at=created_at or now())
    try:
        async with session.begin_nested():
            session.add(item)
    except IntegrityError:
        return False
    return True


async def delete_wishlist_item(session, wishlist_id: int, product_id: str, variant_key: str) -> int:
    stmt = delete(WishlistItem).where(
        WishlistItem.wishlist_id == wishlist_id,
        WishlistItem.product_id == product_id,
        WishlistItem.variant_key == variant_key,
    )
    res = await session.execute(stmt)
    return res.rowcount


async def clear_wishlist_items(session, wishlist_id: int) -> int:
    res = await session.execute(delete(WishlistItem).where(WishlistItem.wishlist_id == wishlist_id))
    return res.rowcount


async def set_wishlist_owner(session, wishlist: Wishlist, user_id: str) -> Wishlist:
    wishlist.user_id = user_id
    wishlist.updated_at = now()
    await session.flush()
    return wishlist


async def delete_wishlist(session, wishlist_id: int) -> None:
    await clear_wishlist_items(session, wishlist_id)
    await session.execute(delete(Wishlist).where(Wishlist.id == wishlist_id))
