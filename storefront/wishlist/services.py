from typing import Any, Dict, Iterable, List, Optional
from storefront.common.utils import isoformat
from storefront.products.repository import get_product_or_404
from storefront.products.utils import normalize_variant_ids, variant_combination_key
from storefront.schema.full_schema import WishlistItem
from storefront.session.dependencies import Shopper
from storefront.wishlist.constants import logger
from storefront.wishlist.repository import (clear_wishlist_items, delete_wishlist, delete_wishlist_item,
                                            fetch_wishlist_items, find_wishlist, find_wishlist_item,
                                            get_or_create_wishlist, insert_wishlist_item, set_wishlist_owner)


def wishlist_out(items: List[WishlistItem]) -> Dict[str, Any]:
    return {
        "items": [
            {
                "productId": item.product_id,
                "selectedVariantItemIds": list(item.selected_variant_item_ids or []),
                "createdAt": isoformat(item.created_at),
            }
            for item in items
        ],
        "totalItems": len(items),
    }


async def get_wishlist(session, shopper: Shopper) -> Dict[str, Any]:
    wishlist = await find_wishlist(session, shopper.user_id, shopper.session_id)
    if wishlist is None:
        return wishlist_out([])
    return wishlist_out(await fetch_wishlist_items(session, wishlist.id))


async def add_to_wishlist(session, shopper: Shopper, product_id: str,
                          selected_variant_item_ids: Iterable[str]) -> Dict[str, Any]:
    await get_product_or_404(session, product_id)
    selected = normalize_variant_ids(selected_variant_item_ids)

    wishlist = await get_or_create_wishlist(session, shopper.user_id, shopper.session_id)
    wishlist_id = wishlist.id
    if await insert_wishlist_item(session, wishlist_id, product_id, variant_combination_key(selected), selected):
        logger.info("wishlist.item.added", extra={"wishlist_id": wishlist_id, "product_id": product_id})
    return wishlist_out(await fetch_wishlist_items(session, wishlist_id))


async def remove_from_wishlist(session, shopper: Shopper, product_id: str,
                               selected_variant_item_ids: Iterable[str]) -> Dict[str, Any]:
    wishlist = await find_wishlist(session, shopper.user_id, shopper.session_id)
    if wishlist is None:
        return wishlist_out([])
    if await delete_wishlist_item(session, wishlist.id, product_id, variant_combination_key(selected_variant_item_ids)):
        logger.info("wishlist.item.removed", extra={"wishlist_id": wishlist.id, "product_id": product_id})
    return wishlist_out(await fetch_wishlist_items(session, wishlist.id))


async def toggle_wishlist_item(session, shopper: Shopper, product_id: str,
                               selected_variant_item_ids: Iterable[str]) -> Dict[str, Any]:
    selected = normalize_variant_ids(selected_variant_item_ids)
    wishlist = await find_wishlist(session, shopper.user_id, shopper.session_id)
    present = wishlist is not None and await find_wishlist_item(
        session, wishlist.id, product_id, variant_combination_key(selected)) is not None

    if present:
        return {"added": False, "wishlist": await remove_from_wishlist(session, shopper, product_id, selected)}
    return {"added": True, "wishlist": await add_to_wishlist(session, shopper, product_id, selected)}


async def clear_wishlist(session, shopper: Shopper) -> Dict[str, Any]:
    wishlist = await find_wishlist(session, shopper.user_id, shopper.session_id)
    if wishlist is not None:
        await clear_wishlist_items(session, wishlist.id)
    return wishlist_out([])


async def merge_session_wishlist_into_user(session, session_id: str, user_id: str) -> Optional[int]:
    """Union the guest wishlist into the user's , the user's own entries win on identity clashes.

    The guest wishlist is deleted afterwards , or promoted to the user when
    the user had none. A second run finds no guest wishlist and does nothing.
    """
    user_wishlist = await find_wishlist(session, user_id, None)
    guest_wishlist = await find_wishlist(session, None, session_id)

    if guest_wishlist is None:
        return user_wishlist.id if user_wishlist else None
    if user_wishlist is None:
        await set_wishlist_owner(session, guest_wishlist, user_id)
        return guest_wishlist.id
    if user_wishlist.id == guest_wishlist.id:
        return user_wishlist.id

    user_wishlist_id, guest_wishlist_id = user_wishlist.id, guest_wishlist.id
    added = 0
    for item in await fetch_wishlist_items(session, guest_wishlist_id):
        if await insert_wishlist_item(session, user_wishlist_id, item.product_id, item.variant_key,
                                      list(item.selected_variant_item_ids or []), created_at=item.created_at):
            added += 1

    await delete_wishlist(session, guest_wishlist_id)
    logger.info("wishlist.merged", extra={"source_wishlist_id": guest_wishlist_id,
                                          "target_wishlist_id": user_wishlist_id, "added": added})
    return user_wishlist_id
