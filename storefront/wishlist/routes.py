from typing import Optional
from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session
from storefront.session.dependencies import Shopper, get_shopper
from storefront.wishlist.models import WishlistItemIn
from storefront.wishlist.services import (add_to_wishlist, clear_wishlist, get_wishlist, remove_from_wishlist,
                                          toggle_wishlist_item)

wishlist_router = APIRouter()


@wishlist_router.get("")
async def read_wishlist(shopper: Shopper = Depends(get_shopper), session: AsyncSession = Depends(get_session)):
    return success_response({"wishlist": await get_wishlist(session, shopper)})


@wishlist_router.post("")
async def toggle_item(payload: WishlistItemIn, shopper: Shopper = Depends(get_shopper),
                      session: AsyncSession = Depends(get_session)):
    result = await toggle_wishlist_item(session, shopper, payload.product_id, payload.selected_variant_item_ids)
    await session.commit()
    return success_response(result)


@wishlist_router.put("/items")
async def add_item(payload: WishlistItemIn, shopper: Shopper = Depends(get_shopper),
                   session: AsyncSession = Depends(get_session)):
    wishlist = await add_to_wishlist(session, shopper, payload.product_id, payload.selected_variant_item_ids)
    await session.commit()
    return success_response({"wishlist": wishlist})


# item from the body or from ?productId=&variantIds=a,b ; neither clears the wishlist
@wishlist_router.delete("")
async def delete_items(payload: Optional[WishlistItemIn] = Body(None),
                       product_id: Optional[str] = Query(None, alias="productId"),
                       variant_ids: Optional[str] = Query(None, alias="variantIds"),
                       shopper: Shopper = Depends(get_shopper), session: AsyncSession = Depends(get_session)):
    if payload is None and product_id:
        payload = WishlistItemIn(product_id=product_id,
                                 selected_variant_item_ids=[i for i in (variant_ids or "").split(",") if i.strip()])

    if payload is None:
        wishlist = await clear_wishlist(session, shopper)
    else:
        wishlist = await remove_from_wishlist(session, shopper, payload.product_id, payload.selected_variant_item_ids)
    await session.commit()
    return success_response({"wishlist": wishlist})
