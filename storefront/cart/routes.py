from typing import Optional
from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.cart.models import AddItemIn, BillingDetailsIn, RemoveItemIn, UpdateItemIn
from storefront.cart.services import (add_item, clear_cart, get_billing_details, get_cart, remove_item,
                                      set_billing_details, update_item_quantity)
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session
from storefront.pricing.engine import InstallationSelection
from storefront.session.dependencies import Shopper, get_shopper

carts_router = APIRouter()


@carts_router.get("")
async def read_cart(shopper: Shopper = Depends(get_shopper), session: AsyncSession = Depends(get_session)):
    cart = await get_cart(session, shopper)
    return success_response({"cart": cart})


@carts_router.post("")
async def add_to_cart(payload: AddItemIn, shopper: Shopper = Depends(get_shopper),
                      session: AsyncSession = Depends(get_session)):
    installation = InstallationSelection(payload.installation_option, payload.installation_location_id)
    cart = await add_item(session, shopper, payload.product_id, payload.selected_variant_item_ids,
                          payload.quantity, installation)
    await session.commit()
    return success_response({"cart": cart})


@carts_router.patch("")
async def update_cart_item(payload: UpdateItemIn, shopper: Shopper = Depends(get_shopper),
                           session: AsyncSession = Depends(get_session)):
    installation = None
    if payload.installation_option is not None:
        installation = InstallationSelection(payload.installation_option, payload.installation_location_id)
    cart = await update_item_quantity(session, shopper, payload.product_id, payload.selected_variant_item_ids,
                                      payload.quantity, installation)
    await session.commit()
    return success_response({"cart": cart})


# with a body removes that line , without one empties the cart
@carts_router.delete("")
async def delete_cart_items(payload: Optional[RemoveItemIn] = Body(None), shopper: Shopper = Depends(get_shopper),
                            session: AsyncSession = Depends(get_session)):
    if payload is None:
        cart = await clear_cart(session, shopper)
    else:
        cart = await remove_item(session, shopper, payload.product_id, payload.selected_variant_item_ids)
    await session.commit()
    return success_response({"cart": cart})


@carts_router.get("/billing-details")
async def read_billing_details(shopper: Shopper = Depends(get_shopper), session: AsyncSession = Depends(get_session)):
    billing = await get_billing_details(session, shopper)
    return success_response({"billingDetails": billing})


@carts_router.put("/billing-details")
async def write_billing_details(payload: BillingDetailsIn, shopper: Shopper = Depends(get_shopper),
                                session: AsyncSession = Depends(get_session)):
    result = await set_billing_details(session, shopper, payload)
    await session.commit()
    return success_response(result)
