from fastapi import APIRouter
from storefront.api import version_prefix
from storefront.cart.routes import carts_router
from storefront.common.routes import home_router
from storefront.orders.routes import checkout_router, orders_admin_router, orders_router
from storefront.orders.webhooks import webhooks_router
from storefront.products.routes import prods_admin_router, prods_public_router, stock_router
from storefront.session.routes import session_admin_router, session_router
from storefront.wishlist.routes import wishlist_router


public_routers = APIRouter(prefix=version_prefix)

public_routers.include_router(session_router, prefix="/storefront/session", tags=["session"])
public_routers.include_router(carts_router, prefix="/storefront/cart", tags=["cart"])
public_routers.include_router(wishlist_router, prefix="/storefront/wishlist", tags=["wishlist"])
public_routers.include_router(stock_router, prefix="/storefront/stock", tags=["stock"])
public_routers.include_router(checkout_router, prefix="/storefront/checkout", tags=["checkout"])
public_routers.include_router(orders_router, prefix="/storefront/orders", tags=["orders"])
public_routers.include_router(prods_public_router, prefix="/products", tags=["products-public"])
public_routers.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
public_routers.include_router(home_router, tags=["home"])

#--------------------------------------------------------------------------------------------------------

admin_routers = APIRouter(prefix=f"{version_prefix}/admin")

admin_routers.include_router(prods_admin_router, prefix="/products", tags=["products-admin"])
admin_routers.include_router(orders_admin_router, prefix="/orders", tags=["orders-admin"])
admin_routers.include_router(session_admin_router, prefix="/storefront/session", tags=["session-admin"])
