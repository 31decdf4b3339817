from contextlib import asynccontextmanager
from fastapi import FastAPI
from storefront.api import cur_version, version_prefix
from storefront.api.routers import admin_routers, public_routers
from storefront.common.custom_exceptions import register_all_exceptions
from storefront.common.logging_setup import setup_logging, shutdown_logging
from storefront.config.admin_config import admin_config
from storefront.db.bootstrap import init_models
from storefront.db.connection import async_engine, async_session
from storefront.middlewares.request_id_middleware import RequestIdMiddleware
from storefront.middlewares.storefront_session_middleware import StorefrontSessionMiddleware
from storefront.session.utils import get_session_secret

SESSION_PATHS = [
    f"{version_prefix}/storefront/cart",
    f"{version_prefix}/storefront/wishlist",
    f"{version_prefix}/storefront/checkout",
    f"{version_prefix}/storefront/orders",
]


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    setup_logging()
    # refuse to serve without a signing secret
    get_session_secret()
    await init_models(async_engine)

    try:
        yield
    finally:
        await async_engine.dispose()
        shutdown_logging()


def create_app():
    app = FastAPI(
        title="Storefront",
        version=cur_version,
        lifespan=app_lifespan)

    app.include_router(public_routers)

    if admin_config.ENABLE_ADMIN:
        app.include_router(admin_routers)      # mounts /api/v1/admin

    app.add_middleware(StorefrontSessionMiddleware, session_maker=async_session, paths=SESSION_PATHS)
    app.add_middleware(RequestIdMiddleware)
    register_all_exceptions(app)

    return app

app = create_app()
