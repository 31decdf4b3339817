import hmac
from typing import Optional
from fastapi import Header, status
from storefront.common.errors import AppError
from storefront.common.logging_setup import get_logger
from storefront.config.admin_config import admin_config

logger = get_logger("storefront.common.admin")


async def require_admin(x_admin_secret: Optional[str] = Header(default=None, alias="X-Admin-Secret")) -> None:
    # admin authentication lives in the back-office ; this only checks the shared secret it forwards
    expected = admin_config.ADMIN_SECRET
    if not expected:
        logger.warning("admin.guard.secret_not_configured")
        raise AppError("ADMIN_DISABLED", "Admin API is not configured", status.HTTP_403_FORBIDDEN)
    if not x_admin_secret or not hmac.compare_digest(x_admin_secret.encode(), expected.encode()):
        logger.warning("admin.guard.rejected")
        raise AppError("ADMIN_FORBIDDEN", "Not authorized", status.HTTP_403_FORBIDDEN)
