import contextvars
from typing import Optional
from storefront.config.settings import config_settings

SESSION_COOKIE_NAME = config_settings.SESSION_COOKIE_NAME
SESSION_COOKIE_MAX_AGE = config_settings.SESSION_TTL_DAYS * 24 * 3600

# Context variable for request id , set by RequestIdMiddleware
request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)
