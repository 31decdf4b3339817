from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.session")

# codes of a verified token whose record can be rebuilt under the same session id
HEALABLE_SESSION_ERRORS = frozenset(("SESSION_NOT_FOUND", "SESSION_REVOKED", "SESSION_EXPIRED"))
