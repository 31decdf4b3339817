from typing import Any, Dict, Optional, Tuple
from fastapi import status
from storefront.cart.services import merge_session_cart_into_user
from storefront.common.errors import AppError, not_found
from storefront.common.utils import as_utc, isoformat, now
from storefront.schema.full_schema import SessionStatus, StorefrontSession
from storefront.session.constants import HEALABLE_SESSION_ERRORS, logger
from storefront.session.repository import (get_session_record, mark_session_revoked, set_session_links,
                                           touch_session_record, upsert_session_record)
from storefront.session.utils import new_session_id, session_expiry, sign_session_token, verify_session_token
from storefront.wishlist.services import merge_session_wishlist_into_user


def session_out(record: StorefrontSession) -> Dict[str, Any]:
    return {
        "sessionId": record.session_id,
        "status": record.status,
        "userId": record.user_id,
        "cartId": record.cart_id,
        "wishlistId": record.wishlist_id,
        "createdAt": isoformat(record.created_at),
        "updatedAt": isoformat(record.updated_at),
        "expiresAt": isoformat(record.expires_at),
        "lastActiveAt": isoformat(record.last_active_at),
    }


async def find_active_session(session, session_id: str) -> StorefrontSession:
    record = await get_session_record(session, session_id)
    if record is None:
        raise not_found("SESSION_NOT_FOUND", "Session not found")
    if record.status != SessionStatus.ACTIVE.value:
        raise AppError("SESSION_REVOKED", "Session has been revoked", status.HTTP_401_UNAUTHORIZED)
    if as_utc(record.expires_at) <= now():
        await mark_session_revoked(session, session_id)
        logger.info("session.expired", extra={"session_id": session_id})
        raise AppError("SESSION_EXPIRED", "Session has expired", status.HTTP_401_UNAUTHORIZED)
    return record


async def create_session(session, session_id: str, metadata: Optional[Dict[str, Any]] = None) -> StorefrontSession:
    record = await upsert_session_record(session, session_id, session_expiry(), metadata or None)
    logger.info("session.created", extra={"session_id": session_id})
    return record


async def touch_session(session, session_id: str, metadata: Optional[Dict[str, Any]] = None) -> StorefrontSession:
    record = await find_active_session(session, session_id)
    return await touch_session_record(session, record, session_expiry(), metadata or None)


async def ensure_session(session, token: Optional[str],
                         metadata: Optional[Dict[str, Any]] = None) -> Tuple[StorefrontSession, str]:
    """Resolve the shopper session behind ``token`` , creating or healing it as needed.

    Returns the active record and a freshly signed token for the cookie , the
    expiry slides forward on every call.
    """
    session_id = verify_session_token(token)
    if session_id is None:
        record = await create_session(session, new_session_id(), metadata)
    else:
        try:
            record = await touch_session(session, session_id, metadata)
        except AppError as exc:
            if exc.code not in HEALABLE_SESSION_ERRORS:
                raise
            logger.info("session.healed", extra={"session_id": session_id, "reason": exc.code})
            record = await create_session(session, session_id, metadata)

    return record, sign_session_token(record.session_id, as_utc(record.expires_at))


async def get_current_session(session, token: Optional[str]) -> Optional[StorefrontSession]:
    """Read-only lookup , never creates. None means the caller should drop the cookie."""
    session_id = verify_session_token(token)
    if session_id is None:
        return None
    try:
        return await find_active_session(session, session_id)
    except AppError as exc:
        logger.debug("session.lookup.inactive", extra={"session_id": session_id, "reason": exc.code})
        return None


async def revoke_session(session, session_id: Optional[str]) -> Dict[str, bool]:
    if session_id:
        await mark_session_revoked(session, session_id)
        logger.info("session.revoked", extra={"session_id": session_id})
    return {"success": bool(session_id)}


async def attach_user(session, session_id: str, user_id: str) -> StorefrontSession:
    """Login hook: link the user and fold the guest cart and wishlist into the user's.

    Runs inside the caller's transaction , a failure anywhere leaves both
    sides untouched and re-running after success changes nothing.
    """
    record = await find_active_session(session, session_id)
    cart_id = await merge_session_cart_into_user(session, session_id, user_id)
    wishlist_id = await merge_session_wishlist_into_user(session, session_id, user_id)
    await set_session_links(session, record, user_id=user_id, cart_id=cart_id, wishlist_id=wishlist_id)

    logger.info("session.user_attached", extra={"session_id": session_id, "user_id": user_id})
    return record
