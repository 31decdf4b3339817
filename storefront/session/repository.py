from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from storefront.common.utils import now
from storefront.schema.full_schema import SessionStatus, StorefrontSession
from storefront.session.constants import logger


async def get_session_record(session, session_id: str) -> Optional[StorefrontSession]:
    res = await session.execute(select(StorefrontSession).where(StorefrontSession.session_id == session_id))
    return res.scalar_one_or_none()


async def upsert_session_record(session, session_id: str, expires_at: datetime,
                                client_meta: Optional[Dict[str, Any]]) -> StorefrontSession:
    """Insert an active record for ``session_id`` , or reset the existing one in place.

    Used both for brand new ids and for healing a verified token whose record
    is revoked or expired , the session id never changes.
    """
    ts = now()
    existing = await get_session_record(session, session_id)
    if existing is None:
        record = StorefrontSession(session_id=session_id, status=SessionStatus.ACTIVE.value, client_meta=client_meta,
                                   created_at=ts, updated_at=ts, last_active_at=ts, expires_at=expires_at)
        session.add(record)
        try:
            await session.flush()
            return record
        except IntegrityError:
            # another request created the same id first , fall through to the reset
            await session.rollback()
            logger.info("session.upsert.conflict", extra={"session_id": session_id})
            existing = await get_session_record(session, session_id)

    existing.status = SessionStatus.ACTIVE.value
    existing.user_id = None
    existing.cart_id = None
    existing.wishlist_id = None
    existing.client_meta = client_meta
    existing.created_at = ts
    existing.updated_at = ts
    existing.last_active_at = ts
    existing.expires_at = expires_at
    await session.flush()
    return existing


async def touch_session_record(session, record: StorefrontSession, expires_at: datetime,
                               client_meta: Optional[Dict[str, Any]]) -> StorefrontSession:
    ts = now()
    record.expires_at = expires_at
    record.last_active_at = ts
    record.updated_at = ts
    if client_meta:
        record.client_meta = {**(record.client_meta or {}), **client_meta}
    await session.flush()
    return record


async def mark_session_revoked(session, session_id: str) -> int:
    stmt = (
        update(StorefrontSession)
        .where(StorefrontSession.session_id == session_id)
        .values(status=SessionStatus.REVOKED.value, updated_at=now())
    )
    res = await session.execute(stmt)
    return res.rowcount


async def set_session_links(session, record: StorefrontSession, **links) -> StorefrontSession:
    # user_id / cart_id / wishlist_id
    for key, value in links.items():
        setattr(record, key, value)
    record.updated_at = now()
    await session.flush()
    return record
