from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.common.dependencies import require_admin
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session
from storefront.session.models import AttachUserIn, RevokeSessionIn
from storefront.session.services import attach_user, ensure_session, get_current_session, revoke_session, session_out
from storefront.session.utils import (clear_session_cookie, request_metadata, session_cookie_token,
                                      set_session_cookie, verify_session_token)

session_router = APIRouter()
session_admin_router = APIRouter()


@session_router.get("")
async def read_session(request: Request, session: AsyncSession = Depends(get_session)):
    token = session_cookie_token(request)
    record = await get_current_session(session, token)
    # expiry may have been recorded as a revocation during the lookup
    await session.commit()

    if record is None:
        response = success_response({"session": None})
        if token:
            clear_session_cookie(response)
        return response
    return success_response({"session": session_out(record)})


@session_router.post("")
async def init_session(request: Request, session: AsyncSession = Depends(get_session)):
    record, token = await ensure_session(session, session_cookie_token(request), request_metadata(request))
    await session.commit()

    response = success_response({"session": session_out(record)})
    set_session_cookie(response, token)
    return response


@session_router.delete("")
async def end_session(request: Request, session: AsyncSession = Depends(get_session)):
    # only the caller's own cookie session , other ids go through the admin route
    result = await revoke_session(session, verify_session_token(session_cookie_token(request)))
    await session.commit()

    response = success_response(result)
    clear_session_cookie(response)
    return response


@session_admin_router.post("/revoke", dependencies=[Depends(require_admin)])
async def revoke_session_route(payload: RevokeSessionIn, session: AsyncSession = Depends(get_session)):
    result = await revoke_session(session, payload.session_id)
    await session.commit()
    return success_response(result)


@session_admin_router.post("/attach-user", dependencies=[Depends(require_admin)])
async def attach_user_route(payload: AttachUserIn, session: AsyncSession = Depends(get_session)):
    record = await attach_user(session, payload.session_id, payload.user_id)
    await session.commit()
    return success_response({"session": session_out(record)})
