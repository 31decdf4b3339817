from typing import Iterable
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from storefront.common.constants import request_id_ctx
from storefront.common.errors import AppError
from storefront.common.utils import build_error, error_details, json_error
from storefront.middlewares.constants import logger
from storefront.session.services import ensure_session
from storefront.session.utils import request_metadata, session_cookie_token, set_session_cookie


# every shopper facing path that reads or writes cart / wishlist / order state gets a live session ,
# handlers read it from request.state and never touch the cookie themselves .
class StorefrontSessionMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, session_maker, paths: Iterable[str]):
        super().__init__(app)
        self.session_maker = session_maker
        self.paths = tuple(paths)

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.paths):
            return await call_next(request)

        async with self.session_maker() as session:
            try:
                record, token = await ensure_session(session, session_cookie_token(request), request_metadata(request))
                await session.commit()
            except AppError as exc:
                # exception handlers do not see errors raised inside middleware
                logger.warning("session.middleware.failed", extra={"path": request.url.path, "code": exc.code})
                details = error_details(exc.message, exc.status_code, url=request.url.path,
                                        method=request.method, body=exc.details)
                return json_error(build_error(exc.code, details, request_id=request_id_ctx.get()),
                                  status_code=exc.status_code)

        request.state.storefront_session_id = record.session_id
        request.state.storefront_user_id = record.user_id

        response = await call_next(request)
        set_session_cookie(response, token)
        return response
