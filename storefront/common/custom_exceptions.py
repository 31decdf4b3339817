from fastapi import FastAPI, Request,status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from storefront import logger
from storefront.common.errors import AppError
from storefront.common.utils import build_error, error_details, json_error 
from storefront.common.constants import request_id_ctx


async def fallback_handler(request: Request, exc: Exception):

    rid = request_id_ctx.get(None)

    logger.error(
        "unexpected.exception",
        extra={
            "path": request.url.path,
            "method": request.method,
            "request_id": rid,
        },
        exc_info=exc,
    )

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    details = error_details("Internal Server Error", status_code, url=request.url.path, method=request.method)
    
    payload = build_error(code="SERVER_ERROR", details=details, request_id=rid)
    return json_error(payload, status_code=status_code)


async def app_error_handler(request: Request, exc: AppError):
    rid = request_id_ctx.get(None)
    log_extra = {
        "code": exc.code,
        "status_code": exc.status_code,
        "path": request.url.path,
        "method": request.method,
    }
    if exc.status_code >= 500:
        logger.error("app_error.upstream", extra=log_extra)
    else:
        logger.info("app_error.client", extra=log_extra)

    details = error_details(exc.message, exc.status_code, url=request.url.path,
                            method=request.method, body=exc.details)
    payload = build_error(code=exc.code, details=details, request_id=rid)
    return json_error(payload, status_code=exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    rid = request_id_ctx.get(None)
    logger.warning(
        "request.validation_failed",
        extra={
            "errors": exc.errors(),
            "path": request.url.path,
            "request_id": rid,
        },
    )
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    # errors() may hold non serializable ctx values (e.g. the raised ValueError)
    body = [{"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")} for err in exc.errors()]
    details = error_details("invalid request", status_code, url=request.url.path, method=request.method, body=body)
    payload = build_error(code="UNPROCESSABLE_ENTITY", details=details, request_id=rid)
    return json_error(payload, status_code=status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
   
    rid = request_id_ctx.get(None)

    details = error_details(str(exc.detail), exc.status_code, url=request.url.path, method=request.method)
    payload = build_error(code=f"HTTP_{exc.status_code}", details=details, request_id=rid)
    return json_error(payload, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def register_all_exceptions(app: FastAPI):

    app.add_exception_handler(
        Exception, # catch all unidentified/unhandled exceptions
        fallback_handler
    )

    app.add_exception_handler(
        AppError,
        app_error_handler
    )

    app.add_exception_handler(
        RequestValidationError,
        validation_exception_handler
    )

    app.add_exception_handler(
        StarletteHTTPException,
        http_exception_handler
    )
