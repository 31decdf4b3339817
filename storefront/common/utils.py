from datetime import datetime,timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from fastapi.responses import JSONResponse
from storefront.common.constants import request_id_ctx

def now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes for timezone aware columns
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def money_out(value: Optional[Union[Decimal, int, float]]) -> float:
    if value is None:
        return 0.0
    return float(value)


def build_success(data: Any,
                  trace_id: Optional[str] = None,request_id: Optional[str] = None,) -> Dict[str, Any]:
    return {
        "status": "ok",
        "data": data,
        "error": None,
        "trace_id": trace_id,
        "request_id": request_id,
    }

def build_error(code: Union[str, int] = "UNKNOWN_ERROR",
                details: Optional[Any] = None,
                request_id: Optional[str] = None,
                trace_id: Optional[str] = None) -> Dict[str, Any]:
   
    return {
        "status": "error",
        "data": None,
        "error": {"code": code, "details": details},
        "trace_id": trace_id,
        "request_id": request_id,
    }

def error_details(message: str, status_code: int, url: Optional[str] = None,
                  method: Optional[str] = None, body: Optional[Any] = None) -> Dict[str, Any]:
    # diagnostic shape the storefront toast renders and lets the shopper copy
    details: Dict[str, Any] = {"message": message, "status": status_code}
    if body is not None:
        details["body"] = body
    if url is not None:
        details["url"] = url
    if method is not None:
        details["method"] = method
    return details

def json_ok(content: Dict[str, Any], status_code: int = 200,headers = None) -> JSONResponse:
    return JSONResponse(content, status_code=status_code,headers=headers)

def json_error(content: Dict[str, Any], status_code: int = 500, headers=None) -> JSONResponse:
    return JSONResponse(content, status_code=status_code, headers=headers)

def success_response(data: Any, status_code: int = 200,headers: Optional[Dict[str, Any]] = None , 
                     trace_id: Optional[str] = None , request_id: Optional[str] = None) -> JSONResponse:
    content = build_success(data, request_id=request_id or request_id_ctx.get(), trace_id=trace_id)
    return json_ok(content, status_code=status_code,headers=headers)
