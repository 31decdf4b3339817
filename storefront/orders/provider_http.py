from typing import Any, Dict
import httpx
from storefront.common.errors import upstream_error
from storefront.config.settings import config_settings
from storefront.orders.constants import logger


def build_client(**kwargs) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=config_settings.PROVIDER_TIMEOUT_SECONDS, **kwargs)


def response_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


def provider_failure(provider: str, operation: str, resp: httpx.Response):
    body = response_body(resp)
    logger.error("provider.call.failed", extra={"provider": provider, "operation": operation,
                                                "status_code": resp.status_code})
    return upstream_error(f"{provider} {operation} failed", {"provider": provider, "status": resp.status_code,
                                                              "body": body})


def transport_failure(provider: str, operation: str, exc: httpx.HTTPError):
    logger.error("provider.call.unreachable", extra={"provider": provider, "operation": operation,
                                                     "error": type(exc).__name__})
    return upstream_error(f"{provider} {operation} unreachable", {"provider": provider, "error": type(exc).__name__})


def json_or_error(provider: str, operation: str, resp: httpx.Response) -> Dict[str, Any]:
    if resp.status_code >= 400:
        raise provider_failure(provider, operation, resp)
    body = response_body(resp)
    if not isinstance(body, dict):
        raise provider_failure(provider, operation, resp)
    return body
