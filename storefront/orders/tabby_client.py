from typing import Any, Dict
import httpx
from storefront.common.retries import retry_idempotent
from storefront.config.settings import config_settings
from storefront.orders import provider_http

PROVIDER = "tabby"


def _bearer(key: str) -> Dict[str, str]:
    value = getattr(config_settings, key)
    if not value:
        raise RuntimeError(f"{key} is not configured")
    return {"Authorization": f"Bearer {value}"}


async def create_checkout(payload: Dict[str, Any], key: str = "TABBY_PUBLIC_KEY") -> Dict[str, Any]:
    """POST a checkout session. A ``rejected`` decision is returned , not raised."""
    url = f"{config_settings.TABBY_API_BASE}/api/v2/checkout"
    try:
        async with provider_http.build_client() as client:
            resp = await client.post(url, json=payload, headers=_bearer(key))
    except httpx.HTTPError as exc:
        raise provider_http.transport_failure(PROVIDER, "checkout", exc)

    body = provider_http.response_body(resp)
    if isinstance(body, dict) and body.get("status") == "rejected":
        return body
    return provider_http.json_or_error(PROVIDER, "checkout", resp)


@retry_idempotent(attempts=config_settings.PROVIDER_READ_RETRIES)
async def _get_payment(payment_id: str) -> httpx.Response:
    async with provider_http.build_client() as client:
        resp = await client.get(f"{config_settings.TABBY_API_BASE}/api/v2/payments/{payment_id}",
                                headers=_bearer("TABBY_SECRET_KEY"))
    if resp.status_code >= 500:
        resp.raise_for_status()
    return resp


async def get_payment(payment_id: str) -> Dict[str, Any]:
    try:
        resp = await _get_payment(payment_id)
    except httpx.HTTPStatusError as exc:
        raise provider_http.provider_failure(PROVIDER, "payment_read", exc.response)
    except httpx.HTTPError as exc:
        raise provider_http.transport_failure(PROVIDER, "payment_read", exc)
    return provider_http.json_or_error(PROVIDER, "payment_read", resp)


async def capture_payment(payment_id: str, amount: str) -> Dict[str, Any]:
    url = f"{config_settings.TABBY_API_BASE}/api/v1/payments/{payment_id}/captures"
    try:
        async with provider_http.build_client() as client:
            resp = await client.post(url, json={"amount": amount}, headers=_bearer("TABBY_SECRET_KEY"))
    except httpx.HTTPError as exc:
        raise provider_http.transport_failure(PROVIDER, "capture", exc)
    return provider_http.json_or_error(PROVIDER, "capture", resp)
