from typing import Any, Dict
import httpx
from storefront.config.settings import config_settings
from storefront.orders import provider_http
from storefront.orders.serializers import encode_form

PROVIDER = "stripe"


def _auth():
    if not config_settings.STRIPE_SECRET_KEY:
        raise RuntimeError("STRIPE_SECRET_KEY is not configured")
    return (config_settings.STRIPE_SECRET_KEY, "")


# session creation is never retried , the Idempotency-Key makes a manual resend safe
async def create_checkout_session(params: Dict[str, Any], idempotency_key: str) -> Dict[str, Any]:
    url = f"{config_settings.STRIPE_API_BASE}/checkout/sessions"
    headers = {"Idempotency-Key": idempotency_key}
    try:
        async with provider_http.build_client(auth=_auth()) as client:
            resp = await client.post(url, data=dict(encode_form(params)), headers=headers)
    except httpx.HTTPError as exc:
        raise provider_http.transport_failure(PROVIDER, "checkout_session", exc)
    return provider_http.json_or_error(PROVIDER, "checkout_session", resp)
