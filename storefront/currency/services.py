import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional
import httpx
from storefront.common.errors import AppError
from storefront.common.logging_setup import get_logger
from storefront.common.retries import retry_idempotent
from storefront.config.settings import config_settings
from storefront.currency.config import FALLBACK_RATES, SUPPORTED_CURRENCIES
from storefront.pricing.engine import round_money, to_decimal

logger = get_logger("storefront.currency")

# in-process cache , rates are shared by every request of this worker
_rates_cache: Dict[str, Any] = {"rates": None, "fetched_at": 0.0}


def normalize_currency(code: Optional[str]) -> str:
    normalized = (code or "").strip().upper()
    if normalized not in SUPPORTED_CURRENCIES:
        raise AppError("UNSUPPORTED_CURRENCY", f"Currency '{code}' is not supported",
                       details={"currency": code, "supported": sorted(SUPPORTED_CURRENCIES)})
    return normalized


def currency_decimals(code: str) -> int:
    return SUPPORTED_CURRENCIES[normalize_currency(code)][1]


@retry_idempotent(attempts=config_settings.PROVIDER_READ_RETRIES)
async def _fetch_rates(client: httpx.AsyncClient) -> Dict[str, Decimal]:
    resp = await client.get(config_settings.EXCHANGE_RATES_URL)
    resp.raise_for_status()
    data = resp.json()
    if data.get("result") not in (None, "success") or not isinstance(data.get("rates"), dict):
        raise ValueError("unexpected exchange rate payload")
    rates = {}
    for code in SUPPORTED_CURRENCIES:
        value = data["rates"].get(code)
        rates[code] = to_decimal(value) if value else FALLBACK_RATES[code]
    return rates


async def get_exchange_rates(client: Optional[httpx.AsyncClient] = None, force: bool = False) -> Dict[str, Decimal]:
    """AED based rates for every supported currency.

    Cached for EXCHANGE_RATES_TTL_SECONDS. Any failure to fetch falls back to
    the built-in table so checkout never blocks on the rate service.
    """
    cached = _rates_cache["rates"]
    if not force and cached and time.monotonic() - _rates_cache["fetched_at"] < config_settings.EXCHANGE_RATES_TTL_SECONDS:
        return cached

    try:
        if client is not None:
            rates = await _fetch_rates(client)
        else:
            async with httpx.AsyncClient(timeout=config_settings.EXCHANGE_RATES_TIMEOUT_SECONDS) as own_client:
                rates = await _fetch_rates(own_client)
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("currency.rates.fallback", extra={"error": type(exc).__name__})
        return dict(FALLBACK_RATES)

    _rates_cache["rates"] = rates
    _rates_cache["fetched_at"] = time.monotonic()
    logger.info("currency.rates.refreshed")
    return rates


def reset_rates_cache() -> None:
    _rates_cache["rates"] = None
    _rates_cache["fetched_at"] = 0.0


def convert_amount(amount: Any, code: str, rates: Dict[str, Decimal]) -> Decimal:
    """AED amount in ``code`` , rounded to that currency's minor unit."""
    code = normalize_currency(code)
    rate = rates.get(code) or FALLBACK_RATES[code]
    return round_money(to_decimal(amount) * rate, SUPPORTED_CURRENCIES[code][1])


def to_minor_units(amount: Any, code: str) -> int:
    decimals = currency_decimals(code)
    return int((to_decimal(amount) * (Decimal(10) ** decimals)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_amount(amount: Any, code: str) -> str:
    # "%.Nf" with N the currency decimals
    decimals = currency_decimals(code)
    return f"{round_money(amount, decimals):.{decimals}f}"
