import asyncio
import functools
import random
from typing import Awaitable, Callable, Optional, TypeVar
import httpx
from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.common.retries")

T = TypeVar("T")

TRANSIENT_EXCEPTIONS = (httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout,
                        httpx.RemoteProtocolError, httpx.NetworkError)


def is_retryable_http_error(exc: BaseException) -> bool:
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, TRANSIENT_EXCEPTIONS):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code if exc.response is not None else None
        # provider side failure -> retry , 4xx is the caller's fault and is surfaced immediately
        return bool(status_code and 500 <= status_code < 600)
    return False


async def _sleep_with_jitter(delay: float, jitter: float) -> None:
    jitter_val = random.uniform(-jitter * delay, jitter * delay)
    await asyncio.sleep(max(0.0, delay + jitter_val))


def retry_idempotent(
    *,
    attempts: int = 3,
    base_delay: float = 0.2,
    factor: float = 2.0,
    max_delay: float = 2.0,
    jitter: float = 0.15,
    if_retryable: Optional[Callable[[BaseException], bool]] = None,
):
    """Retry an idempotent outbound read with exponential backoff.

    Only for GETs and other calls that are safe to repeat. Payment session
    creation must never be wrapped with this.
    """
    if if_retryable is None:
        if_retryable = is_retryable_http_error

    def deco(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> T:
            for attempt in range(1, attempts + 1):
                try:
                    return await fn(*args, **kwargs)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    if not if_retryable(exc) or attempt == attempts:
                        raise
                    delay = min(max_delay, base_delay * (factor ** (attempt - 1)))
                    logger.warning("outbound.retry", extra={
                        "call": fn.__name__,
                        "attempt": attempt,
                        "delay": delay,
                        "error": type(exc).__name__,
                    })
                    await _sleep_with_jitter(delay, jitter)
            raise RuntimeError("unreachable")
        return wrapper
    return deco
