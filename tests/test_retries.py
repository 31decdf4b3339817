import httpx
import pytest
from storefront.common.retries import is_retryable_http_error, retry_idempotent


def status_error(code):
    request = httpx.Request("GET", "https://provider.test/payments/1")
    return httpx.HTTPStatusError("boom", request=request, response=httpx.Response(code, request=request))


def test_retryable_classification():
    assert is_retryable_http_error(httpx.ConnectError("down"))
    assert is_retryable_http_error(status_error(503))
    assert not is_retryable_http_error(status_error(404))
    assert not is_retryable_http_error(ValueError("nope"))


@pytest.mark.asyncio
async def test_transient_errors_retried_until_success():
    attempts = []

    @retry_idempotent(attempts=3, base_delay=0)
    async def read():
        attempts.append(1)
        if len(attempts) < 3:
            raise httpx.ConnectError("down")
        return "ok"

    assert await read() == "ok"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_client_errors_not_retried():
    attempts = []

    @retry_idempotent(attempts=3, base_delay=0)
    async def read():
        attempts.append(1)
        raise status_error(400)

    with pytest.raises(httpx.HTTPStatusError):
        await read()
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_gives_up_after_last_attempt():
    attempts = []

    @retry_idempotent(attempts=2, base_delay=0)
    async def read():
        attempts.append(1)
        raise httpx.ReadTimeout("slow")

    with pytest.raises(httpx.ReadTimeout):
        await read()
    assert len(attempts) == 2
