import json
from urllib.parse import parse_qs
import httpx
import pytest
from conftest import ADMIN_HEADERS, add_to_cart, create_product, set_billing

ORIGIN = "https://shop.example.com"


def stripe_created(request: httpx.Request):
    return httpx.Response(200, json={"id": "cs_test_1", "url": "https://checkout.stripe.com/c/pay/cs_test_1"})


def tabby_created(request: httpx.Request):
    return httpx.Response(200, json={
        "id": "sess_1",
        "status": "created",
        "payment": {"id": "pay_1"},
        "configuration": {"available_products": {"installments": [{"web_url": "https://checkout.tabby.ai/sess_1"}]}},
    })


def tabby_rejected(request: httpx.Request):
    return httpx.Response(200, json={
        "status": "rejected",
        "configuration": {"products": {"installments": {"rejection_reason": "not_available"}}},
    })


async def stocked_lamp(ac_client):
    return await create_product(ac_client, variantStock=[{"variantCombinationKey": "red", "stockCount": 5}])


async def admin_order(ac_client, order_id):
    resp = await ac_client.get(f"/api/v1/admin/orders/{order_id}", headers=ADMIN_HEADERS)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["order"]


@pytest.mark.asyncio
async def test_cart_checkout_with_stripe(ac_client, provider_transport):
    provider_transport["handler"] = stripe_created
    lamp = await stocked_lamp(ac_client)
    await add_to_cart(ac_client, lamp["id"], ["red"], 2)
    await set_billing(ac_client)

    resp = await ac_client.post("/api/v1/storefront/checkout", json={"provider": "stripe"}, headers={"Origin": ORIGIN})
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["url"] == "https://checkout.stripe.com/c/pay/cs_test_1"

    request = provider_transport["calls"][0]
    assert request.url.path == "/v1/checkout/sessions"
    assert request.headers["Idempotency-Key"] == f"checkout-{data['orderId']}"
    assert request.headers["Authorization"].startswith("Basic ")
    form = parse_qs(request.content.decode())
    assert form["client_reference_id"] == [data["orderId"]]
    assert form["line_items[0][quantity]"] == ["2"]
    assert form["line_items[0][price_data][currency]"] == ["usd"]
    # 90 AED at the fallback rate , rounded to cents
    assert form["line_items[0][price_data][unit_amount]"] == ["2450"]
    assert form["success_url"] == [f"{ORIGIN}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}"]
    assert form["metadata[type]"] == ["cart"]
    assert form["customer_email"] == ["shopper@example.com"]

    order = await admin_order(ac_client, data["orderId"])
    assert order["status"] == "pending"
    assert order["currency"] == "USD"
    assert order["totalAmount"] == 49.0
    assert order["paymentProviderSessionId"] == "cs_test_1"
    assert order["items"][0]["baseUnitPrice"] == 90.0
    assert order["items"][0]["variantName"] == "Color: Red"
    assert order["items"][0]["productImage"] == "https://cdn.example.com/lamp-red.jpg"

    mine = await ac_client.get("/api/v1/storefront/orders")
    assert [o["id"] for o in mine.json()["data"]["orders"]] == [data["orderId"]]


@pytest.mark.asyncio
async def test_buy_now_ignores_client_price(ac_client, provider_transport):
    provider_transport["handler"] = stripe_created
    lamp = await stocked_lamp(ac_client)
    await set_billing(ac_client)

    resp = await ac_client.post("/api/v1/storefront/checkout", json={
        "provider": "stripe",
        "currency": "AED",
        "items": [{"productId": lamp["id"], "selectedVariantItemIds": ["red"], "quantity": 1,
                   "unitPrice": 0.01, "subtotal": 0.01}],
    })
    assert resp.status_code == 200, resp.text

    form = parse_qs(provider_transport["calls"][0].content.decode())
    assert form["line_items[0][price_data][unit_amount]"] == ["9000"]
    assert form["metadata[type]"] == ["buy_now"]

    order = await admin_order(ac_client, resp.json()["data"]["orderId"])
    assert order["totalAmount"] == 90.0
    assert order["currency"] == "AED"

    # buy-now leaves the stored cart alone
    cart = (await ac_client.get("/api/v1/storefront/cart")).json()["data"]["cart"]
    assert cart["items"] == []


@pytest.mark.asyncio
async def test_checkout_needs_billing_details(ac_client, provider_transport):
    lamp = await stocked_lamp(ac_client)
    await add_to_cart(ac_client, lamp["id"], ["red"], 1)

    resp = await ac_client.post("/api/v1/storefront/checkout", json={"provider": "stripe"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "BILLING_DETAILS_REQUIRED"
    assert provider_transport["calls"] == []


@pytest.mark.asyncio
async def test_checkout_empty_cart(ac_client, provider_transport):
    await set_billing(ac_client)
    resp = await ac_client.post("/api/v1/storefront/checkout", json={"provider": "tabby"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "CART_EMPTY"


@pytest.mark.asyncio
async def test_checkout_insufficient_stock(ac_client, provider_transport):
    lamp = await stocked_lamp(ac_client)
    await add_to_cart(ac_client, lamp["id"], ["red"], 6)
    await set_billing(ac_client)

    resp = await ac_client.post("/api/v1/storefront/checkout", json={"provider": "stripe"})
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "INSUFFICIENT_STOCK"
    assert error["details"]["body"]["insufficientItems"][0]["available"] == 5
    assert provider_transport["calls"] == []


@pytest.mark.asyncio
async def test_unsupported_currency(ac_client, provider_transport):
    lamp = await stocked_lamp(ac_client)
    await add_to_cart(ac_client, lamp["id"], ["red"], 1)
    await set_billing(ac_client)

    resp = await ac_client.post("/api/v1/storefront/checkout", json={"provider": "stripe", "currency": "EUR"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "UNSUPPORTED_CURRENCY"


@pytest.mark.asyncio
async def test_pending_order_reserves_stock(ac_client, provider_transport):
    provider_transport["handler"] = stripe_created
    lamp = await stocked_lamp(ac_client)
    await add_to_cart(ac_client, lamp["id"], ["red"], 4)
    await set_billing(ac_client)
    resp = await ac_client.post("/api/v1/storefront/checkout", json={"provider": "stripe"})
    assert resp.status_code == 200, resp.text

    check = await ac_client.post("/api/v1/storefront/stock/validate", json={"items": [
        {"productId": lamp["id"], "selectedVariantItemIds": ["red"], "quantity": 2},
    ]})
    assert check.json()["data"]["insufficientItems"][0]["available"] == 1


@pytest.mark.asyncio
async def test_provider_failure_marks_order_failed(ac_client, provider_transport):
    provider_transport["handler"] = lambda request: httpx.Response(402, json={"error": {"message": "card_declined"}})
    lamp = await stocked_lamp(ac_client)
    await add_to_cart(ac_client, lamp["id"], ["red"], 5)
    await set_billing(ac_client)

    resp = await ac_client.post("/api/v1/storefront/checkout", json={"provider": "stripe"})
    assert resp.status_code == 502
    error = resp.json()["error"]
    assert error["code"] == "PAYMENT_PROVIDER_ERROR"
    assert error["details"]["body"]["status"] == 402

    failed = await ac_client.get("/api/v1/admin/orders", params={"status": "failed"}, headers=ADMIN_HEADERS)
    assert failed.json()["data"]["total"] == 1

    # the reservation was released with the failed order
    check = await ac_client.post("/api/v1/storefront/stock/validate", json={"items": [
        {"productId": lamp["id"], "selectedVariantItemIds": ["red"], "quantity": 5},
    ]})
    assert check.json()["data"]["available"] is True


@pytest.mark.asyncio
async def test_tabby_checkout(ac_client, provider_transport):
    provider_transport["handler"] = tabby_created
    lamp = await stocked_lamp(ac_client)
    await add_to_cart(ac_client, lamp["id"], ["red"], 2)
    await set_billing(ac_client)

    resp = await ac_client.post("/api/v1/storefront/checkout", json={"provider": "tabby"}, headers={"Origin": ORIGIN})
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["url"] == "https://checkout.tabby.ai/sess_1"

    request = provider_transport["calls"][0]
    assert request.url.path == "/api/v2/checkout"
    assert request.headers["Authorization"] == "Bearer pk_test_tabby"
    body = json.loads(request.content)
    assert body["merchant_code"] == "AE"
    assert body["merchant_urls"]["failure"] == f"{ORIGIN}/checkout/failure"
    assert body["payment"]["amount"] == "180.00"
    assert body["payment"]["currency"] == "AED"
    assert body["payment"]["order"]["reference_id"] == data["orderId"]
    assert body["payment"]["order"]["items"][0]["unit_price"] == "90.00"
    assert body["payment"]["order_history"] == []


@pytest.mark.asyncio
async def test_tabby_rejection_is_not_an_error(ac_client, provider_transport):
    provider_transport["handler"] = tabby_rejected
    lamp = await stocked_lamp(ac_client)
    await add_to_cart(ac_client, lamp["id"], ["red"], 1)
    await set_billing(ac_client)

    resp = await ac_client.post("/api/v1/storefront/checkout", json={"provider": "tabby"})
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["available"] is False
    assert data["reason"] == "not_available"

    order = await admin_order(ac_client, data["orderId"])
    assert order["status"] == "failed"


@pytest.mark.asyncio
async def test_tabby_availability_persists_nothing(ac_client, provider_transport):
    provider_transport["handler"] = lambda request: httpx.Response(200, json={"status": "created"})
    lamp = await stocked_lamp(ac_client)
    await add_to_cart(ac_client, lamp["id"], ["red"], 1)
    await set_billing(ac_client)

    resp = await ac_client.post("/api/v1/storefront/checkout/tabby/availability", json={})
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"] == {"available": True, "status": "created"}

    request = provider_transport["calls"][0]
    assert request.headers["Authorization"] == "Bearer sk_test_tabby"
    body = json.loads(request.content)
    assert body["payment"]["order"]["reference_id"].startswith("check_")
    assert body["payment"]["meta"]["isCheck"] == "true"
    assert body["merchant_urls"]["failure"].endswith("/checkout/tabby-failure")

    listed = await ac_client.get("/api/v1/admin/orders", headers=ADMIN_HEADERS)
    assert listed.json()["data"]["total"] == 0


@pytest.mark.asyncio
async def test_tabby_availability_provider_error(ac_client, provider_transport):
    provider_transport["handler"] = lambda request: httpx.Response(500, text="upstream down")
    lamp = await stocked_lamp(ac_client)
    await add_to_cart(ac_client, lamp["id"], ["red"], 1)
    await set_billing(ac_client)

    resp = await ac_client.post("/api/v1/storefront/checkout/tabby/availability", json={})
    assert resp.json()["data"] == {"available": False, "reason": "provider_error"}


@pytest.mark.asyncio
async def test_buy_now_split_lines_checked_together(ac_client, provider_transport):
    provider_transport["handler"] = stripe_created
    lamp = await stocked_lamp(ac_client)
    await set_billing(ac_client)

    line = {"productId": lamp["id"], "selectedVariantItemIds": ["red"], "quantity": 3}
    resp = await ac_client.post("/api/v1/storefront/checkout", json={"provider": "stripe", "items": [line, line]})
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "INSUFFICIENT_STOCK"
    short = error["details"]["body"]["insufficientItems"]
    assert [(i["requested"], i["available"]) for i in short] == [(6, 5)]
    assert provider_transport["calls"] == []


@pytest.mark.asyncio
async def test_retry_after_abandoned_checkout(ac_client, provider_transport):
    provider_transport["handler"] = stripe_created
    lamp = await create_product(ac_client, variantStock=[{"variantCombinationKey": "red", "stockCount": 2}])
    await add_to_cart(ac_client, lamp["id"], ["red"], 2)
    await set_billing(ac_client)

    first = await ac_client.post("/api/v1/storefront/checkout", json={"provider": "stripe"})
    assert first.status_code == 200, first.text
    # the shopper left the payment page and starts over
    provider_transport["handler"] = lambda request: httpx.Response(
        200, json={"id": "cs_test_2", "url": "https://checkout.stripe.com/c/pay/cs_test_2"})
    again = await ac_client.post("/api/v1/storefront/checkout", json={"provider": "stripe"})
    assert again.status_code == 200, again.text
    assert again.json()["data"]["orderId"] != first.json()["data"]["orderId"]

    # another shopper still sees the units as held
    ac_client.cookies.clear()
    check = await ac_client.post("/api/v1/storefront/stock/validate", json={"items": [
        {"productId": lamp["id"], "selectedVariantItemIds": ["red"], "quantity": 1},
    ]})
    assert check.json()["data"]["insufficientItems"][0]["available"] == 0
