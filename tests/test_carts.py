import logging
from decimal import Decimal
import pytest
from conftest import BILLING, add_to_cart, create_product, set_billing
from storefront.cart import repository as cart_repository
from storefront.cart.repository import set_cart_billing, upsert_cart_line
from storefront.schema.full_schema import Cart


@pytest.mark.asyncio
async def test_cart_requires_no_prior_session(ac_client):
    resp = await ac_client.get("/api/v1/storefront/cart")
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["cart"] == {"items": [], "subtotal": 0.0, "totalItems": 0, "billingDetails": None}


@pytest.mark.asyncio
async def test_same_line_added_twice_merges(ac_client):
    product = await create_product(ac_client)

    await add_to_cart(ac_client, product["id"], ["red"], 2)
    resp = await add_to_cart(ac_client, product["id"], ["red"], 3)
    assert resp.status_code == 200, resp.text

    cart = resp.json()["data"]["cart"]
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 5
    assert cart["totalItems"] == 5


@pytest.mark.asyncio
async def test_variant_order_does_not_change_identity(ac_client):
    product = await create_product(ac_client, variants=[
        {"variantTypeId": "color", "variantTypeName": "Color", "selectedItems": [{"id": "red", "name": "Red"}]},
        {"variantTypeId": "size", "variantTypeName": "Size", "selectedItems": [{"id": "xl", "name": "XL"}]},
    ])

    await add_to_cart(ac_client, product["id"], ["xl", "red"], 1)
    resp = await add_to_cart(ac_client, product["id"], ["red", "xl"], 1)

    items = resp.json()["data"]["cart"]["items"]
    assert len(items) == 1
    assert items[0]["quantity"] == 2
    assert items[0]["selectedVariantItemIds"] == ["red", "xl"]


@pytest.mark.asyncio
async def test_different_variants_are_separate_lines(ac_client):
    product = await create_product(ac_client)
    await add_to_cart(ac_client, product["id"], ["red"], 1)
    resp = await add_to_cart(ac_client, product["id"], ["blue"], 1)
    assert len(resp.json()["data"]["cart"]["items"]) == 2


@pytest.mark.asyncio
async def test_end_to_end_pricing_with_installation(ac_client):
    product = await create_product(ac_client)

    resp = await add_to_cart(ac_client, product["id"], ["red"], 2)
    cart = resp.json()["data"]["cart"]
    assert cart["items"][0]["unitPrice"] == 90.0
    assert cart["subtotal"] == 180.0

    resp = await ac_client.patch("/api/v1/storefront/cart", json={
        "productId": product["id"],
        "selectedVariantItemIds": ["red"],
        "quantity": 2,
        "installationOption": "home",
        "installationLocationId": "dxb",
    })
    assert resp.status_code == 200, resp.text
    line = resp.json()["data"]["cart"]["items"][0]
    assert line["unitPrice"] == 115.0
    assert line["installationAddOnPrice"] == 25.0
    assert line["installationLocationDelta"] == 5.0
    assert resp.json()["data"]["cart"]["subtotal"] == 230.0


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True])
async def test_invalid_quantity_rejected(ac_client, quantity):
    product = await create_product(ac_client)
    resp = await add_to_cart(ac_client, product["id"], ["red"], quantity)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_QUANTITY"


@pytest.mark.asyncio
async def test_unknown_product(ac_client):
    resp = await add_to_cart(ac_client, "does-not-exist", [], 1)
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "PRODUCT_NOT_FOUND"


@pytest.mark.asyncio
async def test_update_to_zero_removes_line(ac_client):
    product = await create_product(ac_client)
    await add_to_cart(ac_client, product["id"], ["red"], 2)

    resp = await ac_client.patch("/api/v1/storefront/cart",
                                 json={"productId": product["id"], "selectedVariantItemIds": ["red"], "quantity": 0})
    assert resp.status_code == 200
    assert resp.json()["data"]["cart"]["items"] == []


@pytest.mark.asyncio
async def test_update_missing_line(ac_client):
    product = await create_product(ac_client)
    resp = await ac_client.patch("/api/v1/storefront/cart",
                                 json={"productId": product["id"], "selectedVariantItemIds": ["red"], "quantity": 3})
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "CART_ITEM_NOT_FOUND"


@pytest.mark.asyncio
async def test_remove_line_and_clear(ac_client):
    product = await create_product(ac_client)
    await add_to_cart(ac_client, product["id"], ["red"], 1)
    await add_to_cart(ac_client, product["id"], ["blue"], 1)

    resp = await ac_client.request("DELETE", "/api/v1/storefront/cart",
                                   json={"productId": product["id"], "selectedVariantItemIds": ["blue"]})
    items = resp.json()["data"]["cart"]["items"]
    assert [i["selectedVariantItemIds"] for i in items] == [["red"]]

    resp = await ac_client.delete("/api/v1/storefront/cart")
    assert resp.json()["data"]["cart"]["items"] == []


@pytest.mark.asyncio
async def test_billing_details_round_trip(ac_client):
    assert (await ac_client.get("/api/v1/storefront/cart/billing-details")).json()["data"]["billingDetails"] is None

    stored = await set_billing(ac_client)
    assert stored["email"] == BILLING["email"]
    assert stored["streetAddress1"] == BILLING["streetAddress1"]

    resp = await ac_client.get("/api/v1/storefront/cart/billing-details")
    assert resp.json()["data"]["billingDetails"]["firstName"] == "Layla"


@pytest.mark.asyncio
async def test_billing_details_validated(ac_client):
    resp = await ac_client.put("/api/v1/storefront/cart/billing-details", json={**BILLING, "email": "not-an-email"})
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "UNPROCESSABLE_ENTITY"


@pytest.mark.asyncio
async def test_guest_cart_merges_into_user_cart(ac_client):
    product = await create_product(ac_client)
    resp = await add_to_cart(ac_client, product["id"], ["red"], 2)
    assert resp.status_code == 200

    session_id = (await ac_client.get("/api/v1/storefront/session")).json()["data"]["session"]["sessionId"]
    resp = await ac_client.post("/api/v1/admin/storefront/session/attach-user",
                                json={"sessionId": session_id, "userId": "user-1"},
                                headers={"X-Admin-Secret": "test-admin-secret"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["session"]["userId"] == "user-1"

    resp = await add_to_cart(ac_client, product["id"], ["red"], 1)
    cart = resp.json()["data"]["cart"]
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 3


@pytest.mark.asyncio
async def test_add_logs_line_event(ac_client, caplog):
    product = await create_product(ac_client)
    with caplog.at_level(logging.INFO, logger="storefront.cart"):
        first = await add_to_cart(ac_client, product["id"], ["red"], 1)
        second = await add_to_cart(ac_client, product["id"], ["red"], 1)

    assert first.status_code == 200, first.text
    assert second.status_code == 200, second.text
    events = [r for r in caplog.records if r.getMessage() == "cart.line.added"]
    assert [r.line_created for r in events] == [True, False]


@pytest.mark.asyncio
async def test_line_quantity_above_maximum_rejected(ac_client):
    product = await create_product(ac_client)

    resp = await add_to_cart(ac_client, product["id"], ["red"], 1001)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_QUANTITY"

    resp = await add_to_cart(ac_client, product["id"], ["red"], 600)
    assert resp.status_code == 200, resp.text
    resp = await add_to_cart(ac_client, product["id"], ["red"], 600)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_QUANTITY"
    assert resp.json()["error"]["details"]["body"] == {"quantity": 1200, "max": 1000}

    cart = (await ac_client.get("/api/v1/storefront/cart")).json()["data"]["cart"]
    assert cart["items"][0]["quantity"] == 600


@pytest.mark.asyncio
async def test_line_insert_conflict_keeps_earlier_writes(db_session, monkeypatch):
    cart = Cart(session_id="conflict-session")
    db_session.add(cart)
    await db_session.commit()

    values = {"product_id": "p1", "variant_key": "default", "selected_variant_item_ids": [],
              "unit_price": Decimal("10.00")}
    await upsert_cart_line(db_session, cart.id, dict(values), 2)
    await set_cart_billing(db_session, cart, {"email": "shopper@example.com"})

    # the next add misses the line , as if a concurrent request inserted it in between
    real_increment, real_find = cart_repository._increment_line, cart_repository.find_cart_line
    misses = {"increment": 1, "find": 1}

    async def increment(*args, **kwargs):
        if misses["increment"]:
            misses["increment"] -= 1
            return 0
        return await real_increment(*args, **kwargs)

    async def find(*args, **kwargs):
        if misses["find"]:
            misses["find"] -= 1
            return None
        return await real_find(*args, **kwargs)

    monkeypatch.setattr(cart_repository, "_increment_line", increment)
    monkeypatch.setattr(cart_repository, "find_cart_line", find)

    line, created = await upsert_cart_line(db_session, cart.id, dict(values), 3)
    await db_session.commit()
    assert created is False

    await db_session.refresh(line)
    await db_session.refresh(cart)
    assert line.quantity == 5
    assert cart.billing_details == {"email": "shopper@example.com"}
