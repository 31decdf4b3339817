import pytest
from conftest import create_product
from storefront.products.stock import aggregate_lines


async def stocked_product(ac_client, name="Arc Floor Lamp"):
    return await create_product(ac_client, name=name, variantStock=[
        {"variantCombinationKey": "red", "stockCount": 2},
        {"selectedVariantItemIds": ["blue"], "stockCount": 5},
    ])


@pytest.mark.asyncio
async def test_variant_stock_stored_by_combination_key(ac_client):
    product = await stocked_product(ac_client)
    assert product["variantStock"] == [
        {"variantCombinationKey": "blue", "stockCount": 5},
        {"variantCombinationKey": "red", "stockCount": 2},
    ]


@pytest.mark.asyncio
async def test_every_shortfall_reported(ac_client):
    lamp = await stocked_product(ac_client)

    resp = await ac_client.post("/api/v1/storefront/stock/validate", json={"items": [
        {"productId": lamp["id"], "selectedVariantItemIds": ["red"], "quantity": 3},
        {"productId": lamp["id"], "selectedVariantItemIds": ["blue"], "quantity": 1},
        {"productId": "gone", "quantity": 1},
    ]})
    assert resp.status_code == 200, resp.text

    result = resp.json()["data"]
    assert result["available"] is False
    short = {(i["productId"], i["variantKey"]): i for i in result["insufficientItems"]}
    assert len(short) == 2
    assert short[(lamp["id"], "red")]["available"] == 2
    assert short[(lamp["id"], "red")]["requested"] == 3
    assert short[("gone", "default")]["available"] == 0


@pytest.mark.asyncio
async def test_untracked_combination_never_short(ac_client):
    lamp = await stocked_product(ac_client)
    resp = await ac_client.post("/api/v1/storefront/stock/validate", json={"items": [
        {"productId": lamp["id"], "quantity": 500},
    ]})
    assert resp.json()["data"] == {"available": True, "insufficientItems": []}


@pytest.mark.asyncio
async def test_stock_key_for_unknown_variant_rejected(ac_client):
    resp = await ac_client.post("/api/v1/admin/products", headers={"X-Admin-Secret": "test-admin-secret"}, json={
        "name": "Broken", "basePrice": 10,
        "variantStock": [{"variantCombinationKey": "green", "stockCount": 1}],
    })
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "UNKNOWN_VARIANT_ITEM"


def test_aggregate_lines_sums_same_identity():
    lines = aggregate_lines([
        {"product_id": "p1", "selected_variant_item_ids": ["b", "a"], "quantity": 1},
        {"product_id": "p1", "selected_variant_item_ids": ["a", "b"], "quantity": 2},
        {"product_id": "p2", "selected_variant_item_ids": [], "quantity": 1},
    ])
    assert [(l["product_id"], l["variant_key"], l["quantity"]) for l in lines] == [("p1", "a+b", 3), ("p2", "default", 1)]


@pytest.mark.asyncio
async def test_split_lines_summed_before_checking(ac_client):
    lamp = await stocked_product(ac_client)
    resp = await ac_client.post("/api/v1/storefront/stock/validate", json={"items": [
        {"productId": lamp["id"], "selectedVariantItemIds": ["red"], "quantity": 1},
        {"productId": lamp["id"], "selectedVariantItemIds": ["red"], "quantity": 2},
    ]})
    result = resp.json()["data"]
    assert result["available"] is False
    assert result["insufficientItems"] == [{
        "productId": lamp["id"],
        "selectedVariantItemIds": ["red"],
        "variantKey": "red",
        "requested": 3,
        "available": 2,
    }]
