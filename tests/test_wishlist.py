import pytest
from conftest import ADMIN_HEADERS, create_product
from storefront.schema.full_schema import Wishlist
from storefront.wishlist import repository as wishlist_repository
from storefront.wishlist.repository import fetch_wishlist_items, insert_wishlist_item


async def attach(ac_client, user_id):
    session_id = (await ac_client.get("/api/v1/storefront/session")).json()["data"]["session"]["sessionId"]
    resp = await ac_client.post("/api/v1/admin/storefront/session/attach-user",
                                json={"sessionId": session_id, "userId": user_id}, headers=ADMIN_HEADERS)
    assert resp.status_code == 200, resp.text
    return session_id


@pytest.mark.asyncio
async def test_toggle_adds_then_removes(ac_client):
    product = await create_product(ac_client)
    body = {"productId": product["id"], "selectedVariantItemIds": ["red"]}

    resp = await ac_client.post("/api/v1/storefront/wishlist", json=body)
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["added"] is True
    assert resp.json()["data"]["wishlist"]["totalItems"] == 1

    resp = await ac_client.post("/api/v1/storefront/wishlist", json=body)
    assert resp.json()["data"]["added"] is False
    assert resp.json()["data"]["wishlist"]["items"] == []


@pytest.mark.asyncio
async def test_put_is_idempotent(ac_client):
    product = await create_product(ac_client)
    for ids in (["red", "blue"], ["blue", "red"]):
        resp = await ac_client.put("/api/v1/storefront/wishlist/items",
                                   json={"productId": product["id"], "selectedVariantItemIds": ids})
        assert resp.status_code == 200, resp.text
    items = resp.json()["data"]["wishlist"]["items"]
    assert len(items) == 1
    assert items[0]["selectedVariantItemIds"] == ["blue", "red"]


@pytest.mark.asyncio
async def test_unknown_product_not_added(ac_client):
    resp = await ac_client.put("/api/v1/storefront/wishlist/items", json={"productId": "missing"})
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "PRODUCT_NOT_FOUND"


@pytest.mark.asyncio
async def test_delete_by_query_and_clear(ac_client):
    product = await create_product(ac_client)
    other = await create_product(ac_client, name="Desk Lamp")
    await ac_client.put("/api/v1/storefront/wishlist/items",
                        json={"productId": product["id"], "selectedVariantItemIds": ["red"]})
    await ac_client.put("/api/v1/storefront/wishlist/items", json={"productId": other["id"]})

    resp = await ac_client.delete("/api/v1/storefront/wishlist",
                                  params={"productId": product["id"], "variantIds": "red"})
    items = resp.json()["data"]["wishlist"]["items"]
    assert [i["productId"] for i in items] == [other["id"]]

    resp = await ac_client.delete("/api/v1/storefront/wishlist")
    assert resp.json()["data"]["wishlist"]["totalItems"] == 0


@pytest.mark.asyncio
async def test_guest_wishlist_merges_on_login(ac_client):
    lamp = await create_product(ac_client)
    desk = await create_product(ac_client, name="Desk Lamp")

    await ac_client.put("/api/v1/storefront/wishlist/items", json={"productId": lamp["id"]})
    await attach(ac_client, "user-7")

    # a second device , guest again
    ac_client.cookies.clear()
    await ac_client.put("/api/v1/storefront/wishlist/items", json={"productId": lamp["id"]})
    await ac_client.put("/api/v1/storefront/wishlist/items", json={"productId": desk["id"]})
    await attach(ac_client, "user-7")

    resp = await ac_client.get("/api/v1/storefront/wishlist")
    items = resp.json()["data"]["wishlist"]["items"]
    assert sorted(i["productId"] for i in items) == sorted([lamp["id"], desk["id"]])

    # attaching again changes nothing
    await attach(ac_client, "user-7")
    resp = await ac_client.get("/api/v1/storefront/wishlist")
    assert resp.json()["data"]["wishlist"]["totalItems"] == 2


@pytest.mark.asyncio
async def test_duplicate_insert_keeps_earlier_writes(db_session, monkeypatch):
    wishlist = Wishlist(session_id="conflict-session")
    db_session.add(wishlist)
    await db_session.commit()
    wishlist_id = wishlist.id

    assert await insert_wishlist_item(db_session, wishlist_id, "p1", "default", [])
    assert await insert_wishlist_item(db_session, wishlist_id, "p2", "default", [])

    # the lookup misses the row a concurrent request already inserted
    async def missing(*args, **kwargs):
        return None

    monkeypatch.setattr(wishlist_repository, "find_wishlist_item", missing)
    assert await insert_wishlist_item(db_session, wishlist_id, "p1", "default", []) is False
    await db_session.commit()

    items = await fetch_wishlist_items(db_session, wishlist_id)
    assert sorted(i.product_id for i in items) == ["p1", "p2"]
