import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENV"] = "dev"
os.environ["USER_SESSION_SECRET"] = "test-session-secret"
os.environ["ADMIN_SECRET"] = "test-admin-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["TABBY_PUBLIC_KEY"] = "pk_test_tabby"
os.environ["TABBY_SECRET_KEY"] = "sk_test_tabby"
os.environ["TABBY_MERCHANT_CODE"] = "AE"

import httpx
import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient
from storefront.currency.config import FALLBACK_RATES
from storefront.db.connection import async_session
from storefront.main import app
from storefront.orders import provider_http

ADMIN_HEADERS = {"X-Admin-Secret": "test-admin-secret"}

BILLING = {
    "email": "shopper@example.com",
    "firstName": "Layla",
    "lastName": "Haddad",
    "country": "AE",
    "streetAddress1": "12 Marina Walk",
    "city": "Dubai",
    "phone": "+971500000000",
}


@pytest.fixture
async def ac_client():
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac


@pytest.fixture
async def db_session(ac_client):
    # tables exist once the app lifespan has run
    async with async_session() as session:
        yield session


@pytest.fixture(autouse=True)
def fixed_rates(monkeypatch):
    async def rates(client=None, force=False):
        return dict(FALLBACK_RATES)

    monkeypatch.setattr("storefront.orders.services.get_exchange_rates", rates)


@pytest.fixture
def provider_transport(monkeypatch):
    """Route every payment provider call to ``handler`` , recorded requests land in ``calls``."""
    state = {"handler": None, "calls": []}

    def handler(request: httpx.Request):
        state["calls"].append(request)
        return state["handler"](request)

    def build_client(**kwargs):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(provider_http, "build_client", build_client)
    return state


def product_payload(name="Arc Floor Lamp", base_price=100, offer=10, **overrides):
    payload = {
        "name": name,
        "description": "Brushed brass floor lamp",
        "basePrice": base_price,
        "offerPercentage": offer,
        "variants": [
            {
                "variantTypeId": "color",
                "variantTypeName": "Color",
                "selectedItems": [{"id": "red", "name": "Red"}, {"id": "blue", "name": "Blue"}],
                "priceModifier": 0,
            },
        ],
        "installationService": {
            "enabled": True,
            "inStorePrice": 10,
            "atHomePrice": 20,
            "availableLocations": [
                {"locationId": "dxb", "name": "Dubai", "priceDelta": 5},
                {"locationId": "auh", "name": "Abu Dhabi", "priceDelta": 15, "enabled": False},
            ],
        },
        "images": [
            {"url": "https://cdn.example.com/lamp.jpg", "order": 1},
            {"url": "https://cdn.example.com/lamp-red.jpg", "order": 0, "mappedVariants": ["red"]},
        ],
        "variantStock": [],
    }
    payload.update(overrides)
    return payload


async def create_product(ac_client, **kwargs):
    resp = await ac_client.post("/api/v1/admin/products", json=product_payload(**kwargs), headers=ADMIN_HEADERS)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["product"]


async def add_to_cart(ac_client, product_id, variant_ids=None, quantity=1, **extra):
    body = {"productId": product_id, "selectedVariantItemIds": variant_ids or [], "quantity": quantity, **extra}
    return await ac_client.post("/api/v1/storefront/cart", json=body)


async def set_billing(ac_client, billing=None):
    resp = await ac_client.put("/api/v1/storefront/cart/billing-details", json=billing or BILLING)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["billingDetails"]
