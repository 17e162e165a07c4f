"""
Orders service wired to real users and products apps over ASGI transports.
"""
from decimal import Decimal

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from storefront.apps import orders, products, users
from storefront.core.http_client import ServiceClient
from storefront.services.catalog_client import HttpProductCatalog
from storefront.services.identity_client import HttpIdentityClient
from storefront.services.inventory_client import HttpInventoryClient

ADDRESS = {"street": "1 Main St", "city": "Springfield", "zip_code": "12345", "country": "US"}
INTERNAL_TOKEN = "s3cret"


@pytest.fixture
def users_app():
    return users.create_app(seed=True)


@pytest.fixture
def products_app(product_store, ledger, users_app):
    identity = HttpIdentityClient(ServiceClient("http://users", transport=ASGITransport(app=users_app)))
    return products.create_app(
        product_store=product_store,
        ledger=ledger,
        identity=identity,
        internal_token=INTERNAL_TOKEN,
        seed=False,
    )


@pytest.fixture
def orders_app(users_app, products_app):
    products_transport = ASGITransport(app=products_app)
    return orders.create_app(
        catalog=HttpProductCatalog(ServiceClient("http://products", transport=products_transport)),
        reserver=HttpInventoryClient(ServiceClient(
            "http://products", transport=products_transport, internal_token=INTERNAL_TOKEN,
        )),
        identity=HttpIdentityClient(ServiceClient("http://users", transport=ASGITransport(app=users_app))),
        timeout=5.0,
    )


@pytest.fixture
async def client(orders_app):
    async with AsyncClient(transport=ASGITransport(app=orders_app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def users_client(users_app):
    async with AsyncClient(transport=ASGITransport(app=users_app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def products_client(products_app):
    async with AsyncClient(transport=ASGITransport(app=products_app), base_url="http://test") as ac:
        yield ac


async def login(users_client, email, password) -> dict:
    resp = await users_client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
async def buyer(users_client):
    return await login(users_client, "customer@example.com", "customer123")


@pytest.fixture
async def other_buyer(users_client):
    resp = await users_client.post("/auth/register", json={
        "email": "second@example.com",
        "password": "secret99",
        "first_name": "Second",
        "last_name": "Buyer",
    })
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


async def stock_of(products_client, product_id) -> int:
    return (await products_client.get(f"/products/{product_id}/stock")).json()["stock_quantity"]


@pytest.mark.anyio
async def test_cart_requires_valid_token(client):
    assert (await client.get("/cart")).status_code == 401
    resp = await client.get("/cart", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "INVALID_TOKEN"


@pytest.mark.anyio
async def test_cart_flow(client, buyer):
    resp = await client.post("/cart/items", headers=buyer, json={"product_id": 1, "quantity": 2})
    assert resp.status_code == 201
    cart = resp.json()
    assert cart["item_count"] == 2
    assert Decimal(cart["total_amount"]) == Decimal("20.00")

    resp = await client.put("/cart/items/1", headers=buyer, json={"quantity": 3})
    assert resp.json()["items"][0]["quantity"] == 3

    resp = await client.post("/cart/items", headers=buyer, json={"product_id": 2, "quantity": 2})
    assert resp.status_code == 400
    assert resp.json()["error"] == "INSUFFICIENT_STOCK"

    resp = await client.delete("/cart/items/1", headers=buyer)
    assert resp.json()["items"] == []

    resp = await client.delete("/cart/items/1", headers=buyer)
    assert resp.status_code == 404


@pytest.mark.anyio
async def test_checkout_reserves_stock_and_clears_cart(client, products_client, buyer):
    await client.post("/cart/items", headers=buyer, json={"product_id": 1, "quantity": 2})
    await client.post("/cart/items", headers=buyer, json={"product_id": 2, "quantity": 1})

    resp = await client.post("/orders", headers=buyer, json={"shipping_address": ADDRESS})
    assert resp.status_code == 201
    body = resp.json()
    assert body["order_id"].startswith("ORD-")
    assert body["status"] == "pending"
    assert Decimal(body["total_amount"]) == Decimal("22.50")
    assert {i["product_id"]: i["quantity"] for i in body["items"]} == {1: 2, 2: 1}

    assert await stock_of(products_client, 1) == 3
    assert await stock_of(products_client, 2) == 0
    assert (await client.get("/cart", headers=buyer)).json()["items"] == []

    order = (await client.get(f"/orders/{body['order_id']}", headers=buyer)).json()
    assert order["shipping_address"]["city"] == "Springfield"
    assert order["payment_method"] == "cod"

    listing = (await client.get("/orders", headers=buyer)).json()
    assert listing["total"] == 1


@pytest.mark.anyio
async def test_checkout_insufficient_stock_changes_nothing(client, products_client, buyer):
    await client.post("/cart/items", headers=buyer, json={"product_id": 1, "quantity": 1})
    await client.post("/cart/items", headers=buyer, json={"product_id": 2, "quantity": 1})
    # someone else takes the last Gadget after it went into the cart
    await products_client.post(
        "/products/2/reserve",
        headers={"X-Internal-Token": INTERNAL_TOKEN},
        json={"quantity": 1, "order_id": "ORD-ELSEWHERE"},
    )

    resp = await client.post("/orders", headers=buyer, json={"shipping_address": ADDRESS})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "INSUFFICIENT_STOCK"
    assert body["details"]["product_id"] == 2

    assert await stock_of(products_client, 1) == 5
    assert len((await client.get("/cart", headers=buyer)).json()["items"]) == 2
    assert (await client.get("/orders", headers=buyer)).json()["total"] == 0


@pytest.mark.anyio
async def test_checkout_validation(client, buyer):
    resp = await client.post("/orders", headers=buyer, json={"shipping_address": ADDRESS})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cart is empty"

    await client.post("/cart/items", headers=buyer, json={"product_id": 1, "quantity": 1})
    resp = await client.post("/orders", headers=buyer, json={"shipping_address": {"street": "1 Main St"}})
    assert resp.status_code == 400


@pytest.mark.anyio
async def test_cancel_restores_stock(client, products_client, buyer):
    await client.post("/cart/items", headers=buyer, json={"product_id": 1, "quantity": 4})
    order_id = (await client.post("/orders", headers=buyer, json={"shipping_address": ADDRESS})).json()["order_id"]
    assert await stock_of(products_client, 1) == 1

    resp = await client.post(f"/orders/{order_id}/cancel", headers=buyer)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert await stock_of(products_client, 1) == 5

    resp = await client.post(f"/orders/{order_id}/cancel", headers=buyer)
    assert resp.status_code == 400
    assert await stock_of(products_client, 1) == 5


@pytest.mark.anyio
async def test_orders_are_private(client, buyer, other_buyer):
    await client.post("/cart/items", headers=buyer, json={"product_id": 1, "quantity": 1})
    order_id = (await client.post("/orders", headers=buyer, json={"shipping_address": ADDRESS})).json()["order_id"]

    resp = await client.get(f"/orders/{order_id}", headers=other_buyer)
    assert resp.status_code == 403
    resp = await client.post(f"/orders/{order_id}/cancel", headers=other_buyer)
    assert resp.status_code == 403
    assert (await client.get("/orders", headers=other_buyer)).json()["total"] == 0

    assert (await client.get("/orders/ORD-MISSING", headers=buyer)).status_code == 404


@pytest.mark.anyio
async def test_products_service_down_maps_to_503(users_app, buyer):
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    down = ServiceClient("http://products", transport=httpx.MockTransport(refuse), service_name="products")
    app = orders.create_app(
        catalog=HttpProductCatalog(down),
        reserver=HttpInventoryClient(down),
        identity=HttpIdentityClient(ServiceClient("http://users", transport=ASGITransport(app=users_app))),
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.post("/cart/items", headers=buyer, json={"product_id": 1, "quantity": 1})

    assert resp.status_code == 503
    assert resp.json()["error"] == "SERVICE_UNAVAILABLE"
