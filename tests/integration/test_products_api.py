import pytest
from httpx import ASGITransport, AsyncClient

from storefront.apps.products import create_app

INTERNAL = {"X-Internal-Token": "s3cret"}
ADMIN = {"Authorization": "Bearer admin-token"}
CUSTOMER = {"Authorization": "Bearer customer-token"}


@pytest.fixture
def products_app(product_store, ledger, identity):
    return create_app(
        product_store=product_store,
        ledger=ledger,
        identity=identity,
        internal_token="s3cret",
        seed=False,
    )


@pytest.fixture
async def client(products_app):
    transport = ASGITransport(app=products_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.anyio
async def test_list_products_with_filters(client):
    resp = await client.get("/products")
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    assert body["pages"] == 1

    resp = await client.get("/products", params={"max_price": "5", "sort_by": "price", "sort_order": "asc"})
    assert [p["name"] for p in resp.json()["products"]] == ["Gadget"]

    resp = await client.get("/products", params={"tags": "tool,unknown"})
    assert [p["name"] for p in resp.json()["products"]] == ["Widget"]


@pytest.mark.anyio
async def test_product_detail_counts_views(client):
    first = (await client.get("/products/1")).json()
    second = (await client.get("/products/1")).json()
    assert second["view_count"] == first["view_count"] + 1
    assert second["price"] == "10.00"
    assert second["category_name"] == "Tools"

    quiet = (await client.get("/products/1", params={"track_view": "false"})).json()
    assert quiet["view_count"] == second["view_count"]


@pytest.mark.anyio
async def test_unknown_product_is_404_envelope(client):
    resp = await client.get("/products/404")
    assert resp.status_code == 404
    body = resp.json()
    assert body["error"] == "PRODUCT_NOT_FOUND"
    assert body["details"]["product_id"] == 404


@pytest.mark.anyio
async def test_stock_and_categories(client):
    resp = await client.get("/products/2/stock")
    assert resp.json() == {"product_id": 2, "stock_quantity": 1, "in_stock": True, "low_stock": True}

    categories = (await client.get("/categories")).json()
    assert categories[0]["name"] == "Tools"
    assert categories[0]["product_count"] == 2

    resp = await client.get(f"/categories/{categories[0]['id']}")
    assert resp.status_code == 200


@pytest.mark.anyio
async def test_search(client):
    resp = await client.get("/search", params={"q": "widg"})
    assert resp.status_code == 200
    assert resp.json()["count"] == 1

    resp = await client.get("/search", params={"q": "  "})
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_REQUEST"


@pytest.mark.anyio
async def test_reserve_and_release(client):
    resp = await client.post("/products/1/reserve", headers=INTERNAL, json={"quantity": 2, "order_id": "ORD-1"})
    assert resp.status_code == 200
    assert resp.json()["remaining_stock"] == 3

    resp = await client.post("/products/1/release", headers=INTERNAL, json={"quantity": 5, "order_id": "ORD-1"})
    assert resp.json()["released_quantity"] == 2
    assert resp.json()["remaining_stock"] == 5

    resp = await client.post("/products/1/release", headers=INTERNAL, json={"quantity": 2, "order_id": "ORD-1"})
    assert resp.json()["released_quantity"] == 0


@pytest.mark.anyio
async def test_reserve_after_release_is_conflict(client):
    resp = await client.post("/products/2/release", headers=INTERNAL, json={"quantity": 1, "order_id": "ORD-7"})
    assert resp.json()["released_quantity"] == 0

    resp = await client.post("/products/2/reserve", headers=INTERNAL, json={"quantity": 1, "order_id": "ORD-7"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "RESERVATION_VOIDED"

    stock = (await client.get("/products/2/stock")).json()
    assert stock["stock_quantity"] == 1


@pytest.mark.anyio
async def test_reserve_insufficient_stock_envelope(client):
    resp = await client.post("/products/2/reserve", headers=INTERNAL, json={"quantity": 3, "order_id": "ORD-1"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "INSUFFICIENT_STOCK"
    assert body["details"]["requested"] == 3
    assert body["details"]["available"] == 1


@pytest.mark.anyio
async def test_reserve_requires_internal_token(client):
    resp = await client.post("/products/1/reserve", json={"quantity": 1, "order_id": "ORD-1"})
    assert resp.status_code == 401

    resp = await client.post(
        "/products/1/reserve",
        headers={"X-Internal-Token": "wrong"},
        json={"quantity": 1, "order_id": "ORD-1"},
    )
    assert resp.status_code == 401
    assert resp.json()["error"] == "INVALID_INTERNAL_TOKEN"


@pytest.mark.anyio
async def test_non_ascii_internal_token_is_rejected(client):
    resp = await client.post(
        "/products/1/reserve",
        headers={"X-Internal-Token": "café".encode()},
        json={"quantity": 1, "order_id": "ORD-1"},
    )
    assert resp.status_code == 401
    assert resp.json()["error"] == "INVALID_INTERNAL_TOKEN"


@pytest.mark.anyio
async def test_reserve_rejects_non_positive_quantity(client):
    resp = await client.post("/products/1/reserve", headers=INTERNAL, json={"quantity": 0, "order_id": "ORD-1"})
    assert resp.status_code == 400


@pytest.mark.anyio
async def test_admin_restock_adjust_and_movement_log(client):
    resp = await client.post("/products/2/restock", headers=ADMIN, json={"quantity": 4})
    assert resp.status_code == 200
    assert resp.json()["stock_quantity"] == 5

    resp = await client.post("/products/2/adjustments", headers=ADMIN, json={"delta": -2, "note": "damaged"})
    assert resp.json()["stock_quantity"] == 3

    resp = await client.post("/products/2/adjustments", headers=ADMIN, json={"delta": -9, "note": "stocktake"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "INSUFFICIENT_STOCK"

    log = (await client.get("/products/2/movements", headers=ADMIN)).json()
    assert log["stock_quantity"] == 3
    assert [m["movement_type"] for m in log["movements"]] == ["adjustment", "restock"]


@pytest.mark.anyio
async def test_inventory_admin_routes_reject_customers(client):
    resp = await client.post("/products/1/restock", headers=CUSTOMER, json={"quantity": 1})
    assert resp.status_code == 403
    resp = await client.get("/products/1/movements")
    assert resp.status_code == 401


@pytest.mark.anyio
async def test_security_headers_present(client):
    resp = await client.get("/health")
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.json()["service"] == "products"
