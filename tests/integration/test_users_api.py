import pytest
from httpx import ASGITransport, AsyncClient

from storefront.apps.users import create_app

NEW_USER = {
    "email": "Jane@Example.com",
    "password": "hunter22",
    "first_name": "Jane",
    "last_name": "Doe",
}


@pytest.fixture
def users_app():
    return create_app(seed=True)


@pytest.fixture
async def client(users_app):
    transport = ASGITransport(app=users_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.anyio
async def test_health_reports_service_and_request_headers(client):
    resp = await client.get("/health", headers={"X-Request-ID": "abc123"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["service"] == "users"
    assert body["status"] == "healthy"
    assert body["storage"] == "memory"
    assert resp.headers["x-request-id"] == "abc123"
    assert "x-request-duration" in resp.headers


@pytest.mark.anyio
async def test_register_login_verify_logout(client):
    resp = await client.post("/auth/register", json=NEW_USER)
    assert resp.status_code == 201
    registered = resp.json()
    assert registered["user"]["email"] == "jane@example.com"
    assert registered["user"]["role"] == "customer"
    assert registered["token_type"] == "bearer"

    resp = await client.post("/auth/login", json={"email": "jane@example.com", "password": "hunter22"})
    assert resp.status_code == 200
    token = resp.json()["access_token"]

    resp = await client.post("/auth/verify", headers=bearer(token))
    assert resp.status_code == 200
    assert resp.json() == {
        "user_id": registered["user"]["id"],
        "email": "jane@example.com",
        "role": "customer",
    }

    resp = await client.post("/auth/logout", headers=bearer(token))
    assert resp.status_code == 200

    resp = await client.post("/auth/verify", headers=bearer(token))
    assert resp.status_code == 401
    assert resp.json()["error"] == "INVALID_TOKEN"


@pytest.mark.anyio
async def test_register_duplicate_email_conflicts(client):
    assert (await client.post("/auth/register", json=NEW_USER)).status_code == 201
    resp = await client.post("/auth/register", json={**NEW_USER, "email": "jane@example.com"})
    assert resp.status_code == 409
    assert resp.json()["success"] is False


@pytest.mark.anyio
async def test_register_validation_envelope(client):
    resp = await client.post("/auth/register", json={**NEW_USER, "email": "not-an-email"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "INVALID_REQUEST"
    assert body["details"]["errors"]

    resp = await client.post("/auth/register", json={**NEW_USER, "password": "abc"})
    assert resp.status_code == 400


@pytest.mark.anyio
async def test_login_wrong_password(client):
    resp = await client.post("/auth/login", json={"email": "customer@example.com", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "INVALID_CREDENTIALS"


@pytest.mark.anyio
async def test_profile_read_and_update(client):
    token = (await client.post("/auth/register", json=NEW_USER)).json()["access_token"]

    resp = await client.get("/users/me", headers=bearer(token))
    assert resp.status_code == 200
    assert resp.json()["first_name"] == "Jane"

    resp = await client.put("/users/me", headers=bearer(token), json={"first_name": "Janet"})
    assert resp.status_code == 200
    assert resp.json()["first_name"] == "Janet"
    assert resp.json()["last_name"] == "Doe"


@pytest.mark.anyio
async def test_protected_routes_need_token(client):
    resp = await client.get("/users/me")
    assert resp.status_code == 401
    assert resp.json()["error"] == "NOT_AUTHENTICATED"

    resp = await client.get("/users/me", headers=bearer("garbage"))
    assert resp.status_code == 401


@pytest.mark.anyio
async def test_user_list_is_admin_only(client):
    customer = await client.post(
        "/auth/login", json={"email": "customer@example.com", "password": "customer123"},
    )
    resp = await client.get("/users", headers=bearer(customer.json()["access_token"]))
    assert resp.status_code == 403

    admin = await client.post("/auth/login", json={"email": "admin@ecommerce.com", "password": "admin123"})
    resp = await client.get("/users", headers=bearer(admin.json()["access_token"]))
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    assert {u["email"] for u in body["users"]} == {"admin@ecommerce.com", "customer@example.com"}


@pytest.mark.anyio
async def test_unknown_route_uses_error_envelope(client):
    resp = await client.get("/nowhere")
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "error": "NOT_FOUND", "message": "Endpoint not found"}
