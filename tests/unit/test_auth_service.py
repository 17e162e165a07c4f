from datetime import timedelta

import pytest

from storefront.core.exceptions import (
    AuthenticationError,
    ConflictError,
    InvalidRequestError,
    PermissionDeniedError,
)
from storefront.core.security import create_access_token, decode_token, get_password_hash, hash_token, verify_password
from storefront.services.auth_service import AuthService
from storefront.stores.users import InMemoryUserStore


@pytest.fixture
def auth():
    return AuthService(InMemoryUserStore())


async def register(auth, email="jane@example.com", password="secret123"):
    return await auth.register(email, password, first_name="Jane", last_name="Doe")


def test_password_hashing():
    hashed = get_password_hash("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("secret123", "not-a-bcrypt-hash")


def test_decode_token_rejects_garbage_and_expired():
    assert decode_token("not.a.jwt") is None
    expired = create_access_token({"sub": 1}, expires_delta=timedelta(seconds=-5))
    assert decode_token(expired) is None


def test_access_token_carries_jti_and_string_sub():
    payload = decode_token(create_access_token({"sub": 7}))
    assert payload["sub"] == "7"
    assert payload["type"] == "access"
    assert payload["jti"]


def test_hash_token_is_stable_sha256():
    assert hash_token("abc") == hash_token("abc")
    assert len(hash_token("abc")) == 64


@pytest.mark.asyncio
async def test_register_creates_customer_and_session(auth):
    result = await register(auth, email="  Jane@Example.com ")

    assert result.user.email == "jane@example.com"
    assert result.user.role == "customer"
    claims = await auth.verify_token(result.access_token)
    assert claims.user_id == result.user.id
    assert claims.role == "customer"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "email, password, first_name",
    [
        ("not-an-email", "secret123", "Jane"),
        ("jane@example.com", "123", "Jane"),
        ("jane@example.com", "secret123", "  "),
    ],
)
async def test_register_validation(auth, email, password, first_name):
    with pytest.raises(InvalidRequestError):
        await auth.register(email, password, first_name=first_name, last_name="Doe")


@pytest.mark.asyncio
async def test_register_duplicate_email(auth):
    await register(auth)
    with pytest.raises(ConflictError):
        await register(auth, email="JANE@example.com")


@pytest.mark.asyncio
async def test_login_and_bad_credentials(auth):
    await register(auth)

    result = await auth.login("jane@example.com", "secret123")
    assert result.user.last_login is not None

    with pytest.raises(AuthenticationError):
        await auth.login("jane@example.com", "wrong-password")
    with pytest.raises(AuthenticationError):
        await auth.login("nobody@example.com", "secret123")


@pytest.mark.asyncio
async def test_disabled_account_cannot_login(auth):
    registered = await register(auth)
    await auth.store.update_user(registered.user.id, is_active=False)

    with pytest.raises(PermissionDeniedError):
        await auth.login("jane@example.com", "secret123")


@pytest.mark.asyncio
async def test_logout_revokes_token(auth):
    result = await register(auth)

    assert await auth.logout(result.access_token)
    assert await auth.verify_token(result.access_token) is None


@pytest.mark.asyncio
async def test_valid_jwt_without_session_is_rejected(auth):
    registered = await register(auth)
    forged = create_access_token({"sub": registered.user.id, "email": "jane@example.com", "role": "admin"})

    assert await auth.verify_token(forged) is None


@pytest.mark.asyncio
async def test_audit_trail(auth):
    result = await register(auth)
    await auth.login("jane@example.com", "secret123")
    await auth.update_profile(result.user.id, first_name="Janet")
    await auth.logout(result.access_token)

    actions = [r.action for r in await auth.store.list_audit(result.user.id)]
    assert actions == ["register", "login", "profile_update", "logout"]


@pytest.mark.asyncio
async def test_update_profile_requires_a_field(auth):
    result = await register(auth)
    with pytest.raises(InvalidRequestError):
        await auth.update_profile(result.user.id)
