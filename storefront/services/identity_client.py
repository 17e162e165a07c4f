"""
Identity capability

Services other than users never decode tokens themselves; they ask the
users service. verify_token returns the caller's claims, or None when the
token is invalid, expired or its session is gone.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from storefront.core.exceptions import ServiceUnavailableError
from storefront.core.http_client import ServiceClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    email: str
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class IdentityVerifier(Protocol):
    async def verify_token(self, token: str) -> Optional[TokenClaims]:
        ...


class HttpIdentityClient:
    """IdentityVerifier backed by POST /auth/verify on the users service."""

    def __init__(self, client: ServiceClient):
        self.client = client

    async def verify_token(self, token: str) -> Optional[TokenClaims]:
        if not token:
            return None
        response = await self.client.post(
            "/auth/verify",
            headers={"Authorization": f"Bearer {token}"},
        )
        if response.status_code in (401, 403):
            return None
        if response.status_code != 200:
            logger.error("Unexpected %d from users service verify", response.status_code)
            raise ServiceUnavailableError(
                "users service returned an unexpected response",
                details={"status": response.status_code},
            )
        body = response.json()
        return TokenClaims(user_id=int(body["user_id"]), email=body["email"], role=body.get("role", "customer"))

    async def close(self) -> None:
        await self.client.close()
