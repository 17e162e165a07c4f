"""
API dependencies

Every service resolves callers the same way: the bearer token is handed to
the app's identity verifier (AuthService in the users service,
HttpIdentityClient elsewhere), which answers with claims or None.
"""
import hmac
import math
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from storefront.core.config import settings
from storefront.core.exceptions import AuthenticationError, PermissionDeniedError
from storefront.core.utils import clamp_page
from storefront.services.auth_service import RequestContext
from storefront.services.identity_client import TokenClaims

# Optional bearer - doesn't fail if no Authorization header
security = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return None


async def get_current_claims(
    request: Request,
    token: Optional[str] = Depends(get_bearer_token),
) -> TokenClaims:
    if not token:
        raise AuthenticationError("Access token required")
    claims = await request.app.state.identity.verify_token(token)
    if claims is None:
        raise AuthenticationError("Invalid or expired token", code="INVALID_TOKEN")
    return claims


async def get_current_admin(claims: TokenClaims = Depends(get_current_claims)) -> TokenClaims:
    if not claims.is_admin:
        raise PermissionDeniedError("Admin access required")
    return claims


def require_internal_token(
    request: Request,
    x_internal_token: Optional[str] = Header(None),
) -> None:
    """
    Guard for service-to-service endpoints. Open when no internal token is
    configured for the app.
    """
    expected = request.app.state.internal_token
    if not expected:
        return
    if not x_internal_token or not hmac.compare_digest(x_internal_token.encode(), expected.encode()):
        raise AuthenticationError("Internal token required", code="INVALID_INTERNAL_TOKEN")


@dataclass
class Page:
    page: int
    limit: int
    offset: int

    def pages(self, total: int) -> int:
        return math.ceil(total / self.limit) if total else 0


def get_page(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, description="Items per page"),
) -> Page:
    page, limit, offset = clamp_page(page, limit, settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
    return Page(page=page, limit=limit, offset=offset)


def client_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
