"""
Authentication routes (users service)
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from storefront.api.deps import client_context, get_bearer_token
from storefront.core.exceptions import AuthenticationError
from storefront.core.rate_limit import get_auth_limit
from storefront.schemas.user import AuthResponse, TokenClaimsResponse, UserLogin, UserRegister, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _auth_response(result) -> AuthResponse:
    return AuthResponse(
        user=UserResponse.model_validate(result.user),
        access_token=result.access_token,
        expires_in=result.expires_in,
    )


@router.post("/register", response_model=AuthResponse, status_code=201)
@get_auth_limit()
async def register(request: Request, payload: UserRegister):
    """Create a customer account and sign it in."""
    result = await request.app.state.auth_service.register(
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        context=client_context(request),
    )
    return _auth_response(result)


@router.post("/login", response_model=AuthResponse)
@get_auth_limit()
async def login(request: Request, payload: UserLogin):
    result = await request.app.state.auth_service.login(
        payload.email, payload.password, context=client_context(request),
    )
    return _auth_response(result)


@router.post("/verify", response_model=TokenClaimsResponse)
async def verify(request: Request, token: Optional[str] = Depends(get_bearer_token)):
    """
    Token verification for the other services.

    200 with the caller's claims, or 401 when the token is invalid, expired
    or logged out.
    """
    if not token:
        raise AuthenticationError("Access token required")
    claims = await request.app.state.auth_service.verify_token(token)
    if claims is None:
        raise AuthenticationError("Invalid or expired token", code="INVALID_TOKEN")
    return TokenClaimsResponse.model_validate(claims)


@router.post("/logout")
async def logout(request: Request, token: Optional[str] = Depends(get_bearer_token)):
    if not token:
        raise AuthenticationError("Access token required")
    await request.app.state.auth_service.logout(token, context=client_context(request))
    return {"message": "Logged out"}
