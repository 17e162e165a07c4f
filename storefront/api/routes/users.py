"""
User profile routes (users service)
"""
from fastapi import APIRouter, Depends, Request

from storefront.api.deps import Page, client_context, get_current_admin, get_current_claims, get_page
from storefront.schemas.user import UserList, UserResponse, UserUpdate
from storefront.services.identity_client import TokenClaims

router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def get_me(request: Request, claims: TokenClaims = Depends(get_current_claims)):
    return await request.app.state.auth_service.get_profile(claims.user_id)


@router.put("/me", response_model=UserResponse)
async def update_me(
    request: Request,
    payload: UserUpdate,
    claims: TokenClaims = Depends(get_current_claims),
):
    return await request.app.state.auth_service.update_profile(
        claims.user_id,
        first_name=payload.first_name,
        last_name=payload.last_name,
        context=client_context(request),
    )


@router.get("", response_model=UserList)
async def list_users(
    request: Request,
    page: Page = Depends(get_page),
    admin: TokenClaims = Depends(get_current_admin),
):
    """All accounts, newest first (admin only)."""
    users, total = await request.app.state.auth_service.list_users(page.offset, page.limit)
    return UserList(
        users=[UserResponse.model_validate(u) for u in users],
        total=total,
        page=page.page,
        limit=page.limit,
        pages=page.pages(total),
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    request: Request,
    claims: TokenClaims = Depends(get_current_claims),
):
    return await request.app.state.auth_service.get_profile(user_id)
