"""
Cart routes (orders service)
"""
from fastapi import APIRouter, Depends, Request

from storefront.api.deps import get_current_claims
from storefront.schemas.cart import CartItemAdd, CartItemResponse, CartItemUpdate, CartResponse
from storefront.services.cart_service import CartSummary
from storefront.services.identity_client import TokenClaims

router = APIRouter()


def _cart_response(summary: CartSummary) -> CartResponse:
    return CartResponse(
        items=[
            CartItemResponse(
                product_id=view.line.product_id,
                product_name=view.line.product_name,
                quantity=view.line.quantity,
                price_at_add=view.line.price_at_add,
                current_price=view.current_price,
                subtotal=view.subtotal,
                in_stock=view.in_stock,
                available=view.available,
            )
            for view in summary.items
        ],
        item_count=summary.item_count,
        total_amount=summary.total_amount,
    )


async def _current_cart(request: Request, user_id: int) -> CartResponse:
    return _cart_response(await request.app.state.cart_service.get_cart(user_id))


@router.get("", response_model=CartResponse)
async def get_cart(request: Request, claims: TokenClaims = Depends(get_current_claims)):
    """Cart lines with live price and stock from the catalog."""
    return await _current_cart(request, claims.user_id)


@router.post("/items", response_model=CartResponse, status_code=201)
async def add_to_cart(
    payload: CartItemAdd,
    request: Request,
    claims: TokenClaims = Depends(get_current_claims),
):
    await request.app.state.cart_service.add_item(claims.user_id, payload.product_id, payload.quantity)
    return await _current_cart(request, claims.user_id)


@router.put("/items/{product_id}", response_model=CartResponse)
async def update_cart_item(
    product_id: int,
    payload: CartItemUpdate,
    request: Request,
    claims: TokenClaims = Depends(get_current_claims),
):
    """quantity 0 removes the line."""
    await request.app.state.cart_service.update_item(claims.user_id, product_id, payload.quantity)
    return await _current_cart(request, claims.user_id)


@router.delete("/items/{product_id}", response_model=CartResponse)
async def remove_cart_item(
    product_id: int,
    request: Request,
    claims: TokenClaims = Depends(get_current_claims),
):
    await request.app.state.cart_service.remove_item(claims.user_id, product_id)
    return await _current_cart(request, claims.user_id)


@router.delete("", response_model=CartResponse)
async def clear_cart(request: Request, claims: TokenClaims = Depends(get_current_claims)):
    await request.app.state.cart_service.clear(claims.user_id)
    return await _current_cart(request, claims.user_id)
