"""
Order routes (orders service)
"""
import logging

from fastapi import APIRouter, Depends, Request

from storefront.api.deps import Page, get_current_claims, get_page
from storefront.core.exceptions import PermissionDeniedError
from storefront.core.rate_limit import get_checkout_limit
from storefront.schemas.order import (
    CheckoutResponse,
    OrderCreate,
    OrderItemResponse,
    OrderList,
    OrderResponse,
)
from storefront.services.identity_client import TokenClaims
from storefront.stores.orders import OrderRecord

logger = logging.getLogger(__name__)

router = APIRouter()


def _order_response(order: OrderRecord) -> OrderResponse:
    return OrderResponse(
        order_id=order.id,
        user_id=order.user_id,
        status=order.status,
        total_amount=order.total_amount,
        shipping_address=order.shipping_address,
        payment_method=order.payment_method,
        items=[OrderItemResponse.model_validate(i) for i in order.items],
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


@router.post("", response_model=CheckoutResponse, status_code=201)
@get_checkout_limit()
async def create_order(
    request: Request,
    payload: OrderCreate,
    claims: TokenClaims = Depends(get_current_claims),
):
    """
    Check out the caller's cart.

    Either an order is created (stock reserved, cart cleared) or nothing
    changes and an error envelope explains why.
    """
    address = payload.shipping_address.model_dump() if payload.shipping_address else None
    result = await request.app.state.checkout.checkout(claims, address, payload.payment_method)
    return CheckoutResponse(
        order_id=result.order_id,
        items=[OrderItemResponse.model_validate(i) for i in result.items],
        total_amount=result.total_amount,
        status=result.status,
    )


@router.get("", response_model=OrderList)
async def list_orders(
    request: Request,
    page: Page = Depends(get_page),
    claims: TokenClaims = Depends(get_current_claims),
):
    orders, total = await request.app.state.order_store.list_orders(
        user_id=claims.user_id, offset=page.offset, limit=page.limit,
    )
    return OrderList(
        orders=[_order_response(o) for o in orders],
        total=total,
        page=page.page,
        limit=page.limit,
        pages=page.pages(total),
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, request: Request, claims: TokenClaims = Depends(get_current_claims)):
    order = await request.app.state.order_store.get_order(order_id)
    if order.user_id != claims.user_id and not claims.is_admin:
        raise PermissionDeniedError("Access denied", details={"order_id": order_id})
    return _order_response(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, request: Request, claims: TokenClaims = Depends(get_current_claims)):
    order = await request.app.state.checkout.cancel_order(claims, order_id)
    return _order_response(order)
