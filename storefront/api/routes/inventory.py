"""
Inventory routes (products service)

reserve/release are the internal endpoints the orders service calls during
checkout; restock, adjustments and the movement log are admin tools.
"""
import logging

from fastapi import APIRouter, Depends, Query, Request

from storefront.api.deps import get_current_admin, require_internal_token
from storefront.schemas.product import (
    AdjustmentRequest,
    MovementList,
    MovementResponse,
    ReleaseResponse,
    ReservationResponse,
    RestockRequest,
    StockRequest,
    StockResponse,
)
from storefront.services.identity_client import TokenClaims
from storefront.services.stock_ledger import MovementRecord, MovementType

logger = logging.getLogger(__name__)

router = APIRouter()


def _movement(m: MovementRecord) -> MovementResponse:
    return MovementResponse(
        id=m.id,
        product_id=m.product_id,
        delta=m.delta,
        movement_type=m.movement_type.value,
        reference_id=m.reference_id,
        note=m.note,
        created_at=m.created_at,
    )


async def _stock_response(request: Request, product_id: int) -> StockResponse:
    product = await request.app.state.product_store.get_product(product_id, include_inactive=True)
    return StockResponse(
        product_id=product_id,
        stock_quantity=product.stock_quantity,
        in_stock=product.in_stock,
        low_stock=product.low_stock,
    )


@router.post(
    "/{product_id}/reserve",
    response_model=ReservationResponse,
    dependencies=[Depends(require_internal_token)],
)
async def reserve_stock(product_id: int, payload: StockRequest, request: Request):
    """
    400 INSUFFICIENT_STOCK carries requested and available quantities.
    409 RESERVATION_VOIDED when the order was already released for this product.
    """
    result = await request.app.state.coordinator.reserve(product_id, payload.quantity, payload.order_id)
    return ReservationResponse.model_validate(result)


@router.post(
    "/{product_id}/release",
    response_model=ReleaseResponse,
    dependencies=[Depends(require_internal_token)],
)
async def release_stock(product_id: int, payload: StockRequest, request: Request):
    result = await request.app.state.coordinator.release(product_id, payload.quantity, payload.order_id)
    return ReleaseResponse.model_validate(result)


@router.post("/{product_id}/restock", response_model=StockResponse)
async def restock(
    product_id: int,
    payload: RestockRequest,
    request: Request,
    admin: TokenClaims = Depends(get_current_admin),
):
    await request.app.state.ledger.apply_movement(
        product_id,
        payload.quantity,
        MovementType.RESTOCK,
        reference_id=f"user:{admin.user_id}",
        note=payload.note or "Restock",
    )
    logger.info("Product %s restocked +%d by user %s", product_id, payload.quantity, admin.user_id)
    return await _stock_response(request, product_id)


@router.post("/{product_id}/adjustments", response_model=StockResponse)
async def adjust_stock(
    product_id: int,
    payload: AdjustmentRequest,
    request: Request,
    admin: TokenClaims = Depends(get_current_admin),
):
    """Manual correction (stocktake, damage). Cannot take stock below zero."""
    await request.app.state.ledger.apply_movement(
        product_id,
        payload.delta,
        MovementType.ADJUSTMENT,
        reference_id=f"user:{admin.user_id}",
        note=payload.note,
    )
    logger.info("Product %s adjusted %+d by user %s", product_id, payload.delta, admin.user_id)
    return await _stock_response(request, product_id)


@router.get("/{product_id}/movements", response_model=MovementList)
async def list_movements(
    product_id: int,
    request: Request,
    limit: int = Query(50, ge=1, le=500),
    admin: TokenClaims = Depends(get_current_admin),
):
    ledger = request.app.state.ledger
    movements = await ledger.list_movements(product_id, limit)
    return MovementList(
        product_id=product_id,
        stock_quantity=await ledger.get_stock(product_id),
        movement_total=await ledger.movement_total(product_id),
        movements=[_movement(m) for m in movements],
    )
