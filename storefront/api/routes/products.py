"""
Product catalog routes (products service)
"""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from storefront.api.deps import Page, get_page
from storefront.schemas.product import ProductList, ProductResponse, StockResponse
from storefront.stores.products import ProductQuery

router = APIRouter()


def _split_tags(tags: Optional[str]) -> list:
    if not tags:
        return []
    return [t.strip() for t in tags.split(",") if t.strip()]


@router.get("", response_model=ProductList)
async def list_products(
    request: Request,
    page: Page = Depends(get_page),
    category_id: Optional[int] = None,
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    search: Optional[str] = None,
    tags: Optional[str] = Query(None, description="Comma separated; matches any"),
    is_featured: Optional[bool] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
):
    """
    List active products.

    Unknown sort_by / sort_order values fall back to newest first.
    """
    query = ProductQuery(
        category_id=category_id,
        min_price=min_price,
        max_price=max_price,
        search=search.strip() if search and search.strip() else None,
        tags=_split_tags(tags),
        is_featured=is_featured,
        sort_by=sort_by,
        sort_order=sort_order,
        offset=page.offset,
        limit=page.limit,
    )
    products, total = await request.app.state.product_store.list_products(query)
    return ProductList(
        products=[ProductResponse.model_validate(p) for p in products],
        total=total,
        page=page.page,
        limit=page.limit,
        pages=page.pages(total),
    )


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, request: Request, track_view: bool = True):
    store = request.app.state.product_store
    product = await store.get_product(product_id)
    if track_view:
        await store.record_view(product_id)
        product.view_count += 1
    return ProductResponse.model_validate(product)


@router.get("/{product_id}/stock", response_model=StockResponse)
async def get_stock(product_id: int, request: Request):
    product = await request.app.state.product_store.get_product(product_id, include_inactive=True)
    stock = await request.app.state.ledger.get_stock(product_id)
    return StockResponse(
        product_id=product_id,
        stock_quantity=stock,
        in_stock=stock > 0,
        low_stock=stock <= product.low_stock_threshold,
    )
