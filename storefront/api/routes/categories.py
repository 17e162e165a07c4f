"""Category routes (products service)"""
from typing import List

from fastapi import APIRouter, Request

from storefront.schemas.product import CategoryResponse

router = APIRouter()


@router.get("", response_model=List[CategoryResponse])
async def list_categories(request: Request):
    categories = await request.app.state.product_store.list_categories()
    return [CategoryResponse.model_validate(c) for c in categories]


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(category_id: int, request: Request):
    return CategoryResponse.model_validate(
        await request.app.state.product_store.get_category(category_id)
    )
