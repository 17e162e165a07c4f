"""Search route (products service)"""
from typing import Optional

from fastapi import APIRouter, Query, Request

from storefront.core.exceptions import InvalidRequestError
from storefront.schemas.product import ProductResponse, SearchResponse

router = APIRouter()


@router.get("/search", response_model=SearchResponse)
async def search_products(
    request: Request,
    q: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
):
    """Ranked by match quality, then by sales."""
    term = (q or "").strip()
    if not term:
        raise InvalidRequestError("Search query required", details={"field": "q"})
    results = await request.app.state.product_store.search(term, limit)
    return SearchResponse(
        query=term,
        results=[ProductResponse.model_validate(p) for p in results],
        count=len(results),
    )
