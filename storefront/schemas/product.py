"""
Product, category and inventory schemas
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class CategoryResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    product_count: int = 0

    class Config:
        from_attributes = True


class ProductResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    price: Decimal
    category_id: Optional[int]
    category_name: Optional[str]
    sku: Optional[str]
    image_url: Optional[str]
    tags: List[str] = []
    stock_quantity: int
    in_stock: bool
    low_stock: bool
    is_active: bool
    is_featured: bool
    view_count: int
    sale_count: int
    created_at: datetime

    class Config:
        from_attributes = True


class ProductList(BaseModel):
    products: List[ProductResponse]
    total: int
    page: int
    limit: int
    pages: int


class SearchResponse(BaseModel):
    query: str
    results: List[ProductResponse]
    count: int


class StockResponse(BaseModel):
    product_id: int
    stock_quantity: int
    in_stock: bool
    low_stock: bool


class StockRequest(BaseModel):
    quantity: int = Field(..., gt=0)
    order_id: str = Field(..., min_length=1, max_length=64)


class ReservationResponse(BaseModel):
    product_id: int
    order_id: str
    quantity: int
    remaining_stock: int
    movement_id: int

    class Config:
        from_attributes = True


class ReleaseResponse(BaseModel):
    product_id: int
    order_id: str
    released_quantity: int
    remaining_stock: int

    class Config:
        from_attributes = True


class RestockRequest(BaseModel):
    quantity: int = Field(..., gt=0)
    note: Optional[str] = Field(None, max_length=255)


class MovementResponse(BaseModel):
    id: int
    product_id: int
    delta: int
    movement_type: str
    reference_id: Optional[str]
    note: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class MovementList(BaseModel):
    product_id: int
    stock_quantity: int
    movement_total: int
    movements: List[MovementResponse]


class AdjustmentRequest(BaseModel):
    delta: int
    note: str = Field(..., min_length=1, max_length=255)

    @field_validator("delta")
    @classmethod
    def non_zero(cls, v):
        if v == 0:
            raise ValueError("delta must be non-zero")
        return v
