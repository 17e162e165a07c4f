"""
Cart schemas
"""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class CartItemAdd(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=0)


class CartItemResponse(BaseModel):
    product_id: int
    product_name: Optional[str]
    quantity: int
    price_at_add: Decimal
    current_price: Optional[Decimal]
    subtotal: Decimal
    in_stock: bool
    available: bool


class CartResponse(BaseModel):
    items: List[CartItemResponse]
    item_count: int
    total_amount: Decimal
