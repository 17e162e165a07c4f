"""
Order schemas
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class ShippingAddress(BaseModel):
    # street and city are required; checkout validates them so a blank
    # value is rejected the same way as a missing one
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class OrderCreate(BaseModel):
    shipping_address: Optional[ShippingAddress] = None
    payment_method: str = "cod"


class OrderItemResponse(BaseModel):
    product_id: int
    product_name: str
    price: Decimal
    quantity: int
    subtotal: Decimal

    class Config:
        from_attributes = True


class CheckoutResponse(BaseModel):
    order_id: str
    items: List[OrderItemResponse]
    total_amount: Decimal
    status: str


class OrderResponse(BaseModel):
    order_id: str
    user_id: int
    status: str
    total_amount: Decimal
    shipping_address: Dict[str, Any]
    payment_method: str
    items: List[OrderItemResponse]
    created_at: datetime
    updated_at: Optional[datetime]


class OrderList(BaseModel):
    orders: List[OrderResponse]
    total: int
    page: int
    limit: int
    pages: int
