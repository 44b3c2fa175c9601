from pydantic import BaseModel, Field
from typing import List, Optional

from shopflow.models.order import OrderStatus


class OrderItemRequest(BaseModel):
    """Schema for a single item in the order request (price snapshot included)."""
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)
    name: str = ""
    price: int = Field(..., ge=0)


class OrderRequest(BaseModel):
    """Schema for the full order placement request body."""
    user_id: str = Field(..., min_length=1)
    items: List[OrderItemRequest]


class OrderPlacementResponse(BaseModel):
    """Response schema for a newly placed order (202 Accepted)."""
    order_id: int
    status: OrderStatus
    total_amount: int
    message: str


class OrderItemResponse(BaseModel):
    product_id: int
    name: str
    quantity: int
    price: int


class OrderDetailResponse(BaseModel):
    """Schema for fetching an order and its saga progress."""
    id: int
    status: OrderStatus
    total_amount: int
    payment_url: Optional[str] = None
    items: List[OrderItemResponse]
    created_at: str
