from pydantic import BaseModel, Field
from typing import List, Optional
import uuid
from decimal import Decimal
from deliverysync.models.order import OrderStatus


class OrderItemRequest(BaseModel):
    """Schema for a single item in the order request."""
    menu_item_id: uuid.UUID
    quantity: int = Field(..., gt=0)
    special_instructions: Optional[str] = None

class OrderRequest(BaseModel):
    """Schema for the full order placement request body."""
    restaurant_id: uuid.UUID
    items: List[OrderItemRequest]
    delivery_address: str = Field(..., min_length=1)
    delivery_instructions: Optional[str] = None
    delivery_fee: Decimal = Field(Decimal("0"), ge=0)

class OrderPlacementResponse(BaseModel):
    """Response schema for a newly placed order."""
    order_id: uuid.UUID
    order_number: Optional[str] = None
    status: OrderStatus
    total: Decimal
    message: str

class OrderStatusUpdate(BaseModel):
    """Schema for updating an order status."""
    status: OrderStatus
    cancellation_reason: Optional[str] = None
