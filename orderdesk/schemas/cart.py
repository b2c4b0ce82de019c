from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel


class CartResponse(BaseModel):
    id: UUID
    business_id: UUID
    branch_id: Optional[UUID] = None
    customer_channel_id: str
    status: str
    line_items: list[dict[str, Any]]
    delivery_type: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    updated_at: datetime
    minutes_since_update: int
    minutes_until_timeout: int
    expired: bool


class CartListResponse(BaseModel):
    count: int
    carts: list[CartResponse]


class CartCancelRequest(BaseModel):
    business_id: UUID
    changed_by: str


class CartCancelResponse(BaseModel):
    success: bool
    cart_id: UUID
    status: str
    message: str
