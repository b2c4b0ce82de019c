from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class SessionLockRequest(BaseModel):
    business_id: UUID
    customer_channel_id: str
    employee_id: str


class SessionReleaseRequest(BaseModel):
    business_id: UUID
    customer_channel_id: str


class SessionResponse(BaseModel):
    business_id: UUID
    customer_channel_id: str
    assigned_employee_id: Optional[str] = None
    locked: bool
