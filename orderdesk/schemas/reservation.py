from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, model_validator


class ReservationRequest(BaseModel):
    business_id: UUID
    resource_id: UUID
    start_at: datetime
    end_at: datetime
    customer_channel_id: Optional[str] = None
    customer_name: Optional[str] = None
    party_size: Optional[int] = None

    @model_validator(mode="after")
    def check_window(self) -> "ReservationRequest":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class ReservationResponse(BaseModel):
    id: UUID
    resource_id: UUID
    start_at: datetime
    end_at: datetime
    status: str
