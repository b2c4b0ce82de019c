from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class MessageLogItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    direction: str
    channel: str
    message_type: str
    text: Optional[str] = None
    media_url: Optional[str] = None
    correlation_id: Optional[str] = None
    delivery_status: Optional[str] = None
    llm_used: bool = False
    created_at: datetime


class MessageLogResponse(BaseModel):
    count: int
    messages: list[MessageLogItem]
