from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Channel(str, Enum):
    WHATSAPP_META = "whatsapp_meta"
    WHATSAPP_TWILIO = "whatsapp_twilio"
    TELEGRAM = "telegram"
    FACEBOOK = "facebook"

    @property
    def platform(self) -> str:
        """Integration registry platform for this wire channel."""
        if self in (Channel.WHATSAPP_META, Channel.WHATSAPP_TWILIO):
            return "whatsapp"
        return self.value


class MessageBody(BaseModel):
    model_config = ConfigDict(frozen=True)

    message_type: str = "text"  # text, image, document, audio, video, location, ...
    text: str = ""
    media_id: Optional[str] = None
    media_url: Optional[str] = None
    mime_type: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class CanonicalInboundMessage(BaseModel):
    """Channel-neutral form of one wire event. Built by an adapter, consumed once."""

    model_config = ConfigDict(frozen=True)

    channel: Channel
    sender_channel_id: str
    business_channel_id: str
    body: MessageBody
    provider_message_id: str
    received_at: datetime

    @property
    def correlation_id(self) -> str:
        return f"{self.channel.value}:{self.provider_message_id}"
