"""Meta WhatsApp Cloud API webhook payload (fields the pipeline reads)."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class WhatsAppText(BaseModel):
    body: str = ""


class WhatsAppMedia(BaseModel):
    id: Optional[str] = None
    mime_type: Optional[str] = None
    caption: Optional[str] = None
    filename: Optional[str] = None


class WhatsAppLocation(BaseModel):
    latitude: float
    longitude: float
    name: Optional[str] = None
    address: Optional[str] = None


class WhatsAppMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    from_: str = Field(alias="from")  # "from" is reserved in Python
    id: str
    type: str = "text"
    timestamp: Optional[str] = None
    text: Optional[WhatsAppText] = None
    image: Optional[WhatsAppMedia] = None
    document: Optional[WhatsAppMedia] = None
    audio: Optional[WhatsAppMedia] = None
    location: Optional[WhatsAppLocation] = None


class WhatsAppMetadata(BaseModel):
    phone_number_id: Optional[str] = None
    display_phone_number: Optional[str] = None


class WhatsAppValue(BaseModel):
    model_config = ConfigDict(extra="ignore")

    metadata: Optional[WhatsAppMetadata] = None
    messages: list[WhatsAppMessage] = []


class WhatsAppChange(BaseModel):
    field: Optional[str] = None
    value: Optional[WhatsAppValue] = None


class WhatsAppEntry(BaseModel):
    id: Optional[str] = None
    changes: list[WhatsAppChange] = []


class WhatsAppWebhook(BaseModel):
    object: Optional[str] = None
    entry: list[WhatsAppEntry] = []
