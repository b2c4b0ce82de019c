"""Messenger Platform webhook payload (page subscription)."""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class MessengerParticipant(BaseModel):
    id: str


class MessengerAttachmentPayload(BaseModel):
    url: Optional[str] = None


class MessengerAttachment(BaseModel):
    type: str
    payload: Optional[MessengerAttachmentPayload] = None


class MessengerMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    mid: str
    text: Optional[str] = None
    is_echo: bool = False
    attachments: list[MessengerAttachment] = []


class MessengerEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sender: MessengerParticipant
    recipient: MessengerParticipant
    timestamp: Optional[int] = None
    message: Optional[MessengerMessage] = None


class MessengerEntry(BaseModel):
    id: str
    time: Optional[int] = None
    messaging: list[MessengerEvent] = []


class MessengerWebhook(BaseModel):
    object: Optional[str] = None
    entry: list[MessengerEntry] = []
