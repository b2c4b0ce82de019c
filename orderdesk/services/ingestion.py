"""Wire adapters: provider webhook payloads to CanonicalInboundMessage."""

import hashlib
import hmac
from datetime import datetime, timezone
from typing import Mapping, Optional

from orderdesk.logging_config import get_logger
from orderdesk.schemas.facebook import MessengerWebhook
from orderdesk.schemas.inbound import CanonicalInboundMessage, Channel, MessageBody
from orderdesk.schemas.telegram import TelegramUpdate
from orderdesk.schemas.whatsapp import WhatsAppMessage, WhatsAppWebhook
from orderdesk.services.dispatch.telegram import TELEGRAM_PREFIX
from orderdesk.services.dispatch.twilio_whatsapp import WHATSAPP_PREFIX

logger = get_logger("ingestion")


def verify_signature(body: bytes, signature_header: Optional[str], secret: str) -> bool:
    """Check a Meta X-Hub-Signature-256 header. Always passes when no secret is configured."""
    if not secret:
        return True
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature_header[len("sha256=") :])


def _from_epoch(value) -> datetime:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return datetime.now(timezone.utc)


def _strip_whatsapp_prefix(number: str) -> str:
    return number[len(WHATSAPP_PREFIX) :] if number.startswith(WHATSAPP_PREFIX) else number


def _meta_body(message: WhatsAppMessage) -> MessageBody:
    if message.type == "text" and message.text:
        return MessageBody(message_type="text", text=message.text.body)
    if message.type == "location" and message.location:
        return MessageBody(
            message_type="location",
            text=message.location.name or message.location.address or "",
            latitude=message.location.latitude,
            longitude=message.location.longitude,
        )
    media = getattr(message, message.type, None) if message.type in ("image", "document", "audio") else None
    if media is not None:
        return MessageBody(
            message_type=message.type,
            text=media.caption or "",
            media_id=media.id,
            mime_type=media.mime_type,
        )
    return MessageBody(message_type=message.type)


def parse_meta_whatsapp(payload: dict) -> list[CanonicalInboundMessage]:
    """Every customer message in a Cloud API delivery. Status callbacks yield nothing."""
    webhook = WhatsAppWebhook(**payload)
    messages = []
    for entry in webhook.entry:
        for change in entry.changes:
            value = change.value
            if value is None or not value.messages:
                continue
            phone_number_id = value.metadata.phone_number_id if value.metadata else None
            if not phone_number_id:
                logger.warning("WhatsApp change without metadata.phone_number_id")
                continue
            for message in value.messages:
                messages.append(
                    CanonicalInboundMessage(
                        channel=Channel.WHATSAPP_META,
                        sender_channel_id=message.from_,
                        business_channel_id=phone_number_id,
                        body=_meta_body(message),
                        provider_message_id=message.id,
                        received_at=_from_epoch(message.timestamp),
                    )
                )
    return messages


def parse_twilio(form: Mapping[str, str]) -> Optional[CanonicalInboundMessage]:
    sender = form.get("From", "")
    receiver = form.get("To", "")
    message_sid = form.get("MessageSid") or form.get("SmsMessageSid")
    if not sender or not receiver or not message_sid:
        logger.warning("Twilio webhook missing From, To or MessageSid")
        return None

    body = form.get("Body", "") or ""
    try:
        num_media = int(form.get("NumMedia", "0") or 0)
    except ValueError:
        num_media = 0

    if num_media > 0:
        content_type = form.get("MediaContentType0") or ""
        kind = "image" if content_type.startswith("image/") else "document"
        message_body = MessageBody(
            message_type=kind, text=body, media_url=form.get("MediaUrl0"), mime_type=content_type or None
        )
    else:
        message_body = MessageBody(message_type="text", text=body)

    return CanonicalInboundMessage(
        channel=Channel.WHATSAPP_TWILIO,
        sender_channel_id=_strip_whatsapp_prefix(sender),
        business_channel_id=_strip_whatsapp_prefix(receiver),
        body=message_body,
        provider_message_id=message_sid,
        received_at=datetime.now(timezone.utc),
    )


def parse_telegram(payload: dict, bot_key: str) -> Optional[CanonicalInboundMessage]:
    """Private chats only; edits and bot senders are ignored."""
    update = TelegramUpdate(**payload)
    message = update.message
    if message is None:
        return None
    if message.chat.type != "private":
        logger.debug(f"Ignoring Telegram {message.chat.type} chat {message.chat.id}")
        return None
    if message.from_user and message.from_user.is_bot:
        return None

    if message.photo:
        largest = message.photo[-1]
        body = MessageBody(message_type="image", text=message.caption or "", media_id=largest.file_id)
    elif message.document:
        body = MessageBody(
            message_type="document",
            text=message.caption or "",
            media_id=message.document.file_id,
            mime_type=message.document.mime_type,
        )
    elif message.location:
        body = MessageBody(
            message_type="location", latitude=message.location.latitude, longitude=message.location.longitude
        )
    else:
        body = MessageBody(message_type="text", text=message.text or "")

    return CanonicalInboundMessage(
        channel=Channel.TELEGRAM,
        sender_channel_id=f"{TELEGRAM_PREFIX}{message.chat.id}",
        business_channel_id=bot_key,
        body=body,
        provider_message_id=f"{message.chat.id}:{message.message_id}",
        received_at=_from_epoch(message.date),
    )


def parse_messenger(payload: dict) -> list[CanonicalInboundMessage]:
    webhook = MessengerWebhook(**payload)
    messages = []
    for entry in webhook.entry:
        for event in entry.messaging:
            message = event.message
            if message is None or message.is_echo:
                continue
            if message.attachments:
                attachment = message.attachments[0]
                kind = "image" if attachment.type == "image" else attachment.type
                body = MessageBody(
                    message_type=kind,
                    text=message.text or "",
                    media_url=attachment.payload.url if attachment.payload else None,
                )
            else:
                body = MessageBody(message_type="text", text=message.text or "")
            received_at = (
                _from_epoch(event.timestamp // 1000) if event.timestamp else datetime.now(timezone.utc)
            )
            messages.append(
                CanonicalInboundMessage(
                    channel=Channel.FACEBOOK,
                    sender_channel_id=event.sender.id,
                    business_channel_id=entry.id,
                    body=body,
                    provider_message_id=message.mid,
                    received_at=received_at,
                )
            )
    return messages
