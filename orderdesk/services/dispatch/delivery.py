"""Turn a computed reply into outbound units, send them and audit each one."""

import posixpath
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional
from urllib.parse import urlparse

from orderdesk.logging_config import get_logger
from orderdesk.schemas.inbound import CanonicalInboundMessage
from orderdesk.services import alert_service
from orderdesk.services.audit_logger import AuditLogger, OutboundLogged
from orderdesk.services.conversation_engine import MediaItem, TurnResult
from orderdesk.services.dispatch.base import (
    DeliveryResult,
    DocumentPayload,
    ImagePayload,
    OutboundDispatchRequest,
    Payload,
    TextPayload,
)
from orderdesk.services.dispatch.dispatcher import Dispatcher
from orderdesk.services.tenant_resolver import TenantContext

logger = get_logger("delivery")

MARKDOWN_IMAGE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
S3_URL = re.compile(r"https?://[^\s)]*(?:\.s3[.\-][^\s)]*|s3[.\-][^\s)]*)amazonaws\.com[^\s)]*")
EXTRA_BLANK_LINES = re.compile(r"\n{3,}")

AlertFn = Callable[..., Awaitable[bool]]


def clean_reply_text(text: Optional[str]) -> str:
    """Media goes out as attachments, so links to it are removed from the text."""
    if not text:
        return ""
    text = MARKDOWN_IMAGE.sub("", text)
    text = S3_URL.sub("", text)
    text = EXTRA_BLANK_LINES.sub("\n\n", text)
    return text.strip()


def order_confirmation(order_id: str) -> str:
    return f"✅ Your order has been placed! Order #{order_id[:8].upper()}"


def compose_text(turn: TurnResult) -> str:
    text = clean_reply_text(turn.reply_text)
    if turn.order_created:
        confirmation = order_confirmation(turn.order_created.order_id)
        text = f"{text}\n\n{confirmation}" if text else confirmation
    return text


def _media_payload(item: MediaItem) -> Payload:
    if item.kind == "document":
        filename = item.filename or posixpath.basename(urlparse(item.url).path) or None
        return DocumentPayload(url=item.url, caption=item.caption, filename=filename)
    return ImagePayload(url=item.url, caption=item.caption)


@dataclass
class SentUnit:
    kind: str
    result: DeliveryResult


@dataclass
class DeliverySummary:
    units: List[SentUnit] = field(default_factory=list)
    text_suppressed: bool = False

    @property
    def delivered(self) -> int:
        return sum(1 for unit in self.units if unit.result.ok)

    @property
    def failed(self) -> int:
        return sum(1 for unit in self.units if not unit.result.ok)


class ReplyDelivery:
    """Sends the outbound units of one turn. Never holds the conversation lock."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        audit: AuditLogger,
        alert: Optional[AlertFn] = None,
    ):
        self.dispatcher = dispatcher
        self.audit = audit
        self._alert = alert or alert_service.alert_dispatch_failure

    async def _send_unit(
        self,
        context: TenantContext,
        message: CanonicalInboundMessage,
        payload: Payload,
        sequence: int,
        turn: Optional[TurnResult],
        with_tokens: bool,
    ) -> DeliveryResult:
        request = OutboundDispatchRequest(
            channel=message.channel,
            to=message.sender_channel_id,
            payload=payload,
            correlation_id=message.correlation_id,
        )
        try:
            result = await self.dispatcher.send(context, request)
        except Exception as e:
            # One bad unit must not take the rest of the reply down with it.
            logger.error(f"Unexpected dispatch error: {e}", exc_info=True)
            result = DeliveryResult.failed(0, str(e), "unexpected_error")

        tokens = with_tokens and result.ok and turn is not None
        self.audit.record(
            OutboundLogged(
                business_id=context.business_id,
                branch_id=context.branch.id if context.branch else None,
                customer_channel_id=message.sender_channel_id,
                channel=message.channel.value,
                message_type=payload.kind,
                text=payload.text if isinstance(payload, TextPayload) else payload.caption,
                media_url=None if isinstance(payload, TextPayload) else payload.url,
                correlation_id=message.correlation_id,
                sequence=sequence,
                delivery_status="sent" if result.ok else "failed",
                provider_message_id=result.provider_message_id,
                error=result.error,
                llm_used=bool(tokens and turn.llm_used),
                tokens_in=turn.tokens_in if tokens else None,
                tokens_out=turn.tokens_out if tokens else None,
                order_id=turn.order_created.order_id if turn and turn.order_created else None,
            )
        )

        if not result.ok:
            try:
                await self._alert(
                    business_id=str(context.business_id),
                    channel=message.channel.value,
                    correlation_id=message.correlation_id,
                    kind=payload.kind,
                    error=result.error,
                    attempts=result.attempts,
                )
            except Exception as e:
                logger.error(f"Dispatch failure alert raised: {e}", exc_info=True)
        return result

    async def deliver_turn(
        self, context: TenantContext, message: CanonicalInboundMessage, turn: TurnResult
    ) -> DeliverySummary:
        """Documents first, then images, then text.

        Text is dropped when a media item went out, unless the turn created an
        order: the confirmation is always sent.
        """
        summary = DeliverySummary()
        text = compose_text(turn)
        documents = [item for item in turn.media if item.kind == "document"]
        images = [item for item in turn.media if item.kind != "document"]

        sequence = 0
        tokens_pending = True
        for item in documents + images:
            sequence += 1
            result = await self._send_unit(context, message, _media_payload(item), sequence, turn, tokens_pending)
            if result.ok:
                tokens_pending = False
            summary.units.append(SentUnit(item.kind, result))

        media_delivered = summary.delivered > 0
        if text and (not media_delivered or turn.order_created):
            sequence += 1
            result = await self._send_unit(context, message, TextPayload(text), sequence, turn, tokens_pending)
            summary.units.append(SentUnit("text", result))
        elif text:
            summary.text_suppressed = True
            logger.debug(f"Reply text suppressed after media: {message.correlation_id}")

        logger.info(
            "Reply delivered",
            extra={
                "context": {
                    "correlation_id": message.correlation_id,
                    "business_id": str(context.business_id),
                    "delivered": summary.delivered,
                    "failed": summary.failed,
                    "text_suppressed": summary.text_suppressed,
                }
            },
        )
        return summary

    async def send_notice(
        self, context: TenantContext, message: CanonicalInboundMessage, text: str
    ) -> DeliveryResult:
        """Single system notice, e.g. the bot-unavailable message."""
        return await self._send_unit(context, message, TextPayload(text), 1, None, False)
