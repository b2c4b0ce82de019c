"""Inbound message pipeline.

resolve tenant -> audit inbound -> gates (throttled notice when blocked) ->
under the conversation lock: handover check, cart, engine, cart commit ->
release lock -> dispatch reply units.
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Optional

from sqlalchemy.orm import Session

from orderdesk.config import settings
from orderdesk.logging_config import get_logger
from orderdesk.schemas.inbound import CanonicalInboundMessage
from orderdesk.services.audit_logger import AuditLogger, AuditOutcome, InboundLogged
from orderdesk.services.conversation_engine import ConversationEngine, NullConversationEngine, load_engine
from orderdesk.services.conversation_store import CartConflictError, ConversationKey, ConversationStateStore
from orderdesk.services.dispatch.delivery import DeliverySummary, ReplyDelivery
from orderdesk.services.dispatch.dispatcher import Dispatcher
from orderdesk.services.gate_chain import BlockingReason, GateChain
from orderdesk.services.notification_throttle import NotificationThrottle
from orderdesk.services.tenant_resolver import TenantContext, TenantResolver

logger = get_logger("pipeline")


class TurnStatus(str, Enum):
    TENANT_NOT_FOUND = "tenant_not_found"
    DUPLICATE = "duplicate"
    BLOCKED = "blocked"
    HANDED_OVER = "handed_over"
    CONFLICT = "conflict"
    NO_REPLY = "no_reply"
    REPLIED = "replied"
    FAILED = "failed"


@dataclass
class TurnOutcome:
    status: TurnStatus
    correlation_id: str
    blocking_reason: BlockingReason = BlockingReason.NONE
    notice_sent: bool = False
    delivery: Optional[DeliverySummary] = None
    error: Optional[str] = None


class InboundPipeline:
    def __init__(
        self,
        resolver: Optional[TenantResolver] = None,
        gates: Optional[GateChain] = None,
        throttle: Optional[NotificationThrottle] = None,
        store: Optional[ConversationStateStore] = None,
        engine: Optional[ConversationEngine] = None,
        audit: Optional[AuditLogger] = None,
        delivery: Optional[ReplyDelivery] = None,
        unavailable_text: Optional[str] = None,
    ):
        self.resolver = resolver or TenantResolver()
        self.gates = gates or GateChain()
        self.throttle = throttle or NotificationThrottle()
        self.store = store or ConversationStateStore()
        self.engine = engine or NullConversationEngine()
        self.audit = audit or AuditLogger()
        self.delivery = delivery or ReplyDelivery(Dispatcher(), self.audit)
        self.unavailable_text = unavailable_text or settings.unavailable_notice_text

    async def process(self, db: Session, message: CanonicalInboundMessage) -> TurnOutcome:
        """Run one inbound message to completion. Never raises."""
        try:
            return await self._process(db, message)
        except Exception as e:
            db.rollback()
            logger.error(
                f"Pipeline error: {e}",
                exc_info=True,
                extra={"context": {"correlation_id": message.correlation_id}},
            )
            return TurnOutcome(TurnStatus.FAILED, message.correlation_id, error=str(e))

    async def _process(self, db: Session, message: CanonicalInboundMessage) -> TurnOutcome:
        correlation_id = message.correlation_id

        resolved = self.resolver.resolve(db, message.channel.platform, message.business_channel_id)
        if not resolved.ok:
            logger.warning(
                "No tenant for inbound message, dropping",
                extra={
                    "context": {
                        "channel": message.channel.value,
                        "business_channel_id": message.business_channel_id,
                        "correlation_id": correlation_id,
                    }
                },
            )
            return TurnOutcome(TurnStatus.TENANT_NOT_FOUND, correlation_id)

        context = resolved.value
        key = ConversationKey(context.business_id, message.sender_channel_id)

        if self._record_inbound(context, message) == AuditOutcome.DUPLICATE:
            logger.info(f"Duplicate delivery ignored: {correlation_id}")
            return TurnOutcome(TurnStatus.DUPLICATE, correlation_id)

        decision = self.gates.evaluate(context)
        if not decision.allowed:
            return await self._handle_blocked(context, key, message, decision.blocking_reason)
        if self.throttle.clear(key):
            logger.info(f"Chatbot available again, notice mark cleared: business={context.business_id}")

        async with self.store.lock(key):
            session = self.store.get_session(db, key)
            if session.handed_over:
                logger.info(
                    "Conversation handed over, automated reply suppressed",
                    extra={
                        "context": {
                            "correlation_id": correlation_id,
                            "assigned_employee_id": session.assigned_employee_id,
                        }
                    },
                )
                return TurnOutcome(TurnStatus.HANDED_OVER, correlation_id)

            cart = self.store.get_or_create_cart(
                db, key, branch_id=context.branch.id if context.branch else None, channel=message.channel.value
            )
            turn = await self.engine.handle_turn(context, key, message, cart.copy())

            try:
                if turn.cart_mutations:
                    cart = self.store.apply_mutations(db, cart, turn.cart_mutations)
                if turn.order_created and not cart.is_new and not self.store.checkout(db, cart):
                    raise CartConflictError(cart.id)
            except CartConflictError as e:
                logger.warning(
                    "Cart changed during turn, reply suppressed",
                    extra={"context": {"correlation_id": correlation_id, "cart_id": str(e.cart_id)}},
                )
                return TurnOutcome(TurnStatus.CONFLICT, correlation_id, error=str(e))

        if not turn.has_output:
            return TurnOutcome(TurnStatus.NO_REPLY, correlation_id)

        summary = await self.delivery.deliver_turn(context, message, turn)
        return TurnOutcome(TurnStatus.REPLIED, correlation_id, delivery=summary)

    def _record_inbound(self, context: TenantContext, message: CanonicalInboundMessage) -> AuditOutcome:
        body = message.body
        return self.audit.record(
            InboundLogged(
                business_id=context.business_id,
                branch_id=context.branch.id if context.branch else None,
                customer_channel_id=message.sender_channel_id,
                channel=message.channel.value,
                message_type=body.message_type,
                text=body.text,
                media_url=body.media_url or body.media_id,
                provider_message_id=message.provider_message_id,
                correlation_id=message.correlation_id,
                timestamp=message.received_at,
            )
        )

    async def _handle_blocked(
        self,
        context: TenantContext,
        key: ConversationKey,
        message: CanonicalInboundMessage,
        reason: BlockingReason,
    ) -> TurnOutcome:
        logger.info(
            "Automated reply blocked",
            extra={
                "context": {
                    "business_id": str(context.business_id),
                    "reason": reason.value,
                    "correlation_id": message.correlation_id,
                }
            },
        )
        notice_sent = False
        if self.throttle.try_mark(key):
            result = await self.delivery.send_notice(context, message, self.unavailable_text)
            notice_sent = result.ok
        return TurnOutcome(
            TurnStatus.BLOCKED, message.correlation_id, blocking_reason=reason, notice_sent=notice_sent
        )


@lru_cache
def get_pipeline() -> InboundPipeline:
    """Process-wide pipeline: one throttle map and one set of conversation locks."""
    return InboundPipeline(engine=load_engine(settings.conversation_engine))
