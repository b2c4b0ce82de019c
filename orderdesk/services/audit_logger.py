"""Append-only transcript of inbound and outbound message units.

Recording never raises: the customer-facing turn must not fail or retry
because the transcript could not be written.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Union
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orderdesk.database import SessionLocal
from orderdesk.logging_config import get_logger
from orderdesk.models import MessageLog

logger = get_logger("audit_logger")


class AuditOutcome(str, Enum):
    RECORDED = "recorded"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass(frozen=True)
class InboundLogged:
    business_id: UUID
    branch_id: Optional[UUID]
    customer_channel_id: str
    channel: str
    message_type: str
    text: str
    provider_message_id: str
    correlation_id: str
    media_url: Optional[str] = None
    timestamp: Optional[datetime] = None

    @property
    def dedup_key(self) -> str:
        return f"in:{self.correlation_id}"


@dataclass(frozen=True)
class OutboundLogged:
    business_id: UUID
    branch_id: Optional[UUID]
    customer_channel_id: str
    channel: str
    message_type: str
    text: Optional[str]
    correlation_id: str
    sequence: int
    delivery_status: str  # sent, failed
    media_url: Optional[str] = None
    provider_message_id: Optional[str] = None
    error: Optional[str] = None
    llm_used: bool = False
    tokens_in: Optional[int] = None
    tokens_out: Optional[int] = None
    order_id: Optional[str] = None
    timestamp: Optional[datetime] = None

    @property
    def dedup_key(self) -> str:
        return f"out:{self.correlation_id}:{self.sequence}:{self.message_type}"


AuditEvent = Union[InboundLogged, OutboundLogged]


def _to_row(event: AuditEvent) -> MessageLog:
    timestamp = event.timestamp or datetime.now(timezone.utc)
    common = dict(
        dedup_key=event.dedup_key,
        business_id=event.business_id,
        branch_id=event.branch_id,
        customer_channel_id=event.customer_channel_id,
        channel=event.channel,
        message_type=event.message_type,
        text=event.text,
        media_url=event.media_url,
        provider_message_id=event.provider_message_id,
        correlation_id=event.correlation_id,
        created_at=timestamp,
    )
    if isinstance(event, InboundLogged):
        return MessageLog(direction="inbound", **common)
    return MessageLog(
        direction="outbound",
        delivery_status=event.delivery_status,
        error=event.error,
        llm_used=event.llm_used,
        tokens_in=event.tokens_in,
        tokens_out=event.tokens_out,
        order_id=event.order_id,
        **common,
    )


class AuditLogger:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def record(self, event: AuditEvent) -> AuditOutcome:
        db = None
        try:
            db = self._session_factory()
            db.add(_to_row(event))
            db.commit()
            return AuditOutcome.RECORDED
        except IntegrityError:
            if db is not None:
                db.rollback()
            logger.info(f"Audit record already exists: {event.dedup_key}")
            return AuditOutcome.DUPLICATE
        except Exception as e:
            if db is not None:
                try:
                    db.rollback()
                except Exception:
                    logger.debug("Audit rollback failed", exc_info=True)
            logger.warning(
                f"Failed to write audit record: {e}",
                extra={"context": {"dedup_key": event.dedup_key, "business_id": str(event.business_id)}},
            )
            return AuditOutcome.FAILED
        finally:
            if db is not None:
                db.close()
