import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, Text, Uuid

from orderdesk.database import Base


class MessageLog(Base):
    """Append-only transcript of inbound and outbound units."""

    __tablename__ = "message_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    dedup_key = Column(Text, nullable=False, unique=True)
    business_id = Column(Uuid, nullable=False, index=True)
    branch_id = Column(Uuid)
    customer_channel_id = Column(Text, nullable=False, index=True)
    direction = Column(Text, nullable=False)  # inbound, outbound
    channel = Column(Text, nullable=False)
    message_type = Column(Text, nullable=False)  # text, image, document, audio, location, ...
    text = Column(Text)
    media_url = Column(Text)
    provider_message_id = Column(Text)
    correlation_id = Column(Text, index=True)
    delivery_status = Column(Text)  # sent, failed (outbound only)
    error = Column(Text)
    llm_used = Column(Boolean, nullable=False, default=False)
    tokens_in = Column(Integer)
    tokens_out = Column(Integer)
    order_id = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)
