import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Text, UniqueConstraint, Uuid

from orderdesk.database import Base


class BotIntegration(Base):
    """Unified channel registry: one row per (platform, external_id)."""

    __tablename__ = "bot_integrations"
    __table_args__ = (UniqueConstraint("platform", "external_id", name="uq_bot_integrations_platform_external"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_type = Column(Text, nullable=False)  # business, branch
    owner_id = Column(Uuid, nullable=False, index=True)
    platform = Column(Text, nullable=False)  # whatsapp, telegram, facebook
    # phone_number_id (Meta), sender number (Twilio), bot key (Telegram), page id (Messenger)
    external_id = Column(Text, nullable=False)
    provider = Column(Text)  # meta, twilio (WhatsApp only)
    access_token_encrypted = Column(Text)
    config = Column(JSON, nullable=False, default=dict)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))
