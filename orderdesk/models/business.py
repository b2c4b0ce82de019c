import uuid

from sqlalchemy import Boolean, Column, DateTime, Text, Uuid
from sqlalchemy.orm import relationship

from orderdesk.database import Base


class Business(Base):
    __tablename__ = "businesses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    contract_status = Column(Text, nullable=False, default="pending")  # pending, approved, rejected, suspended
    chatbot_enabled = Column(Boolean, nullable=False, default=False)
    # Legacy direct channel configuration, superseded by bot_integrations
    whatsapp_phone_number_id = Column(Text, index=True)
    whatsapp_access_token_encrypted = Column(Text)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))

    branches = relationship("Branch", back_populates="business")
