import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from orderdesk.database import Base


class Branch(Base):
    __tablename__ = "branches"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    chatbot_enabled = Column(Boolean, nullable=False, default=False)
    whatsapp_phone_number_id = Column(Text, index=True)
    whatsapp_access_token_encrypted = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))

    business = relationship("Business", back_populates="branches")
