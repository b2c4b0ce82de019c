import uuid

from sqlalchemy import Boolean, Column, DateTime, Text, UniqueConstraint, Uuid

from orderdesk.database import Base


class ChatSession(Base):
    __tablename__ = "chat_sessions"
    __table_args__ = (UniqueConstraint("business_id", "customer_channel_id", name="uq_chat_sessions_conversation"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, nullable=False)
    customer_channel_id = Column(Text, nullable=False)
    platform = Column(Text)
    assigned_employee_id = Column(Text)
    locked = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
