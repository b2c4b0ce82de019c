import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Text, Uuid

from orderdesk.database import Base


class DiningTable(Base):
    __tablename__ = "dining_tables"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False)
    branch_id = Column(Uuid, ForeignKey("branches.id"))
    name = Column(Text, nullable=False)
    capacity = Column(Integer, nullable=False, default=2)
    is_active = Column(Boolean, default=True)


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (Index("ix_reservations_resource_window", "resource_id", "status", "start_at", "end_at"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False)
    resource_id = Column(Uuid, ForeignKey("dining_tables.id"), nullable=False)
    customer_channel_id = Column(Text)
    customer_name = Column(Text)
    party_size = Column(Integer)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(Text, nullable=False, default="confirmed")  # confirmed, cancelled, completed
    created_at = Column(DateTime(timezone=True), nullable=False)
