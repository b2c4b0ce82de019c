import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import relationship

from orderdesk.database import Base


class Order(Base):
    """An order; rows in status "cart" are live customer carts."""

    __tablename__ = "orders"
    __table_args__ = (Index("ix_orders_conversation_status", "business_id", "customer_channel_id", "status"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False)
    branch_id = Column(Uuid, ForeignKey("branches.id"))
    customer_channel_id = Column(Text, nullable=False)
    channel = Column(Text)
    status = Column(Text, nullable=False, default="cart")  # cart, pending, accepted, ..., completed, rejected
    line_items = Column(JSON, nullable=False, default=list)
    delivery_type = Column(Text)  # delivery, takeaway, dine_in
    delivery_address = Column(JSON)
    scheduled_for = Column(DateTime(timezone=True))
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    status_history = relationship("OrderStatusHistory", back_populates="order")


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(Text, nullable=False)
    changed_by = Column(Text, nullable=False)  # employee id, "system", "customer"
    changed_at = Column(DateTime(timezone=True), nullable=False)

    order = relationship("Order", back_populates="status_history")
