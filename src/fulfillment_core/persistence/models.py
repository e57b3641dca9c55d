"""
Fulfillment Database Models

Tables:
- orders: one row per customer order, mutated only by intake and kitchen workers
- order_items: immutable line items owned by an order
- order_status_log: append-only audit trail, one row per status transition
- workers: kitchen worker registry (heartbeat, processed counter)

The schema itself is created by the Alembic revisions in
fulfillment_core/migrations; these models must stay in sync with them.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

from fulfillment_core.contracts.types import OrderStatus, WorkerStatus
from fulfillment_core.timing import utcnow

FulfillmentBase = declarative_base()


class Order(FulfillmentBase):
    """
    A customer order.

    Exactly one of table_number (dine_in) or delivery_address (delivery) is
    set; takeout orders carry neither.
    """

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    number = Column(String(32), nullable=False, unique=True)  # ORD_YYYYMMDD_NNN
    customer_name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False)
    table_number = Column(Integer, nullable=True)
    delivery_address = Column(Text, nullable=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    priority = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default=OrderStatus.RECEIVED.value)
    processed_by = Column(String(100), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")
    status_log = relationship("OrderStatusLog", back_populates="order", order_by="OrderStatusLog.id")

    __table_args__ = (
        CheckConstraint("type IN ('dine_in', 'takeout', 'delivery')", name="ck_orders_type"),
        Index("idx_orders_status", "status"),
    )


class OrderItem(FulfillmentBase):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(8, 2), nullable=False)

    order = relationship("Order", back_populates="items")


class OrderStatusLog(FulfillmentBase):
    """One row per status transition. Never updated or deleted."""

    __tablename__ = "order_status_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    status = Column(String(20), nullable=False)
    changed_by = Column(String(100), nullable=False)
    changed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    notes = Column(Text, nullable=True)

    order = relationship("Order", back_populates="status_log")

    __table_args__ = (
        Index("idx_order_status_log_order_changed", "order_id", "changed_at"),
    )


class Worker(FulfillmentBase):
    """
    A kitchen worker.

    The row is upserted on (re)registration; status is the persisted flag,
    liveness is derived from last_seen by readers.
    """

    __tablename__ = "workers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    name = Column(String(100), nullable=False, unique=True)
    type = Column(String(100), nullable=False, default="general")
    status = Column(String(10), nullable=False, default=WorkerStatus.ONLINE.value)
    last_seen = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    orders_processed = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("status IN ('online', 'offline')", name="ck_workers_status"),
    )
