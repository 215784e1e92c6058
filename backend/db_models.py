"""
SQLAlchemy ORM models for the Order Lifecycle Service.

Tables:
    orders                — tenant-scoped orders and their current status
    order_status_history  — append-only ledger, one row per status transition
    order_timeout_configs — per-tenant default / per-merchant timeout policy

Every status column stores the integer value of OrderStatus; the
OrderStatusType decorator converts at the column boundary so Python code only
ever sees OrderStatus members.
"""
from datetime import datetime

from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, JSON,
    UniqueConstraint, Index,
)
from sqlalchemy.types import TypeDecorator

from database import Base
from domain.enums import OrderStatus, OperatorType, ProcessingTimeoutAction


class OrderStatusType(TypeDecorator):
    """Persist OrderStatus as its integer value."""
    impl = Integer
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return OrderStatus.parse(value).value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return OrderStatus(value)


class Order(Base):
    """Orders as seen by the lifecycle core (pricing/payment fields live elsewhere)."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, nullable=False, index=True)
    merchant_id = Column(BigInteger, nullable=False, index=True)
    customer_id = Column(BigInteger, nullable=False, index=True)
    order_number = Column(String(64), nullable=False)
    status = Column(OrderStatusType(), nullable=False, default=OrderStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    # Only written by the transition executor; drives idle detection
    status_updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_number"),
        # For the timeout scanner: status + idle time per tenant/merchant
        Index("ix_orders_scan", "tenant_id", "merchant_id", "status", "status_updated_at"),
    )


class OrderStatusHistory(Base):
    """
    Append-only status ledger.

    For one order, rows ordered by (created_at, id) form an unbroken chain:
    each from_status equals the previous to_status. Rows are only inserted by
    the transition executor, in the same transaction as the status update.
    """
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, nullable=False, index=True)
    order_id = Column(Integer, nullable=False, index=True)
    from_status = Column(OrderStatusType(), nullable=False)
    to_status = Column(OrderStatusType(), nullable=False, index=True)
    reason = Column(String(255), nullable=False)
    operator_type = Column(String(20), nullable=False, default=OperatorType.SYSTEM.value)
    operator_id = Column(BigInteger, nullable=True)  # NULL for system-initiated
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("ix_status_history_order_created", "order_id", "created_at"),
        Index("ix_status_history_operator", "operator_id", "operator_type"),
    )


class OrderTimeoutConfig(Base):
    """Timeout policy: merchant_id NULL is the tenant default."""
    __tablename__ = "order_timeout_configs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, nullable=False, index=True)
    merchant_id = Column(BigInteger, nullable=True, index=True)
    payment_timeout_minutes = Column(Integer, nullable=False, default=30)
    processing_timeout_hours = Column(Integer, nullable=False, default=24)
    processing_timeout_action = Column(
        String(20), nullable=False, default=ProcessingTimeoutAction.CANCEL.value
    )
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        # NULL merchant_id is not covered here; the service enforces one default per tenant
        UniqueConstraint("tenant_id", "merchant_id", name="uq_timeout_config_tenant_merchant"),
    )
