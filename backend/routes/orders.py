"""
Order status endpoints — manual and administrative status changes.

Endpoints:
    POST  /orders                              — Create an order (Pending)
    GET   /orders/{id}                         — Order with current status
    PUT   /orders/{id}/status                  — Apply one transition
    POST  /orders/batch-status                 — Apply one transition to many orders
    GET   /orders/{id}/status-history          — Status ledger, oldest first
    GET   /orders/{id}/status/validate         — Dry-run a transition

Notifications are scheduled here, after a transition has committed; the
status service itself never notifies.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from database import get_db, get_session_factory
from deps import get_operator_id, get_tenant_id
from domain.enums import OrderStatus
from domain.errors import NotFoundError, ValidationError
from models import (
    BatchUpdateOrderStatusRequest,
    BatchUpdateOrderStatusResponse,
    CreateOrderRequest,
    OrderResponse,
    OrderStatusHistoryResponse,
    UpdateOrderStatusRequest,
)
from services import history_service, notification_service, order_repository, order_status_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])


def _order_response(order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        tenantId=order.tenant_id,
        merchantId=order.merchant_id,
        customerId=order.customer_id,
        orderNumber=order.order_number,
        status=OrderStatus.parse(order.status).label,
        statusUpdatedAt=order.status_updated_at.isoformat() if order.status_updated_at else None,
        createdAt=order.created_at.isoformat() if order.created_at else None,
    )


# ── POST /orders ───────────────────────────────────────────────────
@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    request: CreateOrderRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    """Create an order. Every order starts in Pending."""
    order = await order_repository.create_order(
        db,
        tenant_id=tenant_id,
        merchant_id=request.merchant_id,
        customer_id=request.customer_id,
        order_number=request.order_number,
    )
    await db.commit()
    return _order_response(order)


# ── POST /orders/batch-status ──────────────────────────────────────
@router.post("/batch-status", response_model=BatchUpdateOrderStatusResponse)
async def batch_update_order_status(
    request: BatchUpdateOrderStatusRequest,
    background_tasks: BackgroundTasks,
    tenant_id: int = Depends(get_tenant_id),
    operator_id: int | None = Depends(get_operator_id),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Apply the same transition to every listed order.

    Each order is its own transaction: invalid items are reported in
    `failures` and do not block the others.
    """
    result = await order_status_service.apply_batch(
        session_factory,
        tenant_id=tenant_id,
        order_ids=request.order_ids,
        to_status=request.status,
        reason=request.reason,
        operator_type=request.operator_type,
        operator_id=operator_id,
        metadata=request.metadata,
        max_orders=settings.batch_max_orders,
    )

    for order_id in result.succeeded_ids:
        background_tasks.add_task(
            notification_service.notify_status_changed,
            tenant_id,
            order_id,
            None,
            request.status,
            request.reason,
            request.operator_type.value,
        )

    return result.to_dict()


# ── GET /orders/{id} ───────────────────────────────────────────────
@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    order = await order_repository.get_by_id(db, tenant_id, order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    return _order_response(order)


# ── PUT /orders/{id}/status ────────────────────────────────────────
@router.put("/{order_id}/status")
async def update_order_status(
    order_id: int,
    request: UpdateOrderStatusRequest,
    background_tasks: BackgroundTasks,
    tenant_id: int = Depends(get_tenant_id),
    operator_id: int | None = Depends(get_operator_id),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Apply one status transition. Illegal transitions return 409."""
    record = await order_status_service.apply_transition(
        session_factory,
        tenant_id=tenant_id,
        order_id=order_id,
        to_status=request.status,
        reason=request.reason,
        operator_type=request.operator_type,
        operator_id=operator_id,
        metadata=request.metadata,
    )

    background_tasks.add_task(
        notification_service.notify_status_changed,
        tenant_id,
        order_id,
        OrderStatus.parse(record.from_status),
        OrderStatus.parse(record.to_status),
        record.reason,
        record.operator_type,
    )

    return {
        "success": True,
        "orderId": order_id,
        "status": OrderStatus.parse(record.to_status).label,
        "history": history_service.serialize(record),
    }


# ── GET /orders/{id}/status-history ────────────────────────────────
@router.get("/{order_id}/status-history", response_model=list[OrderStatusHistoryResponse])
async def get_order_status_history(
    order_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    """Status history of an order, oldest first."""
    order = await order_repository.get_by_id(db, tenant_id, order_id)
    if order is None:
        raise NotFoundError("Order", order_id)

    history = await history_service.list_by_order_id(db, tenant_id, order_id)
    return [history_service.serialize(row) for row in history]


# ── GET /orders/{id}/status/validate ───────────────────────────────
@router.get("/{order_id}/status/validate")
async def validate_order_status_transition(
    order_id: int,
    to_status: str = Query(..., alias="toStatus", description="Target status (value or label)"),
    tenant_id: int = Depends(get_tenant_id),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Check whether the order could move to `toStatus` right now."""
    try:
        target = OrderStatus.parse(to_status)
    except ValueError as e:
        raise ValidationError(str(e), field="toStatus")

    return await order_status_service.validate_transition(
        session_factory,
        tenant_id=tenant_id,
        order_id=order_id,
        to_status=target,
    )
