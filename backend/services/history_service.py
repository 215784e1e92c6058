"""
Order Status History — the append-only transition ledger.

Rows are only ever inserted (append), never updated or deleted. Chain
continuity (each from_status equals the previous to_status) holds because the
only writer is the transition executor, which appends in the same transaction
as its conditional status update: a writer whose expected status is stale
fails its update and never reaches append().
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from domain.enums import OrderStatus, OperatorType

logger = logging.getLogger(__name__)


async def append(
    db: AsyncSession,
    *,
    tenant_id: int,
    order_id: int,
    from_status: OrderStatus,
    to_status: OrderStatus,
    reason: str,
    operator_type: OperatorType,
    operator_id: Optional[int] = None,
    metadata: Optional[dict] = None,
    created_at: Optional[datetime] = None,
):
    """
    Append one history row inside the caller's transaction.

    Flushes so that a constraint failure surfaces here, before the caller
    commits the paired status update.
    """
    from db_models import OrderStatusHistory

    record = OrderStatusHistory(
        tenant_id=tenant_id,
        order_id=order_id,
        from_status=from_status,
        to_status=to_status,
        reason=reason,
        operator_type=OperatorType(operator_type).value,
        operator_id=operator_id,
        metadata_=metadata or None,
        created_at=created_at or datetime.utcnow(),
    )
    db.add(record)
    await db.flush()
    return record


async def list_by_order_id(db: AsyncSession, tenant_id: int, order_id: int) -> list:
    """All history rows of an order, oldest first."""
    from db_models import OrderStatusHistory

    result = await db.execute(
        select(OrderStatusHistory)
        .where(
            OrderStatusHistory.tenant_id == tenant_id,
            OrderStatusHistory.order_id == order_id,
        )
        .order_by(OrderStatusHistory.created_at.asc(), OrderStatusHistory.id.asc())
    )
    return list(result.scalars().all())


async def count_transitions(
    db: AsyncSession,
    tenant_id: int,
    to_status: OrderStatus,
    *,
    operator_type: Optional[OperatorType] = None,
    since: Optional[datetime] = None,
    merchant_id: Optional[int] = None,
) -> int:
    """Count history rows landing in `to_status`, optionally filtered."""
    from db_models import Order, OrderStatusHistory

    query = select(func.count(OrderStatusHistory.id)).where(
        OrderStatusHistory.tenant_id == tenant_id,
        OrderStatusHistory.to_status == to_status,
    )
    if operator_type is not None:
        query = query.where(OrderStatusHistory.operator_type == OperatorType(operator_type).value)
    if since is not None:
        query = query.where(OrderStatusHistory.created_at >= since)
    if merchant_id is not None:
        query = query.join(Order, Order.id == OrderStatusHistory.order_id).where(
            Order.merchant_id == merchant_id
        )

    result = await db.execute(query)
    return result.scalar_one()


def find_chain_breaks(history: list, initial_status: OrderStatus = OrderStatus.PENDING) -> list[int]:
    """
    Return the indexes of rows whose from_status does not continue the chain.

    `history` must be ordered oldest first, as list_by_order_id() returns it.
    An empty result means the chain is intact.
    """
    breaks = []
    expected = OrderStatus.parse(initial_status)
    for index, row in enumerate(history):
        if OrderStatus.parse(row.from_status) != expected:
            breaks.append(index)
        expected = OrderStatus.parse(row.to_status)
    return breaks


def serialize(record) -> dict:
    """History row → API dict (labels, not integers)."""
    return {
        "id": record.id,
        "orderId": record.order_id,
        "fromStatus": OrderStatus.parse(record.from_status).label,
        "toStatus": OrderStatus.parse(record.to_status).label,
        "reason": record.reason,
        "operatorType": record.operator_type,
        "operatorId": record.operator_id,
        "metadata": record.metadata_ or {},
        "createdAt": record.created_at.isoformat() if record.created_at else None,
    }
