"""
Order store — tenant-scoped reads and the conditional status write.

The lifecycle core only touches orders through these functions:
    get_by_id         — read one order (None when absent or other tenant)
    update_status_if  — "set status=X where status=Y", the optimistic write
    list_idle         — orders in a status for longer than a cutoff
Everything here runs inside the caller's session; committing is the caller's job.
"""
import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from domain.enums import OrderStatus

logger = logging.getLogger(__name__)


async def create_order(
    db: AsyncSession,
    tenant_id: int,
    merchant_id: int,
    customer_id: int,
    order_number: Optional[str] = None,
    created_at: Optional[datetime] = None,
):
    """
    Insert a new order in Pending status.

    The order's initial status (Pending) is the anchor of its history chain.
    """
    from db_models import Order

    now = created_at or datetime.utcnow()
    order = Order(
        tenant_id=tenant_id,
        merchant_id=merchant_id,
        customer_id=customer_id,
        order_number=order_number or f"ORD-{uuid.uuid4().hex[:16].upper()}",
        status=OrderStatus.PENDING,
        created_at=now,
        updated_at=now,
        status_updated_at=now,
    )
    db.add(order)
    await db.flush()
    logger.info(f"Order created: id={order.id} tenant={tenant_id} merchant={merchant_id}")
    return order


async def get_by_id(db: AsyncSession, tenant_id: int, order_id: int):
    """Get an order by id within a tenant. Returns None if not visible."""
    from db_models import Order

    result = await db.execute(
        select(Order).where(Order.id == order_id, Order.tenant_id == tenant_id)
    )
    return result.scalar_one_or_none()


async def get_status(db: AsyncSession, tenant_id: int, order_id: int) -> Optional[OrderStatus]:
    """Read only the current status column (no ORM identity map involved)."""
    from db_models import Order

    result = await db.execute(
        select(Order.status).where(Order.id == order_id, Order.tenant_id == tenant_id)
    )
    return result.scalar_one_or_none()


async def update_status_if(
    db: AsyncSession,
    tenant_id: int,
    order_id: int,
    expected_status: OrderStatus,
    new_status: OrderStatus,
    now: datetime,
) -> bool:
    """
    Conditionally move an order from expected_status to new_status.

    Returns False when no row matched, i.e. the order's status is no longer
    expected_status (a concurrent writer got there first).
    """
    from db_models import Order

    result = await db.execute(
        update(Order)
        .where(
            Order.id == order_id,
            Order.tenant_id == tenant_id,
            Order.status == expected_status,
        )
        .values(status=new_status, status_updated_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def list_idle(
    db: AsyncSession,
    tenant_id: int,
    status: OrderStatus,
    older_than: datetime,
    merchant_id: Optional[int] = None,
    limit: int = 100,
) -> list:
    """
    Orders in `status` whose status_updated_at <= older_than, oldest first.

    `<=` makes an order eligible exactly when its idle time reaches the timeout.
    """
    from db_models import Order

    query = select(Order).where(
        Order.tenant_id == tenant_id,
        Order.status == status,
        Order.status_updated_at <= older_than,
    )
    if merchant_id is not None:
        query = query.where(Order.merchant_id == merchant_id)
    query = query.order_by(Order.status_updated_at.asc(), Order.id.asc()).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def list_scan_scopes(
    db: AsyncSession,
    statuses,
    tenant_id: Optional[int] = None,
) -> list[tuple[int, int]]:
    """Distinct (tenant_id, merchant_id) pairs holding orders in `statuses`."""
    from db_models import Order

    query = select(Order.tenant_id, Order.merchant_id).where(Order.status.in_(list(statuses)))
    if tenant_id is not None:
        query = query.where(Order.tenant_id == tenant_id)
    result = await db.execute(
        query.distinct().order_by(Order.tenant_id, Order.merchant_id)
    )
    return [(row.tenant_id, row.merchant_id) for row in result.all()]


async def count_by_status(
    db: AsyncSession,
    tenant_id: int,
    merchant_id: Optional[int] = None,
) -> dict:
    """Order counts per status label for a tenant (optionally one merchant)."""
    from db_models import Order

    query = select(Order.status, func.count(Order.id)).where(Order.tenant_id == tenant_id)
    if merchant_id is not None:
        query = query.where(Order.merchant_id == merchant_id)
    query = query.group_by(Order.status)

    result = await db.execute(query)
    counts = {status.label: 0 for status in OrderStatus}
    for status, count in result.all():
        counts[OrderStatus.parse(status).label] = count
    return counts


async def count_idle(
    db: AsyncSession,
    tenant_id: int,
    status: OrderStatus,
    older_than: datetime,
    merchant_id: Optional[int] = None,
) -> int:
    """Count orders list_idle() would return, without the limit."""
    from db_models import Order

    query = select(func.count(Order.id)).where(
        Order.tenant_id == tenant_id,
        Order.status == status,
        Order.status_updated_at <= older_than,
    )
    if merchant_id is not None:
        query = query.where(Order.merchant_id == merchant_id)
    result = await db.execute(query)
    return result.scalar_one()
