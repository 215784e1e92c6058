"""
Order Status Service — the transition executor and the batch coordinator.

apply_transition():
    One order, one session, one transaction:
    read (tenant-scoped) → check transition table → conditional UPDATE
    (status still equals what was read) → append history row → commit.
    Any failure rolls back both writes, so order and history never diverge.
    A concurrent writer that changed the status first makes the conditional
    UPDATE match zero rows; the loser gets a TransitionError.

apply_batch():
    Runs apply_transition() per id, each in its own transaction. One item's
    failure is recorded and the rest continue; nothing is rolled back across
    items.

Neither function sends notifications; callers do that after success.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from domain.constants import (
    FAILURE_NOT_FOUND,
    FAILURE_PERSISTENCE,
    FAILURE_TRANSITION,
)
from domain.enums import OrderStatus, OperatorType
from domain.errors import NotFoundError, PersistenceError, TransitionError, ValidationError
from domain.transitions import ensure_transition, is_valid_transition
from services import history_service, order_repository

logger = logging.getLogger(__name__)


@dataclass
class BatchFailure:
    """One order that did not transition, and why."""
    order_id: int
    from_status: Optional[OrderStatus]
    to_status: OrderStatus
    message: str
    code: str

    def to_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "fromStatus": self.from_status.label if self.from_status is not None else None,
            "toStatus": self.to_status.label,
            "message": self.message,
            "code": self.code,
        }


@dataclass
class BatchResult:
    """Per-item outcome of a batch; success_count + len(failures) == items."""
    success_count: int = 0
    failures: list = field(default_factory=list)
    succeeded_ids: list = field(default_factory=list)

    @property
    def fail_count(self) -> int:
        return len(self.failures)

    def merge(self, other: "BatchResult") -> None:
        self.success_count += other.success_count
        self.failures.extend(other.failures)
        self.succeeded_ids.extend(other.succeeded_ids)

    def to_dict(self) -> dict:
        return {
            "successCount": self.success_count,
            "failCount": self.fail_count,
            "failures": [f.to_dict() for f in self.failures],
            "succeededIds": list(self.succeeded_ids),
        }


def parse_target_status(to_status) -> OrderStatus:
    """Target status from a member, value or label; ValidationError otherwise."""
    try:
        return OrderStatus.parse(to_status)
    except ValueError as e:
        raise ValidationError(str(e), field="to_status")


def validate_operator(operator_type, operator_id: Optional[int]) -> OperatorType:
    """Non-system operators must identify themselves."""
    try:
        operator = OperatorType(operator_type)
    except ValueError:
        raise ValidationError(f"invalid operator type: {operator_type}", field="operator_type")
    if operator != OperatorType.SYSTEM and operator_id is None:
        raise ValidationError("operator_id is required for non-system operators", field="operator_id")
    return operator


# ════════════════════════════════════════════════════════════════════
# Transition Executor
# ════════════════════════════════════════════════════════════════════


async def apply_transition(
    session_factory: async_sessionmaker,
    *,
    tenant_id: int,
    order_id: int,
    to_status,
    reason: str,
    operator_type,
    operator_id: Optional[int] = None,
    metadata: Optional[dict] = None,
    now: Optional[datetime] = None,
):
    """
    Apply one status change to one order atomically.

    Args:
        session_factory: Factory for the short-lived session of this unit
        tenant_id: Tenant scope; orders of other tenants are NotFound
        order_id: Order to move
        to_status: Target status (OrderStatus, int value or label)
        reason: Free-text reason stored in history
        operator_type: customer | merchant | system | admin
        operator_id: Required unless operator_type is system
        metadata: Opaque payload stored in history
        now: Transition time (defaults to the current UTC time)

    Returns:
        The appended OrderStatusHistory row

    Raises:
        ValidationError, NotFoundError, TransitionError, PersistenceError
    """
    target = parse_target_status(to_status)
    operator = validate_operator(operator_type, operator_id)

    async with session_factory() as db:
        try:
            order = await order_repository.get_by_id(db, tenant_id, order_id)
            if order is None:
                raise NotFoundError("Order", order_id)

            current = OrderStatus.parse(order.status)
            ensure_transition(current, target, order_id=order_id)

            # status_updated_at never moves backwards
            changed_at = now or datetime.utcnow()
            if order.status_updated_at and order.status_updated_at > changed_at:
                changed_at = order.status_updated_at

            updated = await order_repository.update_status_if(
                db, tenant_id, order_id, current, target, changed_at
            )
            if not updated:
                raise TransitionError(
                    current,
                    target,
                    order_id=order_id,
                    message=(
                        f"Transition not allowed: order {order_id} is no longer "
                        f"{current.label} (changed concurrently)"
                    ),
                )

            record = await history_service.append(
                db,
                tenant_id=tenant_id,
                order_id=order_id,
                from_status=current,
                to_status=target,
                reason=reason,
                operator_type=operator,
                operator_id=operator_id,
                metadata=metadata,
                created_at=changed_at,
            )
            await db.commit()

        except (NotFoundError, TransitionError):
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Status update failed for order {order_id}: {e}")
            raise PersistenceError(
                f"Failed to update status of order {order_id}",
                details={"order_id": order_id},
            )
        except Exception:
            await db.rollback()
            raise

    logger.info(
        f"Order status updated: order={order_id} tenant={tenant_id} "
        f"{current.label} -> {target.label} operator={operator.value}"
    )
    return record


async def validate_transition(
    session_factory: async_sessionmaker,
    *,
    tenant_id: int,
    order_id: int,
    to_status,
) -> dict:
    """
    Dry run: would the order accept `to_status` right now?

    Raises NotFoundError for unknown orders; never writes.
    """
    target = parse_target_status(to_status)
    async with session_factory() as db:
        current = await order_repository.get_status(db, tenant_id, order_id)
    if current is None:
        raise NotFoundError("Order", order_id)

    current = OrderStatus.parse(current)
    return {
        "orderId": order_id,
        "fromStatus": current.label,
        "toStatus": target.label,
        "valid": is_valid_transition(current, target),
    }


# ════════════════════════════════════════════════════════════════════
# Batch Coordinator
# ════════════════════════════════════════════════════════════════════


async def _current_status(session_factory, tenant_id: int, order_id: int) -> Optional[OrderStatus]:
    """Best-effort status read for failure reports."""
    try:
        async with session_factory() as db:
            status = await order_repository.get_status(db, tenant_id, order_id)
        return OrderStatus.parse(status) if status is not None else None
    except SQLAlchemyError:
        return None


async def apply_batch(
    session_factory: async_sessionmaker,
    *,
    tenant_id: int,
    order_ids: list,
    to_status,
    reason: str,
    operator_type,
    operator_id: Optional[int] = None,
    metadata: Optional[dict] = None,
    max_orders: Optional[int] = None,
) -> BatchResult:
    """
    Apply the same transition to many orders, one transaction per order.

    Request-level problems (empty list, too many ids, bad operator) raise
    ValidationError before any order is touched. After that, per-order errors
    land in `failures` in input order and never stop the loop.
    """
    from config import settings

    target = parse_target_status(to_status)
    validate_operator(operator_type, operator_id)
    if max_orders is None:
        max_orders = settings.batch_max_orders
    if not order_ids:
        raise ValidationError("order id list must not be empty", field="order_ids")
    if len(order_ids) > max_orders:
        raise ValidationError(f"at most {max_orders} orders per batch", field="order_ids")

    result = BatchResult()
    for order_id in order_ids:
        try:
            await apply_transition(
                session_factory,
                tenant_id=tenant_id,
                order_id=order_id,
                to_status=target,
                reason=reason,
                operator_type=operator_type,
                operator_id=operator_id,
                metadata=metadata,
            )
            result.success_count += 1
            result.succeeded_ids.append(order_id)
        except TransitionError as e:
            # Report the status the order actually has now
            current = await _current_status(session_factory, tenant_id, order_id)
            result.failures.append(
                BatchFailure(order_id, current or e.from_status, target, e.message, FAILURE_TRANSITION)
            )
        except NotFoundError as e:
            result.failures.append(BatchFailure(order_id, None, target, e.message, FAILURE_NOT_FOUND))
        except PersistenceError as e:
            current = await _current_status(session_factory, tenant_id, order_id)
            result.failures.append(BatchFailure(order_id, current, target, e.message, FAILURE_PERSISTENCE))

    logger.info(
        f"Batch status update finished: tenant={tenant_id} -> {target.label} "
        f"success={result.success_count} fail={result.fail_count}"
    )
    return result
