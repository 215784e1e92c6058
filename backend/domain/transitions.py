"""
Order status transition table.

This module is the only place that decides whether a status change is legal.
It is pure: no I/O, no clock, no logging.
"""
from __future__ import annotations

from domain.enums import OrderStatus
from domain.errors import TransitionError

# Key   : current status
# Value : statuses it may move to
# Completed and Cancelled are terminal. Self-transitions are never listed.
ORDER_ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Statuses the timeout scanner watches
TIMEOUT_WATCHED_STATUSES: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
)


def allowed_targets(status: OrderStatus) -> frozenset[OrderStatus]:
    """Return the statuses reachable from `status` in one step."""
    return ORDER_ALLOWED_TRANSITIONS[OrderStatus.parse(status)]


def is_terminal(status: OrderStatus) -> bool:
    """Return True if no transition leaves `status`."""
    return not allowed_targets(status)


def is_valid_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    """Return True if the transition from_status -> to_status is allowed."""
    return OrderStatus.parse(to_status) in allowed_targets(from_status)


def ensure_transition(from_status: OrderStatus, to_status: OrderStatus, order_id=None) -> None:
    """Raise TransitionError unless from_status -> to_status is allowed."""
    if not is_valid_transition(from_status, to_status):
        raise TransitionError(
            OrderStatus.parse(from_status), OrderStatus.parse(to_status), order_id=order_id
        )
