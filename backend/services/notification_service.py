"""
Notification dispatcher — status-change notifications after the fact.

Called by the HTTP layer (as a background task) after a successful manual
transition, and handed to the timeout scanner as its `notifier` by main.py.
The transition executor never calls this module.

Delivery channels (email, SMS, websocket) are not part of this service; the
dispatcher records the event in the log so a channel adapter can be plugged
in behind dispatch().
"""
import logging
from typing import Optional

from domain.enums import OrderStatus

logger = logging.getLogger(__name__)


async def dispatch(event: dict) -> None:
    """Hand one notification event to the delivery channel."""
    logger.info(
        f"Notification: order={event.get('orderId')} tenant={event.get('tenantId')} "
        f"{event.get('fromStatus')} -> {event.get('toStatus')} ({event.get('reason')})"
    )


async def notify_status_changed(
    tenant_id: int,
    order_id: int,
    from_status: Optional[OrderStatus],
    to_status: OrderStatus,
    reason: str,
    operator_type: str,
) -> None:
    """Notify about one transition. Failures are logged, never raised."""
    event = {
        "type": "order_status_changed",
        "tenantId": tenant_id,
        "orderId": order_id,
        "fromStatus": from_status.label if from_status is not None else None,
        "toStatus": OrderStatus.parse(to_status).label,
        "reason": reason,
        "operatorType": operator_type,
    }
    try:
        await dispatch(event)
    except Exception as e:
        logger.error(f"Failed to send status notification for order {order_id}: {e}")


async def notify_timeout_batch(tenant_id: int, to_status: OrderStatus, reason: str, result) -> None:
    """Notifier hook for the timeout scanner: one event per transitioned order."""
    for order_id in result.succeeded_ids:
        await notify_status_changed(
            tenant_id,
            order_id,
            None,
            to_status,
            reason,
            "system",
        )
