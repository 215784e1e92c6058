"""
Order Timeout Service — finds idle orders and resolves them automatically.

TimeoutScanner is both the scanner and its lifecycle controller:
    scan()       — which orders are idle past their merchant's policy
    run_once()   — scan, then drive the batch coordinator; returns BatchResult
    start()      — spawn the periodic asyncio task (no-op if running)
    stop()       — signal the task and wait for it (idempotent)
    statistics() — scanner counters plus per-tenant order figures

Eligibility per (tenant, merchant), using the resolved timeout policy:
    Pending    idle >= payment_timeout    → Cancelled ("payment timeout")
    Processing idle >= processing_timeout → per policy action:
        cancel   → Cancelled ("processing timeout")
        complete → Completed ("processing timeout auto-complete")
        notify   → no transition, escalation logged

Transitions always go through order_status_service.apply_batch(), so the
transition table and history ledger apply to automatic changes too. Once an
order leaves Pending/Processing it no longer matches the query, so overlapping
or repeated passes never act on the same order twice.

The scanner object is built and owned by the application (see main.py); there
is no module-level scanner state.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from domain.constants import (
    REASON_PAYMENT_TIMEOUT,
    REASON_PROCESSING_TIMEOUT,
    REASON_PROCESSING_AUTO_COMPLETE,
    TIMEOUT_TYPE_PAYMENT,
    TIMEOUT_TYPE_PROCESSING,
)
from domain.enums import OrderStatus, OperatorType, ProcessingTimeoutAction
from domain.errors import ConfigResolutionError, DomainError
from domain.transitions import TIMEOUT_WATCHED_STATUSES
from services import history_service, order_repository, order_status_service
from services.order_status_service import BatchResult
from services.timeout_config_service import EffectiveTimeoutConfig, resolve_timeout_config

logger = logging.getLogger(__name__)

Notifier = Callable[[int, OrderStatus, str, BatchResult], Awaitable[None]]


@dataclass(frozen=True)
class TimeoutCandidate:
    """An idle order and what the scanner intends to do with it."""
    tenant_id: int
    merchant_id: int
    order_id: int
    status: OrderStatus
    target_status: Optional[OrderStatus]  # None: escalate only
    reason: str
    idle_for: timedelta
    metadata: dict = field(default_factory=dict)

    @property
    def escalate_only(self) -> bool:
        return self.target_status is None


def _payment_candidate(order, policy: EffectiveTimeoutConfig, now: datetime) -> TimeoutCandidate:
    return TimeoutCandidate(
        tenant_id=order.tenant_id,
        merchant_id=order.merchant_id,
        order_id=order.id,
        status=OrderStatus.PENDING,
        target_status=OrderStatus.CANCELLED,
        reason=REASON_PAYMENT_TIMEOUT,
        idle_for=now - order.status_updated_at,
        metadata={
            "timeout_type": TIMEOUT_TYPE_PAYMENT,
            "timeout_minutes": policy.payment_timeout_minutes,
            "policy_source": policy.source,
        },
    )


def _processing_candidate(order, policy: EffectiveTimeoutConfig, now: datetime) -> TimeoutCandidate:
    action = policy.processing_timeout_action
    if action == ProcessingTimeoutAction.COMPLETE:
        target, reason = OrderStatus.COMPLETED, REASON_PROCESSING_AUTO_COMPLETE
    elif action == ProcessingTimeoutAction.NOTIFY:
        target, reason = None, REASON_PROCESSING_TIMEOUT
    else:
        target, reason = OrderStatus.CANCELLED, REASON_PROCESSING_TIMEOUT

    return TimeoutCandidate(
        tenant_id=order.tenant_id,
        merchant_id=order.merchant_id,
        order_id=order.id,
        status=OrderStatus.PROCESSING,
        target_status=target,
        reason=reason,
        idle_for=now - order.status_updated_at,
        metadata={
            "timeout_type": TIMEOUT_TYPE_PROCESSING,
            "timeout_hours": policy.processing_timeout_hours,
            "action": action.value,
            "policy_source": policy.source,
        },
    )


class TimeoutScanner:
    """Periodic idle-order scanner with an explicit start/stop lifecycle."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        *,
        interval_seconds: int = 60,
        batch_limit: int = 100,
        notifier: Optional[Notifier] = None,
    ):
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.batch_limit = batch_limit
        self._notifier = notifier

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

        self._runs = 0
        self._scanned = 0
        self._transitioned = 0
        self._failed = 0
        self._escalated = 0
        self._skipped_scopes = 0
        self._errors_count = 0
        self._last_run_at: Optional[datetime] = None
        self._last_error: Optional[str] = None

    # ── Scan ────────────────────────────────────────────────────────

    async def _scan_scope(
        self, db: AsyncSession, tenant_id: int, merchant_id: int, now: datetime
    ) -> list[TimeoutCandidate]:
        policy = await resolve_timeout_config(db, tenant_id, merchant_id)

        pending = await order_repository.list_idle(
            db,
            tenant_id,
            OrderStatus.PENDING,
            older_than=now - policy.payment_timeout,
            merchant_id=merchant_id,
            limit=self.batch_limit,
        )
        processing = await order_repository.list_idle(
            db,
            tenant_id,
            OrderStatus.PROCESSING,
            older_than=now - policy.processing_timeout,
            merchant_id=merchant_id,
            limit=self.batch_limit,
        )

        candidates = [_payment_candidate(o, policy, now) for o in pending]
        candidates += [_processing_candidate(o, policy, now) for o in processing]
        return candidates

    async def _scan(self, now: datetime) -> tuple[list[TimeoutCandidate], int]:
        async with self._session_factory() as db:
            scopes = await order_repository.list_scan_scopes(db, TIMEOUT_WATCHED_STATUSES)

        candidates: list[TimeoutCandidate] = []
        skipped = 0
        for tenant_id, merchant_id in scopes:
            try:
                async with self._session_factory() as db:
                    candidates.extend(await self._scan_scope(db, tenant_id, merchant_id, now))
            except ConfigResolutionError:
                raise
            except (SQLAlchemyError, DomainError) as e:
                # Skip this merchant for this pass; the others still run
                skipped += 1
                logger.error(
                    f"Timeout scan skipped tenant={tenant_id} merchant={merchant_id}: {e}"
                )
        return candidates, skipped

    async def scan(self, now: Optional[datetime] = None) -> list[TimeoutCandidate]:
        """Orders currently eligible for timeout handling (no writes)."""
        candidates, _ = await self._scan(now or datetime.utcnow())
        return candidates

    # ── Run ─────────────────────────────────────────────────────────

    async def run_once(self, now: Optional[datetime] = None) -> BatchResult:
        """
        One synchronous scan-and-transition pass.

        Usable directly for manual triggering; the periodic loop calls it too.
        """
        now = now or datetime.utcnow()
        result = BatchResult()
        self._runs += 1
        self._last_run_at = now

        try:
            candidates, skipped = await self._scan(now)
        except (ConfigResolutionError, SQLAlchemyError) as e:
            self._errors_count += 1
            self._last_error = str(e)
            logger.error(f"Timeout scan pass aborted: {e}")
            return result

        self._scanned += len(candidates)
        self._skipped_scopes += skipped

        groups: dict[tuple, list[TimeoutCandidate]] = {}
        for candidate in candidates:
            if candidate.escalate_only:
                self._escalated += 1
                logger.warning(
                    f"Order processing timeout: order={candidate.order_id} "
                    f"tenant={candidate.tenant_id} merchant={candidate.merchant_id} "
                    f"idle={candidate.idle_for} (escalation only)"
                )
                continue
            key = (candidate.tenant_id, candidate.merchant_id, candidate.target_status, candidate.reason)
            groups.setdefault(key, []).append(candidate)

        for (tenant_id, merchant_id, target, reason), members in groups.items():
            batch = await order_status_service.apply_batch(
                self._session_factory,
                tenant_id=tenant_id,
                order_ids=[c.order_id for c in members],
                to_status=target,
                reason=reason,
                operator_type=OperatorType.SYSTEM,
                operator_id=None,
                metadata=members[0].metadata,
                max_orders=len(members),
            )
            result.merge(batch)
            # Committed per order, so count per group
            self._transitioned += batch.success_count
            self._failed += batch.fail_count

            for failure in batch.failures:
                logger.warning(
                    f"Timeout transition failed: order={failure.order_id} "
                    f"tenant={tenant_id} ({failure.code}) {failure.message}"
                )

            if batch.success_count and self._notifier is not None:
                try:
                    await self._notifier(tenant_id, target, reason, batch)
                except Exception as e:
                    logger.error(f"Timeout notifier failed for tenant {tenant_id}: {e}")

        self._last_error = None

        if candidates:
            logger.info(
                f"Timeout scan pass: scanned={len(candidates)} "
                f"transitioned={result.success_count} failed={result.fail_count} "
                f"skipped_scopes={skipped}"
            )
        return result

    # ── Lifecycle ───────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self):
        logger.info(f"Timeout scanner started (every {self.interval_seconds}s)")
        stop_event = self._stop_event

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
                break  # stop requested during the wait
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # The next tick runs regardless
                self._errors_count += 1
                self._last_error = str(e)
                logger.error(f"Timeout scanner cycle error: {e}", exc_info=True)

        logger.info("Timeout scanner stopped")

    async def start(self, interval_seconds: Optional[int] = None) -> dict:
        """Start the periodic loop. Does nothing if already running."""
        if self.is_running:
            logger.warning("Timeout scanner already running")
            return self.status()

        if interval_seconds is not None:
            if interval_seconds <= 0:
                raise ValueError("interval_seconds must be positive")
            self.interval_seconds = interval_seconds

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        return self.status()

    async def stop(self) -> dict:
        """
        Stop the periodic loop and wait until it has exited.

        A pass already in flight finishes first; no new pass starts. Calling
        stop() on a stopped scanner is a no-op.
        """
        task = self._task
        if task is None:
            return self.status()

        self._stop_event.set()
        try:
            await task
        finally:
            self._task = None
        return self.status()

    def status(self) -> dict:
        return {
            "running": self.is_running,
            "intervalSeconds": self.interval_seconds,
            "batchLimit": self.batch_limit,
            "runs": self._runs,
            "scanned": self._scanned,
            "transitioned": self._transitioned,
            "failed": self._failed,
            "escalated": self._escalated,
            "skippedScopes": self._skipped_scopes,
            "errorsCount": self._errors_count,
            "lastRunAt": self._last_run_at.isoformat() if self._last_run_at else None,
            "lastError": self._last_error,
        }

    # ── Statistics ──────────────────────────────────────────────────

    async def statistics(
        self,
        db: AsyncSession,
        tenant_id: int,
        merchant_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """
        Scanner counters (process-wide) plus order figures for one tenant.

        Overdue counts are taken per merchant with that merchant's resolved
        policy, so they match what the next pass would act on. `policy` in
        the result is the one resolved for `merchant_id` (tenant level when None).
        """
        now = now or datetime.utcnow()
        policy = await resolve_timeout_config(db, tenant_id, merchant_id)

        if merchant_id is not None:
            scopes = [(tenant_id, merchant_id)]
        else:
            scopes = await order_repository.list_scan_scopes(
                db, TIMEOUT_WATCHED_STATUSES, tenant_id=tenant_id
            )

        pending_overdue = 0
        processing_overdue = 0
        for _, scope_merchant_id in scopes:
            scope_policy = await resolve_timeout_config(db, tenant_id, scope_merchant_id)
            pending_overdue += await order_repository.count_idle(
                db, tenant_id, OrderStatus.PENDING,
                now - scope_policy.payment_timeout, scope_merchant_id,
            )
            processing_overdue += await order_repository.count_idle(
                db, tenant_id, OrderStatus.PROCESSING,
                now - scope_policy.processing_timeout, scope_merchant_id,
            )

        per_status = await order_repository.count_by_status(db, tenant_id, merchant_id)
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        auto_cancelled_today = await history_service.count_transitions(
            db,
            tenant_id,
            OrderStatus.CANCELLED,
            operator_type=OperatorType.SYSTEM,
            since=midnight,
            merchant_id=merchant_id,
        )

        stats = self.status()
        stats.update({
            "tenantId": tenant_id,
            "merchantId": merchant_id,
            "perStatusCounts": per_status,
            "pendingTimeoutCount": pending_overdue,
            "processingTimeoutCount": processing_overdue,
            "todayAutoCancelledCount": auto_cancelled_today,
            "policy": policy.to_dict(),
        })
        return stats
