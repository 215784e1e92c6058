"""
Order timeout endpoints — scanner control and timeout policy CRUD.

Scanner:
    POST  /orders/timeout/start        — Start the periodic scanner (no-op if running)
    POST  /orders/timeout/stop         — Stop it and wait for the loop to exit
    POST  /orders/timeout/process      — Run one scan-and-transition pass now
    GET   /orders/timeout/status       — Running flag and counters
    GET   /orders/timeout/statistics   — Counters plus tenant order figures

Policies:
    GET    /orders/timeout-configs             — All configs of the tenant
    POST   /orders/timeout-configs             — Create tenant default / merchant override
    GET    /orders/timeout-configs/effective   — Resolved policy for a merchant
    GET    /orders/timeout-configs/{id}
    PUT    /orders/timeout-configs/{id}
    DELETE /orders/timeout-configs/{id}
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import get_tenant_id, get_timeout_scanner
from models import (
    BatchUpdateOrderStatusResponse,
    ScannerStartRequest,
    TimeoutConfigCreateRequest,
    TimeoutConfigResponse,
    TimeoutConfigUpdateRequest,
)
from services import timeout_config_service
from services.timeout_service import TimeoutScanner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders/timeout", tags=["order-timeout"])
config_router = APIRouter(prefix="/orders/timeout-configs", tags=["order-timeout-config"])


# ════════════════════════════════════════════════════════════════════
# Scanner
# ════════════════════════════════════════════════════════════════════


@router.post("/start")
async def start_timeout_scanner(
    request: Optional[ScannerStartRequest] = None,
    scanner: TimeoutScanner = Depends(get_timeout_scanner),
):
    """Start the timeout scanner. Starting a running scanner changes nothing."""
    interval = request.interval_seconds if request else None
    state = await scanner.start(interval_seconds=interval)
    return {"message": "Timeout scanner running", "scanner": state}


@router.post("/stop")
async def stop_timeout_scanner(scanner: TimeoutScanner = Depends(get_timeout_scanner)):
    """Stop the timeout scanner; returns once the loop has exited."""
    state = await scanner.stop()
    return {"message": "Timeout scanner stopped", "scanner": state}


@router.post("/process", response_model=BatchUpdateOrderStatusResponse)
async def process_timeout_orders(scanner: TimeoutScanner = Depends(get_timeout_scanner)):
    """Run one pass immediately, independent of the periodic loop."""
    result = await scanner.run_once()
    logger.info(
        f"Manual timeout pass: transitioned={result.success_count} failed={result.fail_count}"
    )
    return result.to_dict()


@router.get("/status")
async def get_timeout_scanner_status(scanner: TimeoutScanner = Depends(get_timeout_scanner)):
    return scanner.status()


@router.get("/statistics")
async def get_timeout_statistics(
    merchant_id: Optional[int] = Query(None, alias="merchantId", ge=1),
    tenant_id: int = Depends(get_tenant_id),
    scanner: TimeoutScanner = Depends(get_timeout_scanner),
    db: AsyncSession = Depends(get_db),
):
    """Scanner counters plus overdue / auto-cancelled figures for the tenant."""
    return await scanner.statistics(db, tenant_id, merchant_id)


# ════════════════════════════════════════════════════════════════════
# Timeout Policies
# ════════════════════════════════════════════════════════════════════


@config_router.get("", response_model=list[TimeoutConfigResponse])
async def list_timeout_configs(
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    configs = await timeout_config_service.list_configs(db, tenant_id)
    return [timeout_config_service.serialize(c) for c in configs]


@config_router.post("", response_model=TimeoutConfigResponse, status_code=201)
async def create_timeout_config(
    request: TimeoutConfigCreateRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    """Create the tenant default (no merchantId) or a merchant override."""
    config = await timeout_config_service.create_config(
        db,
        tenant_id,
        merchant_id=request.merchant_id,
        payment_timeout_minutes=request.payment_timeout_minutes,
        processing_timeout_hours=request.processing_timeout_hours,
        processing_timeout_action=request.processing_timeout_action.value,
    )
    await db.commit()
    return timeout_config_service.serialize(config)


@config_router.get("/effective")
async def get_effective_timeout_config(
    merchant_id: Optional[int] = Query(None, alias="merchantId", ge=1),
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    """The policy the scanner would apply to this merchant."""
    policy = await timeout_config_service.resolve_timeout_config(db, tenant_id, merchant_id)
    return policy.to_dict()


@config_router.get("/{config_id}", response_model=TimeoutConfigResponse)
async def get_timeout_config(
    config_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    config = await timeout_config_service.get_config(db, tenant_id, config_id)
    return timeout_config_service.serialize(config)


@config_router.put("/{config_id}", response_model=TimeoutConfigResponse)
async def update_timeout_config(
    config_id: int,
    request: TimeoutConfigUpdateRequest,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    config = await timeout_config_service.update_config(
        db,
        tenant_id,
        config_id,
        payment_timeout_minutes=request.payment_timeout_minutes,
        processing_timeout_hours=request.processing_timeout_hours,
        processing_timeout_action=(
            request.processing_timeout_action.value if request.processing_timeout_action else None
        ),
    )
    await db.commit()
    return timeout_config_service.serialize(config)


@config_router.delete("/{config_id}")
async def delete_timeout_config(
    config_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    await timeout_config_service.delete_config(db, tenant_id, config_id)
    await db.commit()
    return {"message": "Timeout config deleted", "id": config_id}
