"""
Shared FastAPI dependencies.

Centralizes the request-scoped inputs routers need: tenant scope, operator
identity, the per-order session factory and the application's timeout scanner.
Authentication happens upstream (gateway); these headers are trusted here.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, Request

from domain.errors import ValidationError
from services.timeout_service import TimeoutScanner


def get_tenant_id(x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID")) -> int:
    """Tenant scope of the request. Every query is filtered by it."""
    if not x_tenant_id:
        raise ValidationError("X-Tenant-ID header is required", field="X-Tenant-ID")
    try:
        tenant_id = int(x_tenant_id)
    except ValueError:
        raise ValidationError("X-Tenant-ID must be an integer", field="X-Tenant-ID")
    if tenant_id < 1:
        raise ValidationError("X-Tenant-ID must be positive", field="X-Tenant-ID")
    return tenant_id


def get_operator_id(x_operator_id: Optional[str] = Header(None, alias="X-Operator-ID")) -> Optional[int]:
    """Id of the acting user, when there is one (system calls have none)."""
    if not x_operator_id:
        return None
    try:
        return int(x_operator_id)
    except ValueError:
        raise ValidationError("X-Operator-ID must be an integer", field="X-Operator-ID")


def get_timeout_scanner(request: Request) -> TimeoutScanner:
    """The scanner built by the app lifespan (see main.py)."""
    scanner = getattr(request.app.state, "timeout_scanner", None)
    if scanner is None:
        from config import settings
        from database import async_session
        from services import notification_service

        # Lifespan not run (e.g. embedded ASGI use): build it lazily, stopped
        scanner = TimeoutScanner(
            async_session,
            interval_seconds=settings.timeout_scan_interval_seconds,
            batch_limit=settings.timeout_scan_batch_limit,
            notifier=notification_service.notify_timeout_batch,
        )
        request.app.state.timeout_scanner = scanner
    return scanner
