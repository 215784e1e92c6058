"""
Pytest configuration and shared fixtures for the Order Lifecycle tests.

Provides an in-memory SQLite database, a session factory for the per-order
transactions, helpers to seed orders in any status / idle age, and a timeout
scanner bound to the test database.
"""
import uuid
from datetime import datetime, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import db_models  # noqa: F401  (registers tables on Base.metadata)
from config import settings
from database import Base
from domain.enums import OrderStatus
from services import history_service, order_repository
from services.timeout_service import TimeoutScanner


# ── Database Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """
    Session factory over a fresh in-memory SQLite database for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A plain session for reads and config writes."""
    async with session_factory() as session:
        yield session


# ── Settings ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def timeout_fallback(monkeypatch):
    """Pin the system timeout fallback so tests don't depend on .env."""
    monkeypatch.setattr(settings, "default_payment_timeout_minutes", 30)
    monkeypatch.setattr(settings, "default_processing_timeout_hours", 24)
    monkeypatch.setattr(settings, "default_processing_timeout_action", "cancel")
    monkeypatch.setattr(settings, "batch_max_orders", 100)
    return settings


# ── Test Data Helpers ────────────────────────────────────────────────


@pytest.fixture
def sample_tenant_id() -> int:
    return 1


@pytest.fixture
def sample_merchant_id() -> int:
    return 10


@pytest.fixture
def make_order(session_factory, sample_tenant_id, sample_merchant_id):
    """
    Seed an order directly in the given status.

    `idle` backdates status_updated_at, which is what the scanner measures.
    """
    async def _make(
        status: OrderStatus = OrderStatus.PENDING,
        idle: timedelta = timedelta(0),
        tenant_id: int | None = None,
        merchant_id: int | None = None,
        customer_id: int = 100,
    ) -> int:
        changed_at = datetime.utcnow() - idle
        async with session_factory() as db:
            order = db_models.Order(
                tenant_id=tenant_id or sample_tenant_id,
                merchant_id=merchant_id or sample_merchant_id,
                customer_id=customer_id,
                order_number=f"TEST-{uuid.uuid4().hex[:12]}",
                status=status,
                created_at=changed_at,
                updated_at=changed_at,
                status_updated_at=changed_at,
            )
            db.add(order)
            await db.commit()
            return order.id

    return _make


@pytest.fixture
def fetch_order(session_factory, sample_tenant_id):
    """Read an order back through a fresh session."""
    async def _fetch(order_id: int, tenant_id: int | None = None):
        async with session_factory() as db:
            return await order_repository.get_by_id(db, tenant_id or sample_tenant_id, order_id)

    return _fetch


@pytest.fixture
def fetch_history(session_factory, sample_tenant_id):
    """Read an order's history (oldest first) through a fresh session."""
    async def _fetch(order_id: int, tenant_id: int | None = None) -> list:
        async with session_factory() as db:
            return await history_service.list_by_order_id(db, tenant_id or sample_tenant_id, order_id)

    return _fetch


# ── Scanner ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def scanner(session_factory) -> AsyncGenerator[TimeoutScanner, None]:
    """A stopped scanner on the test database; always stopped afterwards."""
    timeout_scanner = TimeoutScanner(session_factory, interval_seconds=60, batch_limit=100)
    yield timeout_scanner
    await timeout_scanner.stop()
