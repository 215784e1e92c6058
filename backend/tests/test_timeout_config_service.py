"""
Tests for timeout policy storage and resolution.

Tests: merchant → tenant → system precedence, scope conflicts, bounds,
update/delete, tenant isolation, misconfigured system fallback
"""
import pytest

from domain.enums import ProcessingTimeoutAction
from domain.errors import ConfigResolutionError, ConflictError, NotFoundError, ValidationError
from services import timeout_config_service
from services.timeout_config_service import resolve_timeout_config


# ── Resolution ──────────────────────────────────────────────────────


@pytest.mark.integration
@pytest.mark.asyncio
async def test_precedence_merchant_then_tenant_then_system(db_session):
    await timeout_config_service.create_config(
        db_session, 1, payment_timeout_minutes=60, processing_timeout_hours=48
    )
    await timeout_config_service.create_config(
        db_session, 1, merchant_id=10,
        payment_timeout_minutes=10, processing_timeout_hours=12,
        processing_timeout_action="complete",
    )
    await db_session.commit()

    merchant = await resolve_timeout_config(db_session, 1, 10)
    tenant = await resolve_timeout_config(db_session, 1, 20)
    system = await resolve_timeout_config(db_session, 2, 10)

    assert (merchant.payment_timeout_minutes, merchant.source) == (10, "merchant")
    assert merchant.processing_timeout_action == ProcessingTimeoutAction.COMPLETE
    assert (tenant.payment_timeout_minutes, tenant.source) == (60, "tenant")
    assert tenant.processing_timeout_hours == 48
    assert (system.payment_timeout_minutes, system.source) == (30, "system")
    assert system.processing_timeout_hours == 24
    assert system.processing_timeout_action == ProcessingTimeoutAction.CANCEL
    assert system.config_id is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_deleting_override_falls_back(db_session):
    override = await timeout_config_service.create_config(
        db_session, 1, merchant_id=10, payment_timeout_minutes=10, processing_timeout_hours=12
    )
    await db_session.commit()
    assert (await resolve_timeout_config(db_session, 1, 10)).source == "merchant"

    await timeout_config_service.delete_config(db_session, 1, override.id)
    await db_session.commit()

    policy = await resolve_timeout_config(db_session, 1, 10)
    assert policy.source == "system"
    assert policy.payment_timeout_minutes == 30


@pytest.mark.unit
@pytest.mark.asyncio
async def test_misconfigured_fallback_raises(db_session, monkeypatch):
    from config import settings

    monkeypatch.setattr(settings, "default_payment_timeout_minutes", 0)

    with pytest.raises(ConfigResolutionError):
        await resolve_timeout_config(db_session, 1, 10)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_misconfigured_fallback_ignored_when_tenant_default_exists(db_session, monkeypatch):
    from config import settings

    await timeout_config_service.create_config(
        db_session, 1, payment_timeout_minutes=15, processing_timeout_hours=6
    )
    await db_session.commit()
    monkeypatch.setattr(settings, "default_processing_timeout_action", "explode")

    policy = await resolve_timeout_config(db_session, 1, 10)
    assert policy.payment_timeout_minutes == 15


@pytest.mark.unit
def test_effective_config_durations():
    policy = timeout_config_service.system_fallback(1, 10)
    assert policy.payment_timeout.total_seconds() == 30 * 60
    assert policy.processing_timeout.total_seconds() == 24 * 3600
    assert policy.to_dict()["processingTimeoutAction"] == "cancel"


# ── Store ───────────────────────────────────────────────────────────


@pytest.mark.integration
@pytest.mark.asyncio
async def test_duplicate_scope_conflicts(db_session):
    await timeout_config_service.create_config(
        db_session, 1, payment_timeout_minutes=60, processing_timeout_hours=48
    )
    await timeout_config_service.create_config(
        db_session, 1, merchant_id=10, payment_timeout_minutes=10, processing_timeout_hours=12
    )

    with pytest.raises(ConflictError):
        await timeout_config_service.create_config(
            db_session, 1, payment_timeout_minutes=20, processing_timeout_hours=2
        )
    with pytest.raises(ConflictError):
        await timeout_config_service.create_config(
            db_session, 1, merchant_id=10, payment_timeout_minutes=20, processing_timeout_hours=2
        )

    # Same merchant id under another tenant is a different scope
    other = await timeout_config_service.create_config(
        db_session, 2, merchant_id=10, payment_timeout_minutes=20, processing_timeout_hours=2
    )
    assert other.id is not None


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payment,processing,action",
    [
        (0, 24, "cancel"),
        (1441, 24, "cancel"),
        (30, 0, "cancel"),
        (30, 721, "cancel"),
        (30, 24, "refund"),
    ],
)
async def test_out_of_bounds_values_rejected(db_session, payment, processing, action):
    with pytest.raises(ValidationError):
        await timeout_config_service.create_config(
            db_session, 1,
            payment_timeout_minutes=payment,
            processing_timeout_hours=processing,
            processing_timeout_action=action,
        )


@pytest.mark.unit
def test_bounds_are_inclusive():
    assert timeout_config_service.validate_timeout_values(1, 1) == ProcessingTimeoutAction.CANCEL
    assert timeout_config_service.validate_timeout_values(1440, 720, "notify") == ProcessingTimeoutAction.NOTIFY


@pytest.mark.integration
@pytest.mark.asyncio
async def test_update_config_partial(db_session):
    config = await timeout_config_service.create_config(
        db_session, 1, merchant_id=10, payment_timeout_minutes=10, processing_timeout_hours=12
    )

    updated = await timeout_config_service.update_config(
        db_session, 1, config.id, processing_timeout_action="notify"
    )
    assert updated.payment_timeout_minutes == 10
    assert updated.processing_timeout_hours == 12
    assert updated.processing_timeout_action == "notify"

    with pytest.raises(ValidationError):
        await timeout_config_service.update_config(db_session, 1, config.id, payment_timeout_minutes=5000)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_configs_are_tenant_scoped(db_session):
    config = await timeout_config_service.create_config(
        db_session, 1, payment_timeout_minutes=60, processing_timeout_hours=48
    )
    await db_session.commit()

    with pytest.raises(NotFoundError):
        await timeout_config_service.get_config(db_session, 2, config.id)
    with pytest.raises(NotFoundError):
        await timeout_config_service.delete_config(db_session, 2, config.id)
    assert await timeout_config_service.list_configs(db_session, 2) == []
    assert [c.id for c in await timeout_config_service.list_configs(db_session, 1)] == [config.id]
