"""
Order Timeout Config Service — timeout policy storage and resolution.

Scopes:
    merchant override — merchant_id set, at most one per merchant
    tenant default    — merchant_id NULL, at most one per tenant
    system fallback   — built from settings, used when neither exists

resolve_timeout_config() walks that chain and always returns a policy; it only
fails (ConfigResolutionError) when the system fallback itself is out of bounds.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.constants import (
    PAYMENT_TIMEOUT_MINUTES_MIN,
    PAYMENT_TIMEOUT_MINUTES_MAX,
    PROCESSING_TIMEOUT_HOURS_MIN,
    PROCESSING_TIMEOUT_HOURS_MAX,
)
from domain.enums import ProcessingTimeoutAction
from domain.errors import ConfigResolutionError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

SOURCE_MERCHANT = "merchant"
SOURCE_TENANT = "tenant"
SOURCE_SYSTEM = "system"


@dataclass(frozen=True)
class EffectiveTimeoutConfig:
    """The policy that applies to one merchant, and where it came from."""
    tenant_id: int
    merchant_id: Optional[int]
    payment_timeout_minutes: int
    processing_timeout_hours: int
    processing_timeout_action: ProcessingTimeoutAction
    source: str
    config_id: Optional[int] = None

    @property
    def payment_timeout(self) -> timedelta:
        return timedelta(minutes=self.payment_timeout_minutes)

    @property
    def processing_timeout(self) -> timedelta:
        return timedelta(hours=self.processing_timeout_hours)

    def to_dict(self) -> dict:
        return {
            "tenantId": self.tenant_id,
            "merchantId": self.merchant_id,
            "paymentTimeoutMinutes": self.payment_timeout_minutes,
            "processingTimeoutHours": self.processing_timeout_hours,
            "processingTimeoutAction": self.processing_timeout_action.value,
            "source": self.source,
            "configId": self.config_id,
        }


# ════════════════════════════════════════════════════════════════════
# Validation
# ════════════════════════════════════════════════════════════════════


def validate_timeout_values(
    payment_timeout_minutes: int,
    processing_timeout_hours: int,
    processing_timeout_action: str = ProcessingTimeoutAction.CANCEL.value,
) -> ProcessingTimeoutAction:
    """Check bounds and action; returns the parsed action."""
    if not PAYMENT_TIMEOUT_MINUTES_MIN <= payment_timeout_minutes <= PAYMENT_TIMEOUT_MINUTES_MAX:
        raise ValidationError(
            f"must be between {PAYMENT_TIMEOUT_MINUTES_MIN} and {PAYMENT_TIMEOUT_MINUTES_MAX} minutes",
            field="payment_timeout_minutes",
        )
    if not PROCESSING_TIMEOUT_HOURS_MIN <= processing_timeout_hours <= PROCESSING_TIMEOUT_HOURS_MAX:
        raise ValidationError(
            f"must be between {PROCESSING_TIMEOUT_HOURS_MIN} and {PROCESSING_TIMEOUT_HOURS_MAX} hours",
            field="processing_timeout_hours",
        )
    try:
        return ProcessingTimeoutAction(processing_timeout_action)
    except ValueError:
        raise ValidationError(
            "must be one of: " + ", ".join(a.value for a in ProcessingTimeoutAction),
            field="processing_timeout_action",
        )


# ════════════════════════════════════════════════════════════════════
# Config Store
# ════════════════════════════════════════════════════════════════════


async def get_merchant_override(db: AsyncSession, tenant_id: int, merchant_id: int):
    """Merchant-level config, or None."""
    from db_models import OrderTimeoutConfig

    result = await db.execute(
        select(OrderTimeoutConfig).where(
            OrderTimeoutConfig.tenant_id == tenant_id,
            OrderTimeoutConfig.merchant_id == merchant_id,
        )
    )
    return result.scalar_one_or_none()


async def get_tenant_default(db: AsyncSession, tenant_id: int):
    """Tenant default config (merchant_id IS NULL), or None."""
    from db_models import OrderTimeoutConfig

    result = await db.execute(
        select(OrderTimeoutConfig)
        .where(
            OrderTimeoutConfig.tenant_id == tenant_id,
            OrderTimeoutConfig.merchant_id.is_(None),
        )
        .order_by(OrderTimeoutConfig.id.asc())
    )
    return result.scalars().first()


async def get_config(db: AsyncSession, tenant_id: int, config_id: int):
    """Config by id within a tenant. Raises NotFoundError."""
    from db_models import OrderTimeoutConfig

    result = await db.execute(
        select(OrderTimeoutConfig).where(
            OrderTimeoutConfig.id == config_id,
            OrderTimeoutConfig.tenant_id == tenant_id,
        )
    )
    config = result.scalar_one_or_none()
    if config is None:
        raise NotFoundError("Timeout config", config_id)
    return config


async def list_configs(db: AsyncSession, tenant_id: int) -> list:
    """All configs of a tenant, tenant default first."""
    from db_models import OrderTimeoutConfig

    result = await db.execute(
        select(OrderTimeoutConfig)
        .where(OrderTimeoutConfig.tenant_id == tenant_id)
        .order_by(OrderTimeoutConfig.merchant_id.asc().nulls_first(), OrderTimeoutConfig.id.asc())
    )
    return list(result.scalars().all())


async def create_config(
    db: AsyncSession,
    tenant_id: int,
    *,
    merchant_id: Optional[int] = None,
    payment_timeout_minutes: int,
    processing_timeout_hours: int,
    processing_timeout_action: str = ProcessingTimeoutAction.CANCEL.value,
):
    """Create a tenant default (merchant_id None) or a merchant override."""
    from db_models import OrderTimeoutConfig

    action = validate_timeout_values(
        payment_timeout_minutes, processing_timeout_hours, processing_timeout_action
    )

    if merchant_id is None:
        existing = await get_tenant_default(db, tenant_id)
    else:
        existing = await get_merchant_override(db, tenant_id, merchant_id)
    if existing is not None:
        scope = "tenant default" if merchant_id is None else f"merchant {merchant_id}"
        raise ConflictError(
            f"Timeout config already exists for {scope}",
            details={"configId": existing.id},
        )

    config = OrderTimeoutConfig(
        tenant_id=tenant_id,
        merchant_id=merchant_id,
        payment_timeout_minutes=payment_timeout_minutes,
        processing_timeout_hours=processing_timeout_hours,
        processing_timeout_action=action.value,
    )
    db.add(config)
    try:
        await db.flush()
    except IntegrityError:
        # Race: another request created the same scope first
        raise ConflictError(f"Timeout config already exists for merchant {merchant_id}")

    logger.info(
        f"Timeout config created: tenant={tenant_id} merchant={merchant_id} "
        f"payment={payment_timeout_minutes}m processing={processing_timeout_hours}h "
        f"action={action.value}"
    )
    return config


async def update_config(
    db: AsyncSession,
    tenant_id: int,
    config_id: int,
    *,
    payment_timeout_minutes: Optional[int] = None,
    processing_timeout_hours: Optional[int] = None,
    processing_timeout_action: Optional[str] = None,
):
    """Update timeout values of an existing config. Scope cannot change."""
    config = await get_config(db, tenant_id, config_id)

    payment = payment_timeout_minutes if payment_timeout_minutes is not None else config.payment_timeout_minutes
    processing = processing_timeout_hours if processing_timeout_hours is not None else config.processing_timeout_hours
    action = processing_timeout_action or config.processing_timeout_action
    parsed_action = validate_timeout_values(payment, processing, action)

    config.payment_timeout_minutes = payment
    config.processing_timeout_hours = processing
    config.processing_timeout_action = parsed_action.value
    config.updated_at = datetime.utcnow()
    await db.flush()

    logger.info(f"Timeout config updated: id={config_id} tenant={tenant_id}")
    return config


async def delete_config(db: AsyncSession, tenant_id: int, config_id: int) -> None:
    """Delete a config; resolution falls through to the next scope."""
    config = await get_config(db, tenant_id, config_id)
    await db.delete(config)
    await db.flush()
    logger.info(f"Timeout config deleted: id={config_id} tenant={tenant_id}")


def serialize(config) -> dict:
    """ORM config → API dict."""
    return {
        "id": config.id,
        "tenantId": config.tenant_id,
        "merchantId": config.merchant_id,
        "paymentTimeoutMinutes": config.payment_timeout_minutes,
        "processingTimeoutHours": config.processing_timeout_hours,
        "processingTimeoutAction": config.processing_timeout_action,
        "createdAt": config.created_at.isoformat() if config.created_at else None,
        "updatedAt": config.updated_at.isoformat() if config.updated_at else None,
    }


# ════════════════════════════════════════════════════════════════════
# Policy Resolver
# ════════════════════════════════════════════════════════════════════


def system_fallback(tenant_id: int, merchant_id: Optional[int] = None) -> EffectiveTimeoutConfig:
    """The built-in policy from settings. Raises ConfigResolutionError if invalid."""
    from config import settings

    try:
        action = validate_timeout_values(
            settings.default_payment_timeout_minutes,
            settings.default_processing_timeout_hours,
            settings.default_processing_timeout_action,
        )
    except ValidationError as e:
        raise ConfigResolutionError(f"System timeout fallback is misconfigured: {e.message}")

    return EffectiveTimeoutConfig(
        tenant_id=tenant_id,
        merchant_id=merchant_id,
        payment_timeout_minutes=settings.default_payment_timeout_minutes,
        processing_timeout_hours=settings.default_processing_timeout_hours,
        processing_timeout_action=action,
        source=SOURCE_SYSTEM,
    )


def _from_row(config, source: str, merchant_id: Optional[int]) -> EffectiveTimeoutConfig:
    return EffectiveTimeoutConfig(
        tenant_id=config.tenant_id,
        merchant_id=merchant_id,
        payment_timeout_minutes=config.payment_timeout_minutes,
        processing_timeout_hours=config.processing_timeout_hours,
        processing_timeout_action=ProcessingTimeoutAction(config.processing_timeout_action),
        source=source,
        config_id=config.id,
    )


async def resolve_timeout_config(
    db: AsyncSession,
    tenant_id: int,
    merchant_id: Optional[int] = None,
) -> EffectiveTimeoutConfig:
    """
    Effective policy for a merchant: merchant override → tenant default → system.

    Args:
        db: Database session
        tenant_id: Tenant the merchant belongs to
        merchant_id: Merchant to resolve for (None resolves the tenant level)

    Returns:
        EffectiveTimeoutConfig with `source` set to merchant, tenant or system
    """
    if merchant_id is not None:
        override = await get_merchant_override(db, tenant_id, merchant_id)
        if override is not None:
            return _from_row(override, SOURCE_MERCHANT, merchant_id)

    default = await get_tenant_default(db, tenant_id)
    if default is not None:
        return _from_row(default, SOURCE_TENANT, merchant_id)

    return system_fallback(tenant_id, merchant_id)
