"""
Configuration management for the Order Lifecycle Service.

Loads settings from .env via pydantic-settings.

Notes:
    - The default_* timeout values are the system fallback used when neither a
      merchant override nor a tenant default exists.
    - validate_production_settings() enforces strict CORS in production and
      checks the fallback against the same bounds as stored configs.
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/order_lifecycle.db"

    # ── Timeout Scanner ─────────────────────────────────────────────
    timeout_scanner_enabled: bool = True
    timeout_scan_interval_seconds: int = 60
    timeout_scan_batch_limit: int = 100  # max idle orders per merchant per pass

    # ── Timeout Fallback (system default) ──────────────────────────
    default_payment_timeout_minutes: int = 30
    default_processing_timeout_hours: int = 24
    default_processing_timeout_action: str = "cancel"  # cancel | complete | notify

    # ── Batch Operations ───────────────────────────────────────────
    batch_max_orders: int = 100

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    def validate_production_settings(self):
        """
        Validate settings before the app starts serving.

        The timeout fallback is checked in every environment: a broken fallback
        would make every scan pass fail. CORS is only enforced in production.
        """
        from domain.constants import (
            PAYMENT_TIMEOUT_MINUTES_MIN,
            PAYMENT_TIMEOUT_MINUTES_MAX,
            PROCESSING_TIMEOUT_HOURS_MIN,
            PROCESSING_TIMEOUT_HOURS_MAX,
        )
        from domain.enums import ProcessingTimeoutAction

        if not PAYMENT_TIMEOUT_MINUTES_MIN <= self.default_payment_timeout_minutes <= PAYMENT_TIMEOUT_MINUTES_MAX:
            raise ValueError(
                "DEFAULT_PAYMENT_TIMEOUT_MINUTES must be between "
                f"{PAYMENT_TIMEOUT_MINUTES_MIN} and {PAYMENT_TIMEOUT_MINUTES_MAX}."
            )
        if not PROCESSING_TIMEOUT_HOURS_MIN <= self.default_processing_timeout_hours <= PROCESSING_TIMEOUT_HOURS_MAX:
            raise ValueError(
                "DEFAULT_PROCESSING_TIMEOUT_HOURS must be between "
                f"{PROCESSING_TIMEOUT_HOURS_MIN} and {PROCESSING_TIMEOUT_HOURS_MAX}."
            )
        try:
            ProcessingTimeoutAction(self.default_processing_timeout_action)
        except ValueError:
            raise ValueError(
                "DEFAULT_PROCESSING_TIMEOUT_ACTION must be one of: "
                + ", ".join(a.value for a in ProcessingTimeoutAction)
            )
        if self.timeout_scan_interval_seconds <= 0:
            raise ValueError("TIMEOUT_SCAN_INTERVAL_SECONDS must be positive.")

        if self.environment == "production":
            # Block wildcard CORS in production
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            if not self.timeout_scanner_enabled:
                warnings.append("TIMEOUT_SCANNER_ENABLED=false (idle orders will not be resolved)")
            for w in warnings:
                logger.warning(f"⚠️  {w}")


# Global settings instance
settings = Settings()
