"""
Application Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.
Supports three modes:
    - DEVELOPMENT: Simulated remote order service in front of the local store
    - STAGING: Real order service (test deployment) with local fallback
    - PRODUCTION: Real order service with local fallback

The ENV_MODE variable controls which order backend is instantiated, so the
same code runs against a laptop-only setup or the hosted order service.

Usage:
    from orderdesk.core.config import get_settings

    settings = get_settings()
    if settings.use_real_services:
        # Talk to ORDER_SERVICE_URL
    else:
        # Use the simulated remote
"""

import logging
import sys
from decimal import Decimal
from enum import Enum
from typing import Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentMode(str, Enum):
    """
    Application environment modes.

    Attributes:
        DEVELOPMENT: Local testing with a simulated remote order service
        PRODUCTION: Live environment against the hosted order service
        STAGING: Pre-production testing against a staging order service
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.

    Attributes:
        env_mode: Current environment (development/production/staging)
        debug: Enable verbose logging and error details

        # Remote order service
        order_service_url: Base URL of the remote order API
        order_service_token: Bearer token sent to the remote order API
        remote_timeout_seconds: Bound on every remote round trip

        # Local fallback store
        data_directory: Directory holding per-restaurant order files
        fallback_lock_timeout: Seconds to wait for a fallback file lock

        # Business configuration
        vat_rate_percent: VAT applied to the cart subtotal
        order_number_prefix: Prefix of human-readable order numbers
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="Application environment mode"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="OrderDesk",
        description="Application display name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8001,
        description="API server port"
    )

    # ==========================================================================
    # REMOTE ORDER SERVICE
    # ==========================================================================

    order_service_url: Optional[str] = Field(
        default=None,
        description="Base URL of the remote order service (https://api.example.com/api)"
    )
    order_service_token: Optional[str] = Field(
        default=None,
        description="Bearer token for the remote order service"
    )
    remote_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Seconds before a remote call is treated as failed"
    )
    mirror_remote_orders: bool = Field(
        default=True,
        description="Copy successful remote results into the local fallback store"
    )

    # ==========================================================================
    # SIMULATED REMOTE (DEVELOPMENT)
    # ==========================================================================

    mock_failure_rate: float = Field(
        default=0.10,
        ge=0.0,
        le=1.0,
        description="Probability that the simulated remote fails a call"
    )
    mock_min_latency: float = Field(
        default=0.05,
        description="Minimum simulated remote latency in seconds"
    )
    mock_max_latency: float = Field(
        default=0.3,
        description="Maximum simulated remote latency in seconds"
    )

    # ==========================================================================
    # LOCAL FALLBACK STORE
    # ==========================================================================

    data_directory: str = Field(
        default="data",
        description="Directory for data files"
    )
    fallback_lock_timeout: int = Field(
        default=10,
        description="Seconds to wait for a fallback store file lock"
    )

    # ==========================================================================
    # BUSINESS CONFIGURATION
    # ==========================================================================

    vat_rate_percent: Decimal = Field(
        default=Decimal("15"),
        ge=0,
        description="VAT rate in percent applied to the subtotal"
    )
    currency: str = Field(
        default="SAR",
        description="Display currency"
    )
    order_number_prefix: str = Field(
        default="ORD",
        description="Prefix for human-readable order numbers"
    )
    default_page_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Orders fetched per page when listing"
    )
    sync_poll_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Safety-net polling interval for order views"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Convert string to EnvironmentMode enum."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    @field_validator("order_service_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.rstrip("/") or None

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env_mode == EnvironmentMode.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env_mode == EnvironmentMode.PRODUCTION

    @property
    def is_staging(self) -> bool:
        """Check if running in staging mode."""
        return self.env_mode == EnvironmentMode.STAGING

    @property
    def use_real_services(self) -> bool:
        """Check if the real remote order service should be used."""
        return self.env_mode in (EnvironmentMode.PRODUCTION, EnvironmentMode.STAGING)

    # ==========================================================================
    # VALIDATION METHODS
    # ==========================================================================

    def validate_production_config(self) -> list[str]:
        """
        Validate that all required production settings are configured.

        Returns:
            List of missing configuration keys (empty if all present)
        """
        missing = []

        if self.use_real_services:
            if not self.order_service_url:
                missing.append("ORDER_SERVICE_URL")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Configured application settings

    Example:
        >>> settings = get_settings()
        >>> print(settings.env_mode)
        EnvironmentMode.DEVELOPMENT
    """
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured package logger
    """
    settings = get_settings()

    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-25s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("filelock").setLevel(logging.WARNING)

    return logging.getLogger("orderdesk")

