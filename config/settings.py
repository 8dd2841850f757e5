"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
Coverage tolerance defaults are resolved here once and then handed to the
evaluators explicitly.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from decimal import Decimal
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # PRODUCTION GATING
    # ===================
    due_soon_window_days: int = Field(
        default=7,
        ge=0,
        le=60,
        description="Days before the needed date (or today) that count as due soon"
    )

    # ===================
    # MATERIAL COVERAGE TOLERANCE
    # ===================
    coverage_tolerance_json: Optional[str] = Field(
        None,
        description=(
            "JSON tolerance table, e.g. "
            '{"default": {"pct": 0.01, "abs": 0}, "FABRIC": {"pct": 0.03, "abs": 5}}'
        )
    )
    default_coverage_tolerance_pct: float = Field(
        default=0.01,
        ge=0,
        le=1,
        description="Global tolerance percentage used when no table is configured"
    )
    default_coverage_tolerance_abs: float = Field(
        default=0,
        ge=0,
        description="Global absolute tolerance used when no table is configured"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    def tolerance_defaults(self):
        """
        Build the explicit tolerance defaults handed to the coverage evaluator.

        A configured JSON table wins; otherwise the global pct/abs settings
        are layered over the built-in per-type table.

        Returns:
            CoverageToleranceDefaults
        """
        # Imported lazily: the services package imports settings
        from services.coverage_tolerance_service import (
            FALLBACK_TOLERANCE_DEFAULTS,
            parse_tolerance_defaults,
        )

        if self.coverage_tolerance_json:
            return parse_tolerance_defaults(self.coverage_tolerance_json)

        return FALLBACK_TOLERANCE_DEFAULTS.model_copy(update={
            "default_pct": Decimal(str(self.default_coverage_tolerance_pct)),
            "default_abs": Decimal(str(self.default_coverage_tolerance_abs)),
        })


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
