"""Engine configuration, loaded from environment variables and .env file."""

import logging
import sys
from decimal import Decimal
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SETTLEMENT_",
        env_file=str(Path(__file__).resolve().parent.parent.parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Overhead & profit (fractions)
    op_trade_threshold: int = 3
    default_overhead_pct: float = 0.10
    default_profit_pct: float = 0.10

    # Policy limits
    utilization_warning_threshold: float = 0.80
    default_coverage_type: str = "A"
    default_deductible: Decimal = Decimal("0")

    # Tax (fraction); 0 disables the seeded default tax rule
    default_tax_rate: float = 0.0

    # Depreciation (fractions)
    fallback_depreciation_rate: float = 0.12
    roof_schedule_depreciation_pct: float = 0.75

    # Logging
    log_level: str = "INFO"


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for scripts and services embedding the engine."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
