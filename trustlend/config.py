"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - Every tunable lending rule (fee buffer, penalties, retry budgets) lives here, not in modules
    - get_settings() is cached (lru_cache) — single instance per process

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Default credit rules: start at 100, +1 per repayment, -50 per default
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Credit rules
    starting_credit_score: int = Field(100, ge=0)
    credit_bonus_policy: Literal["flat", "scaled"] = "flat"
    repayment_bonus_points: int = Field(1, ge=0)
    credit_points_per_unit: int = Field(2, ge=0)
    min_credit_gain: int = Field(10, ge=0)
    max_credit_gain: int = Field(100, ge=0)
    default_penalty_points: int = Field(50, ge=0)

    # Origination
    origination_fee_buffer: float = Field(0.1, ge=0)
    loan_id_max_attempts: int = Field(5, ge=1)
    demo_loan_duration_seconds: int = Field(10, gt=0)

    # Ledger
    funding_threshold: float = Field(10.0, ge=0)
    faucet_amount: float = Field(1000.0, gt=0)
    payment_fee_drops: int = Field(12, ge=0)
    ledger_max_retries: int = Field(3, ge=0)
    ledger_base_delay_ms: int = Field(500, ge=0)
    ledger_max_delay_ms: int = Field(5_000, ge=0)
    account_funding_attempts: int = Field(5, ge=1)
    account_funding_backoff_ms: int = Field(2_000, ge=0)

    # API
    cors_origins: list[str] = ["http://localhost:3000"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("max_credit_gain")
    @classmethod
    def gain_bounds_ordered(cls, v: int, info: ValidationInfo) -> int:
        low = info.data.get("min_credit_gain")
        if low is not None and v < low:
            raise ValueError("max_credit_gain must be >= min_credit_gain")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
