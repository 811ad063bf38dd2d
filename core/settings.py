"""
Settlement settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings; every key is read from the
``SETTLEMENT__`` prefix, e.g. ``SETTLEMENT__RETRY__MAX_RETRIES=5``.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewayTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 5.0
    write: float = 5.0
    # upper bound for one pay() call, enforced by the processor
    total: float = 15.0


class GatewayRetry(BaseModel):
    """Transport-level retries inside an adapter (same idempotency key)."""
    max: int = 2
    base_backoff: float = 0.2


class PayoutRetrySettings(BaseModel):
    max_retries: int = 3
    base_backoff_seconds: float = 300.0
    max_backoff_seconds: float = 6 * 3600.0


class WorkerSettings(BaseModel):
    scheduler_concurrency: int = 4
    processor_concurrency: int = 4
    batch_size: int = 200
    # PROCESSING payouts older than this are looked up at the provider
    stale_processing_seconds: int = 900


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    api_version: Optional[str] = None


class BankTransferSettings(BaseModel):
    base_url: str = "https://bank-gateway.local/api/v1"
    api_key: Optional[str] = None


class SettlementSettings(BaseSettings):
    currency: str = "USD"
    minor_unit_exponent: int = 2

    default_rate: Optional[Decimal] = Decimal("0.10")
    tier_rates: dict[str, Decimal] = Field(
        default_factory=lambda: {
            "basic": Decimal("0.10"),
            "premium": Decimal("0.08"),
            "enterprise": Decimal("0.05"),
        }
    )
    default_minimum_payout: Decimal = Decimal("50")

    retry: PayoutRetrySettings = Field(default_factory=PayoutRetrySettings)
    timeouts: GatewayTimeouts = Field(default_factory=GatewayTimeouts)
    gateway_retry: GatewayRetry = Field(default_factory=GatewayRetry)
    workers: WorkerSettings = Field(default_factory=WorkerSettings)

    stripe: StripeSettings = Field(default_factory=StripeSettings)
    bank_transfer: BankTransferSettings = Field(default_factory=BankTransferSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SETTLEMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    @field_validator("default_rate")
    @classmethod
    def _check_default_rate(cls, v):
        if v is not None and not (Decimal("0") <= v <= Decimal("1")):
            raise ValueError("default_rate must lie in [0, 1]")
        return v


settlement_settings = SettlementSettings()
