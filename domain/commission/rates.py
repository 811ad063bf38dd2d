"""
Commission rate resolution.

``RateTable`` is an immutable snapshot of every rate input (per-vendor rules,
tier rates, platform default). A resolver never sees a half-updated table:
refreshing rates means building a new table and a new resolver.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence

from domain.common.exceptions import ConfigurationError
from domain.vendor.entity import SubscriptionTier, VendorPayoutProfile, ensure_utc


ZERO = Decimal("0")
ONE = Decimal("1")


class RateSource(str, Enum):
    CATEGORY_OVERRIDE = "category_override"
    VENDOR_OVERRIDE = "vendor_override"
    SUBSCRIPTION_TIER = "subscription_tier"
    CUSTOM_RATE = "custom_rate"
    PLATFORM_DEFAULT = "platform_default"


def _check_rate(rate: Decimal, **context) -> Decimal:
    if not (ZERO <= rate <= ONE):
        raise ConfigurationError(f"Commission rate out of range [0, 1]: {rate}", details={"rate": str(rate), **context})
    return rate


@dataclass(frozen=True)
class RateRule:
    """Vendor specific rate, optionally scoped to one category, valid in [effective_from, effective_to)."""

    vendor_id: str
    rate: Decimal
    effective_from: datetime
    effective_to: Optional[datetime] = None
    category_id: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        _check_rate(self.rate, vendor_id=self.vendor_id, category_id=self.category_id)
        object.__setattr__(self, "effective_from", ensure_utc(self.effective_from))
        object.__setattr__(self, "effective_to", ensure_utc(self.effective_to))
        if self.effective_to is not None and self.effective_to <= self.effective_from:
            raise ConfigurationError(
                "Rate rule ends before it starts",
                vendor_id=self.vendor_id,
                details={"effective_from": self.effective_from.isoformat(), "effective_to": self.effective_to.isoformat()},
            )

    def is_effective(self, as_of: datetime) -> bool:
        if as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of < self.effective_to


@dataclass(frozen=True)
class RateTable:
    default_rate: Optional[Decimal] = None
    tier_rates: Mapping[SubscriptionTier, Decimal] = field(default_factory=dict)
    rules: tuple[RateRule, ...] = ()

    def __post_init__(self):
        if self.default_rate is not None:
            _check_rate(self.default_rate, source="default")
        frozen = {}
        for tier, rate in dict(self.tier_rates).items():
            frozen[SubscriptionTier(tier)] = _check_rate(Decimal(rate), tier=str(tier))
        object.__setattr__(self, "tier_rates", MappingProxyType(frozen))
        object.__setattr__(self, "rules", tuple(self.rules))

    @classmethod
    def build(
        cls,
        *,
        default_rate: Optional[Decimal],
        tier_rates: Mapping[str, Decimal],
        rules: Iterable[RateRule] = (),
    ) -> "RateTable":
        return cls(
            default_rate=default_rate,
            tier_rates={SubscriptionTier(k): Decimal(v) for k, v in tier_rates.items()},
            rules=tuple(rules),
        )

    def rules_for(self, vendor_id: str) -> list[RateRule]:
        return [r for r in self.rules if r.vendor_id == vendor_id]


@dataclass(frozen=True)
class ResolvedRate:
    rate: Decimal
    source: RateSource
    rule_id: Optional[int] = None


class RateResolver:
    """Pure rate lookup over a fixed ``RateTable``."""

    def __init__(self, table: RateTable) -> None:
        self._table = table

    @property
    def table(self) -> RateTable:
        return self._table

    def resolve(
        self,
        vendor: VendorPayoutProfile,
        as_of: datetime,
        category_ids: Sequence[str] = (),
    ) -> ResolvedRate:
        as_of = ensure_utc(as_of)
        effective = [r for r in self._table.rules_for(vendor.vendor_id) if r.is_effective(as_of)]

        wanted = set(category_ids)
        by_category = [r for r in effective if r.category_id is not None and r.category_id in wanted]
        if by_category:
            # latest effective_from wins, category id breaks ties
            best = sorted(by_category, key=lambda r: (r.effective_from, r.category_id), reverse=True)[0]
            return ResolvedRate(best.rate, RateSource.CATEGORY_OVERRIDE, best.id)

        vendor_wide = [r for r in effective if r.category_id is None]
        if vendor_wide:
            best = max(vendor_wide, key=lambda r: r.effective_from)
            return ResolvedRate(best.rate, RateSource.VENDOR_OVERRIDE, best.id)

        if vendor.subscription_tier is not None:
            tier_rate = self._table.tier_rates.get(vendor.subscription_tier)
            if tier_rate is not None:
                return ResolvedRate(tier_rate, RateSource.SUBSCRIPTION_TIER)

        if vendor.custom_rate is not None:
            return ResolvedRate(_check_rate(vendor.custom_rate, vendor_id=vendor.vendor_id), RateSource.CUSTOM_RATE)

        if self._table.default_rate is not None:
            return ResolvedRate(self._table.default_rate, RateSource.PLATFORM_DEFAULT)

        raise ConfigurationError(
            "No commission rate configured for vendor",
            vendor_id=vendor.vendor_id,
            details={"as_of": as_of.isoformat(), "category_ids": list(category_ids)},
        )
