from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .condition import RuleContext
from .rule import Rule, ServiceType


class AddOn(str, Enum):
    packing = "PACKING"
    storage = "STORAGE"
    insurance = "INSURANCE"


class BaseConstants(BaseModel):
    """Unit prices for the linear base-cost model, owned by configuration."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        allow_inf_nan=False,
    )

    price_per_m3: float = Field(ge=0)
    price_per_km: float = Field(ge=0)
    price_per_worker: float = Field(ge=0)
    price_per_worker_hour: float = Field(default=0.0, ge=0)
    price_per_m2: float = Field(default=0.0, ge=0)
    flat_fee: float = Field(default=0.0, ge=0)
    add_on_prices: Mapping[AddOn, float] = Field(default_factory=dict)


class PricingContext(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    scheduled_date: date | None = None
    distance_km: float = 0.0
    workers: int = 0
    duration_hours: float = 0.0
    options: Sequence[str] = Field(default_factory=tuple)
    add_ons: Sequence[AddOn] = Field(default_factory=tuple)

    def rule_context(self, volume: float | None) -> RuleContext:
        return RuleContext(
            job_date=self.scheduled_date,
            distance_km=self.distance_km,
            volume=volume,
            options=frozenset(self.options),
        )


class ExclusionReason(str, Enum):
    condition_not_met = "CONDITION_NOT_MET"
    condition_unparsable = "CONDITION_UNPARSABLE"
    out_of_validity = "OUT_OF_VALIDITY"


class ExcludedRule(BaseModel):
    rule: Rule
    reason: ExclusionReason
    detail: str | None = None


class PriceBreakdown(BaseModel):
    total_percentage: float = 0.0
    total_fixed: float = 0.0
    applied_rules: Sequence[Rule] = Field(default_factory=list)
    excluded_rules: Sequence[ExcludedRule] = Field(default_factory=list)
    warnings: Sequence[str] = Field(default_factory=list)
    minimum_price: float | None = None
    minimum_rule: Rule | None = None
    minimum_applied: bool = False


class Quote(BaseModel):
    service_type: ServiceType
    volume: float
    base_cost: float
    add_ons_cost: float = 0.0
    percentage_adjustment: float
    fixed_adjustment: float
    final_price: float
    currency: str = "EUR"
    breakdown: PriceBreakdown


__all__ = [
    "AddOn",
    "BaseConstants",
    "ExcludedRule",
    "ExclusionReason",
    "PriceBreakdown",
    "PricingContext",
    "Quote",
]
