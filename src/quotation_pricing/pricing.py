from __future__ import annotations

import logging
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from .aggregator import RuleAggregator
from .errors import InvalidInputError
from .models.estimation import EstimationInput
from .models.quote import BaseConstants, PricingContext, Quote
from .models.rule import Rule, ServiceType, coerce_service_type
from .volume import VolumeEstimator

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def round_money(amount: float) -> float:
    """Round to currency precision, half-up (2.005 -> 2.01)."""
    return float(Decimal(repr(amount)).quantize(_CENT, rounding=ROUND_HALF_UP))


class PricingOrchestrator:
    """Turns an estimation request plus the active rule set into a quote.

    The orchestrator holds no mutable state: one instance can serve concurrent
    requests. Rules and base constants are point-in-time snapshots supplied by
    the caller.
    """

    def __init__(
        self,
        *,
        estimator: VolumeEstimator | None = None,
        aggregator: RuleAggregator | None = None,
        floor_price: float = 0.0,
    ) -> None:
        self._estimator = estimator or VolumeEstimator()
        self._aggregator = aggregator or RuleAggregator()
        self._floor_price = floor_price

    def estimate_volume(self, estimation: EstimationInput) -> float:
        return self._estimator.estimate(estimation)

    def compute_quote(
        self,
        estimation: EstimationInput,
        rules: Iterable[Rule],
        service_type: ServiceType | str,
        context: PricingContext,
        base_constants: BaseConstants,
    ) -> Quote:
        service_type = coerce_service_type(service_type)
        volume = self._estimator.estimate(estimation)
        self._validate_context(context)

        add_ons_cost = self._add_ons_cost(context, base_constants, service_type)
        base_cost = round_money(
            volume * base_constants.price_per_m3
            + context.distance_km * base_constants.price_per_km
            + context.workers * base_constants.price_per_worker
            + context.workers * context.duration_hours * base_constants.price_per_worker_hour
            + float(estimation.surface) * base_constants.price_per_m2
            + base_constants.flat_fee
            + add_ons_cost
        )

        breakdown = self._aggregator.aggregate(rules, service_type, context.rule_context(volume))
        percentage_adjustment = round_money(base_cost * breakdown.total_percentage / 100)
        fixed_adjustment = round_money(breakdown.total_fixed)
        final_price = round_money(base_cost + percentage_adjustment + fixed_adjustment)

        updates: dict[str, object] = {}
        if breakdown.minimum_price is not None and final_price < breakdown.minimum_price:
            final_price = round_money(breakdown.minimum_price)
            updates["minimum_applied"] = True
        if final_price < self._floor_price:
            updates["warnings"] = [
                *breakdown.warnings,
                f"Final price {final_price:.2f} raised to the floor price {self._floor_price:.2f}",
            ]
            final_price = round_money(self._floor_price)
        if updates:
            breakdown = breakdown.model_copy(update=updates)

        logger.info(
            "Computed quote",
            extra={
                "service_type": service_type.value,
                "volume": volume,
                "base_cost": base_cost,
                "final_price": final_price,
                "applied_rules": len(breakdown.applied_rules),
                "minimum_applied": breakdown.minimum_applied,
            },
        )

        return Quote(
            service_type=service_type,
            volume=volume,
            base_cost=base_cost,
            add_ons_cost=add_ons_cost,
            percentage_adjustment=percentage_adjustment,
            fixed_adjustment=fixed_adjustment,
            final_price=final_price,
            breakdown=breakdown,
        )

    def _validate_context(self, context: PricingContext) -> None:
        if not math.isfinite(context.distance_km) or context.distance_km < 0:
            raise InvalidInputError("distance_km", "distance must be zero or a positive number of km")
        if context.workers < 0:
            raise InvalidInputError("workers", "number of workers cannot be negative")
        if not math.isfinite(context.duration_hours) or context.duration_hours < 0:
            raise InvalidInputError("duration_hours", "duration must be zero or a positive number of hours")

    def _add_ons_cost(
        self,
        context: PricingContext,
        base_constants: BaseConstants,
        service_type: ServiceType,
    ) -> float:
        total = 0.0
        for add_on in dict.fromkeys(context.add_ons):
            price = base_constants.add_on_prices.get(add_on)
            if price is None:
                raise InvalidInputError(
                    "add_ons",
                    f"{add_on.value.lower()} is not offered for {service_type.value.lower()} quotes",
                )
            total += price
        return round_money(total)


_DEFAULT_ORCHESTRATOR = PricingOrchestrator()


def compute_quote(
    estimation: EstimationInput,
    rules: Iterable[Rule],
    service_type: ServiceType | str,
    context: PricingContext,
    base_constants: BaseConstants,
) -> Quote:
    return _DEFAULT_ORCHESTRATOR.compute_quote(estimation, rules, service_type, context, base_constants)


__all__ = ["PricingOrchestrator", "compute_quote", "round_money"]
