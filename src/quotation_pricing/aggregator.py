from __future__ import annotations

import logging
import math
from typing import Iterable

from .dictionaries import DEFAULT_PERCENTAGE_THRESHOLDS, PercentageThresholds
from .models.condition import RuleContext, UnparsableCondition
from .models.quote import ExcludedRule, ExclusionReason, PriceBreakdown
from .models.rule import Rule, RuleCategory, ServiceType, coerce_service_type

logger = logging.getLogger(__name__)


class RuleAggregator:
    """Sums the price adjustments of the rules that apply to one job.

    Percentages are accumulated, not compounded. Totals above the configured
    thresholds are reported as warnings and never clamped.
    """

    def __init__(self, *, thresholds: PercentageThresholds = DEFAULT_PERCENTAGE_THRESHOLDS) -> None:
        self._thresholds = thresholds

    def aggregate(
        self,
        rules: Iterable[Rule],
        service_type: ServiceType | str,
        context: RuleContext,
    ) -> PriceBreakdown:
        service_type = coerce_service_type(service_type)
        candidates = sorted(
            (rule for rule in rules if rule.is_active and rule.service_type is service_type),
            key=lambda rule: -rule.priority,
        )

        applied: list[Rule] = []
        excluded: list[ExcludedRule] = []
        warnings: list[str] = []
        percentages: list[float] = []
        fixed_amounts: list[float] = []
        minimum_rule: Rule | None = None

        for rule in candidates:
            if not rule.in_effect(context.job_date):
                excluded.append(
                    ExcludedRule(
                        rule=rule,
                        reason=ExclusionReason.out_of_validity,
                        detail=f"not in effect on {context.job_date.isoformat()}",
                    )
                )
                continue

            condition = rule.condition
            if isinstance(condition, UnparsableCondition):
                message = f"Rule '{rule.name}' ({rule.id}) ignored: unparsable condition ({condition.error})"
                logger.warning(
                    "Rule condition could not be parsed",
                    extra={"rule_id": rule.id, "rule_name": rule.name, "error": condition.error},
                )
                warnings.append(message)
                excluded.append(
                    ExcludedRule(
                        rule=rule,
                        reason=ExclusionReason.condition_unparsable,
                        detail=condition.error,
                    )
                )
                continue
            if condition is not None and not condition.matches(context):
                excluded.append(ExcludedRule(rule=rule, reason=ExclusionReason.condition_not_met))
                continue

            if rule.category is RuleCategory.minimum:
                if minimum_rule is None or rule.value > minimum_rule.value:
                    minimum_rule = rule
                continue

            applied.append(rule)
            if rule.percent_based:
                percentages.append(rule.value)
            else:
                fixed_amounts.append(rule.value)

        total_percentage = math.fsum(percentages)
        warnings.extend(self._threshold_warnings(total_percentage))

        return PriceBreakdown(
            total_percentage=total_percentage,
            total_fixed=math.fsum(fixed_amounts),
            applied_rules=applied,
            excluded_rules=excluded,
            warnings=warnings,
            minimum_price=minimum_rule.value if minimum_rule else None,
            minimum_rule=minimum_rule,
        )

    def _threshold_warnings(self, total_percentage: float) -> list[str]:
        warnings: list[str] = []
        if total_percentage > self._thresholds.warning:
            warnings.append(
                f"Total percentage adjustment {total_percentage:g}% exceeds {self._thresholds.warning:g}%"
            )
        if total_percentage > self._thresholds.critical:
            warnings.append(
                f"Total percentage adjustment {total_percentage:g}% exceeds {self._thresholds.critical:g}%:"
                " review the rule set"
            )
        return warnings


_DEFAULT_AGGREGATOR = RuleAggregator()


def aggregate_rules(
    rules: Iterable[Rule],
    service_type: ServiceType | str,
    context: RuleContext,
) -> PriceBreakdown:
    return _DEFAULT_AGGREGATOR.aggregate(rules, service_type, context)


__all__ = ["RuleAggregator", "aggregate_rules"]
