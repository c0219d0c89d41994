from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Annotated, Any, Literal, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


@dataclass(frozen=True)
class RuleContext:
    """Job attributes that rule conditions are evaluated against."""

    job_date: date | None = None
    distance_km: float | None = None
    volume: float | None = None
    options: frozenset[str] = field(default_factory=frozenset)


def _within(value: float | None, lower: float | None, upper: float | None) -> bool:
    if value is None:
        return False
    if lower is not None and value < lower:
        return False
    if upper is not None and value > upper:
        return False
    return True


class _Predicate(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    def matches(self, context: RuleContext) -> bool:
        raise NotImplementedError


class _Bounded(_Predicate):
    @model_validator(mode="after")
    def _check_bounds(self):
        lower, upper = self.bounds()
        if lower is None and upper is None:
            raise ValueError(f"{self.type} condition needs at least one bound")
        if lower is not None and upper is not None and lower > upper:
            raise ValueError(f"{self.type} condition has its lower bound above its upper bound")
        return self

    def bounds(self) -> tuple[Any, Any]:
        raise NotImplementedError


class DateRangeCondition(_Bounded):
    type: Literal["date_range"] = "date_range"
    start: date | None = None
    end: date | None = None
    weekdays: Sequence[Annotated[int, Field(ge=0, le=6)]] | None = None

    def bounds(self) -> tuple[date | None, date | None]:
        if self.start is None and self.end is None and self.weekdays:
            # A weekday filter alone is a valid, open-ended range.
            return date.min, date.max
        return self.start, self.end

    def matches(self, context: RuleContext) -> bool:
        job_date = context.job_date
        if job_date is None:
            return False
        if self.start is not None and job_date < self.start:
            return False
        if self.end is not None and job_date > self.end:
            return False
        if self.weekdays is not None and job_date.weekday() not in self.weekdays:
            return False
        return True


class DistanceThresholdCondition(_Bounded):
    type: Literal["distance"] = "distance"
    min_km: float | None = Field(default=None, ge=0)
    max_km: float | None = Field(default=None, ge=0)

    def bounds(self) -> tuple[float | None, float | None]:
        return self.min_km, self.max_km

    def matches(self, context: RuleContext) -> bool:
        return _within(context.distance_km, self.min_km, self.max_km)


class VolumeThresholdCondition(_Bounded):
    type: Literal["volume"] = "volume"
    min_m3: float | None = Field(default=None, ge=0)
    max_m3: float | None = Field(default=None, ge=0)

    def bounds(self) -> tuple[float | None, float | None]:
        return self.min_m3, self.max_m3

    def matches(self, context: RuleContext) -> bool:
        return _within(context.volume, self.min_m3, self.max_m3)


class OptionSelectedCondition(_Predicate):
    type: Literal["option"] = "option"
    option: str = Field(min_length=1)

    def matches(self, context: RuleContext) -> bool:
        return self.option in context.options


class CompositeCondition(_Predicate):
    type: Literal["composite"] = "composite"
    operator: Literal["AND", "OR"] = "AND"
    conditions: Sequence[Condition] = Field(min_length=1)

    def matches(self, context: RuleContext) -> bool:
        evaluations = (condition.matches(context) for condition in self.conditions)
        if self.operator == "AND":
            return all(evaluations)
        return any(evaluations)


Condition = Annotated[
    Union[
        DateRangeCondition,
        DistanceThresholdCondition,
        VolumeThresholdCondition,
        OptionSelectedCondition,
        CompositeCondition,
    ],
    Field(discriminator="type"),
]

CompositeCondition.model_rebuild()


class UnparsableCondition(BaseModel):
    """Placeholder for a stored condition payload that is not a valid predicate.

    It never matches; the aggregator excludes the owning rule and reports it.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["unparsable"] = "unparsable"
    raw: Any = None
    error: str

    def matches(self, context: RuleContext) -> bool:
        return False


__all__ = [
    "CompositeCondition",
    "Condition",
    "DateRangeCondition",
    "DistanceThresholdCondition",
    "OptionSelectedCondition",
    "RuleContext",
    "UnparsableCondition",
    "VolumeThresholdCondition",
]
