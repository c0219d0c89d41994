from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Sequence

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ..dictionaries import LEGACY_CONDITION_OPTIONS
from ..errors import InvalidInputError
from .condition import Condition, OptionSelectedCondition, UnparsableCondition


class ServiceType(str, Enum):
    moving = "MOVING"
    cleaning = "CLEANING"
    delivery = "DELIVERY"
    packing = "PACKING"
    service = "SERVICE"


def coerce_service_type(value: ServiceType | str) -> ServiceType:
    try:
        return ServiceType(value)
    except ValueError:
        known = ", ".join(member.value for member in ServiceType)
        raise InvalidInputError(
            "service_type", f"unknown service type {value!r}, expected one of {known}"
        ) from None


class RuleCategory(str, Enum):
    minimum = "MINIMUM"
    fixed = "FIXED"
    surcharge = "SURCHARGE"
    discount = "DISCOUNT"
    percentage = "PERCENTAGE"


class RuleScope(str, Enum):
    global_ = "GLOBAL"
    pickup = "PICKUP"
    delivery = "DELIVERY"
    both = "BOTH"


class Rule(BaseModel):
    """A business pricing directive, consumed read-only by the engine.

    ``value`` is signed as authored: ``+10`` on a percent-based rule is a 10%
    increase, ``-15`` a 15% discount; fixed rules carry an absolute amount.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        allow_inf_nan=False,
    )

    id: str
    name: str
    value: float
    percent_based: bool = False
    category: RuleCategory
    service_type: ServiceType
    condition: Condition | UnparsableCondition | None = None
    is_active: bool = True
    priority: int = 0
    valid_from: date | None = None
    valid_to: date | None = None
    scope: RuleScope = RuleScope.global_
    description: str | None = None
    tags: Sequence[str] = Field(default_factory=tuple)

    @field_validator("category", mode="before")
    @classmethod
    def _legacy_category(cls, value: Any) -> Any:
        if isinstance(value, str) and value.upper() == "REDUCTION":
            return RuleCategory.discount
        return value

    @field_validator("condition", mode="wrap")
    @classmethod
    def _parse_condition(cls, value: Any, handler, info: ValidationInfo):
        if value is None or value == {}:
            return None
        try:
            return handler(value)
        except ValidationError as exc:
            legacy = legacy_condition(value)
            if legacy is not None:
                return legacy
            if info.context and info.context.get("strict_conditions"):
                raise
            return UnparsableCondition(raw=value, error=_summarize(exc))

    @model_validator(mode="after")
    def _check_sign_convention(self) -> "Rule":
        if self.category is RuleCategory.discount and self.value > 0:
            raise ValueError(f"discount rule '{self.name}' must carry a negative value, got {self.value}")
        if self.category is RuleCategory.surcharge and self.value < 0:
            raise ValueError(f"surcharge rule '{self.name}' must carry a positive value, got {self.value}")
        if self.category is RuleCategory.minimum:
            if self.percent_based:
                raise ValueError(f"minimum price rule '{self.name}' cannot be percent based")
            if self.value < 0:
                raise ValueError(f"minimum price rule '{self.name}' cannot be negative")
        if self.valid_from and self.valid_to and self.valid_from > self.valid_to:
            raise ValueError(f"rule '{self.name}' has valid_from after valid_to")
        return self

    def in_effect(self, on: date | None) -> bool:
        if on is None:
            return True
        if self.valid_from is not None and on < self.valid_from:
            return False
        if self.valid_to is not None and on > self.valid_to:
            return False
        return True


def legacy_condition(value: Any) -> OptionSelectedCondition | None:
    """Translate a pre-typed condition blob into an option predicate."""
    if isinstance(value, str) and value.strip():
        return OptionSelectedCondition(option=value.strip())
    if not isinstance(value, dict):
        return None
    kind = value.get("type")
    for key, item in value.items():
        if key == "type" or not isinstance(item, str):
            continue
        option = LEGACY_CONDITION_OPTIONS.get((kind, key, item))
        if option:
            return OptionSelectedCondition(option=option)
    return None


def _summarize(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid condition")
    return f"{location}: {message}" if location else message


__all__ = [
    "Rule",
    "RuleCategory",
    "RuleScope",
    "ServiceType",
    "coerce_service_type",
    "legacy_condition",
]
