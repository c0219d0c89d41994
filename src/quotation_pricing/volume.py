from __future__ import annotations

import logging
import math
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal

from .dictionaries import DEFAULT_VOLUME_TABLES, VolumeTables
from .errors import InvalidInputError
from .models.estimation import EstimationInput, VolumeBreakdown

logger = logging.getLogger(__name__)


class VolumeEstimator:
    """Deterministic moving-volume estimate from a housing description.

    The estimate blends three views of the same home (living surface, declared
    rooms, declared objects), scales it by packing density and the packing
    allowance, then clamps it to ``[surface * 0.25, surface * 0.8]`` so that
    unusual combinations (a studio with a grand piano) stay plausible.
    """

    def __init__(self, *, tables: VolumeTables = DEFAULT_VOLUME_TABLES) -> None:
        self._tables = tables

    @property
    def tables(self) -> VolumeTables:
        return self._tables

    def estimate(self, estimation: EstimationInput) -> float:
        return self.explain(estimation).volume

    def explain(self, estimation: EstimationInput) -> VolumeBreakdown:
        tables = self._tables
        surface = self._validated_surface(estimation.surface)

        surface_volume = surface * tables.surface_coefficient
        rooms_volume = self._rooms_volume(estimation)
        objects_volume = self._objects_volume(estimation)
        weighted_base = (
            surface_volume * tables.surface_weight
            + rooms_volume * tables.rooms_weight
            + objects_volume * tables.objects_weight
        )

        density = tables.default_density
        if estimation.density is not None:
            density = tables.density.get(estimation.density, tables.default_density)

        raw_volume = weighted_base * density * tables.packing_factor
        lower = surface * tables.min_volume_ratio
        upper = surface * tables.max_volume_ratio
        bounded = min(max(raw_volume, lower), upper)
        volume = _round_within(bounded, lower, upper, tables.rounding_step)

        breakdown = VolumeBreakdown(
            surface=surface,
            surface_volume=surface_volume,
            rooms_volume=rooms_volume,
            objects_volume=objects_volume,
            weighted_base=weighted_base,
            density_coefficient=density,
            packing_factor=tables.packing_factor,
            raw_volume=raw_volume,
            lower_bound=lower,
            upper_bound=upper,
            clamped=bounded != raw_volume,
            volume=volume,
        )
        logger.debug(
            "Estimated volume",
            extra={"surface": surface, "volume": volume, "clamped": breakdown.clamped},
        )
        return breakdown

    def _validated_surface(self, surface: float | None) -> float:
        tables = self._tables
        if surface is None:
            raise InvalidInputError("surface", "surface is required to estimate the volume")
        if not math.isfinite(surface) or surface <= 0:
            raise InvalidInputError("surface", "surface must be a positive number of m²")
        if surface < tables.min_surface or surface > tables.max_surface:
            raise InvalidInputError(
                "surface",
                f"surface must be between {tables.min_surface:g} and {tables.max_surface:g} m²",
            )
        return float(surface)

    def _rooms_volume(self, estimation: EstimationInput) -> float:
        tables = self._tables
        total = tables.living_room[estimation.living_room_level]
        for bedroom in estimation.bedrooms:
            total += tables.bedroom[bedroom.level]
        if estimation.has_equipped_kitchen:
            total += tables.equipped_kitchen
        return total

    def _objects_volume(self, estimation: EstimationInput) -> float:
        tables = self._tables
        appliances = estimation.appliances
        special = estimation.special_items
        storage = estimation.storage

        total = tables.fridge.get(appliances.fridge, 0.0)
        flags = (
            (appliances.washing_machine, tables.washing_machine),
            (appliances.dishwasher, tables.dishwasher),
            (appliances.dryer, tables.dryer),
            (appliances.oven, tables.oven),
            (appliances.freezer, tables.freezer),
            (special.safe, tables.safe),
            (special.large_sofa, tables.large_sofa),
            (special.bulky_furniture, tables.bulky_furniture),
            (storage.cellar, tables.cellar),
            (storage.garage, tables.garage),
        )
        total += tables.piano.get(special.piano, 0.0)
        for selected, contribution in flags:
            if selected:
                total += contribution
        return total


def _round_within(value: float, lower: float, upper: float, step: str) -> float:
    # Half-up rounding may step past a clamp bound; round toward the inside then.
    quantum = Decimal(step)
    rounded = Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    if rounded > Decimal(repr(upper)):
        rounded = Decimal(repr(upper)).quantize(quantum, rounding=ROUND_FLOOR)
    elif rounded < Decimal(repr(lower)):
        rounded = Decimal(repr(lower)).quantize(quantum, rounding=ROUND_CEILING)
    return float(rounded)


_DEFAULT_ESTIMATOR = VolumeEstimator()


def estimate_volume(estimation: EstimationInput) -> float:
    return _DEFAULT_ESTIMATOR.estimate(estimation)


__all__ = ["VolumeEstimator", "estimate_volume"]
