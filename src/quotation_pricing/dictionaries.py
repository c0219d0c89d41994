from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from .models.estimation import FridgeType, FurnishingLevel, PackingDensity, PianoType


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class VolumeTables:
    """Volume contributions (m³) and coefficients used by the estimator.

    Injected into ``VolumeEstimator`` so that a region or a unit system can use
    its own tables without code changes.
    """

    surface_coefficient: float = 0.45
    surface_weight: float = 0.4
    rooms_weight: float = 0.4
    objects_weight: float = 0.2

    living_room: Mapping[FurnishingLevel, float] = field(
        default_factory=lambda: _frozen(
            {FurnishingLevel.light: 8.0, FurnishingLevel.standard: 12.0, FurnishingLevel.full: 16.0}
        )
    )
    bedroom: Mapping[FurnishingLevel, float] = field(
        default_factory=lambda: _frozen(
            {FurnishingLevel.light: 6.0, FurnishingLevel.standard: 9.0, FurnishingLevel.full: 12.0}
        )
    )
    equipped_kitchen: float = 4.0

    fridge: Mapping[FridgeType, float] = field(
        default_factory=lambda: _frozen(
            {FridgeType.none: 0.0, FridgeType.simple: 1.0, FridgeType.american: 2.5}
        )
    )
    washing_machine: float = 0.6
    dishwasher: float = 0.5
    dryer: float = 0.6
    oven: float = 0.4
    freezer: float = 1.0

    piano: Mapping[PianoType, float] = field(
        default_factory=lambda: _frozen(
            {PianoType.none: 0.0, PianoType.upright: 7.0, PianoType.grand: 14.0}
        )
    )
    safe: float = 3.0
    large_sofa: float = 2.0
    bulky_furniture: float = 4.0

    cellar: float = 6.0
    garage: float = 10.0

    density: Mapping[PackingDensity, float] = field(
        default_factory=lambda: _frozen(
            {
                PackingDensity.minimal: 0.85,
                PackingDensity.standard: 1.0,
                PackingDensity.dense: 1.2,
                PackingDensity.very_dense: 1.35,
            }
        )
    )
    default_density: float = 1.0
    # Foisonnement: packing material and unusable truck space.
    packing_factor: float = 1.12

    min_volume_ratio: float = 0.25
    max_volume_ratio: float = 0.8
    min_surface: float = 10.0
    max_surface: float = 500.0
    rounding_step: str = "0.1"


@dataclass(frozen=True)
class PercentageThresholds:
    warning: float = 50.0
    critical: float = 100.0


DEFAULT_VOLUME_TABLES = VolumeTables()

DEFAULT_PERCENTAGE_THRESHOLDS = PercentageThresholds()


# Stored rules written before typed conditions existed carry loose blobs such as
# {"type": "building", "elevator": "unavailable"}. Each (type, key, value)
# triple names the customer option the blob stood for.
LEGACY_CONDITION_OPTIONS: Mapping[tuple[str, str, str], str] = _frozen(
    {
        ("vehicle_access", "zone", "pedestrian"): "pedestrian_zone",
        ("vehicle_access", "road", "narrow"): "narrow_inaccessible_street",
        ("vehicle_access", "parking", "difficult"): "difficult_parking",
        ("vehicle_access", "parking", "limited"): "limited_parking",
        ("vehicle_access", "traffic", "complex"): "complex_traffic",
        ("building", "elevator", "unavailable"): "elevator_unavailable",
        ("building", "elevator", "small"): "elevator_unsuitable_size",
        ("building", "elevator", "forbidden"): "elevator_forbidden_moving",
        ("building", "stairs", "difficult"): "difficult_stairs",
        ("building", "corridors", "narrow"): "narrow_corridors",
        ("distance", "carrying", "long"): "long_carrying_distance",
        ("distance", "access", "indirect"): "indirect_exit",
        ("distance", "access", "multilevel"): "complex_multilevel_access",
        ("security", "access", "strict"): "access_control",
        ("security", "permit", "required"): "administrative_permit",
        ("security", "time", "restricted"): "time_restrictions",
        ("security", "floor", "fragile"): "fragile_floor",
        ("equipment", "lift", "required"): "furniture_lift_required",
        ("service", "handling", "bulky"): "bulky_furniture",
        ("service", "handling", "disassembly"): "furniture_disassembly",
        ("service", "handling", "reassembly"): "furniture_reassembly",
        ("service", "handling", "piano"): "transport_piano",
        ("service", "packing", "departure"): "professional_packing_departure",
        ("service", "packing", "arrival"): "professional_unpacking_arrival",
        ("service", "packing", "supplies"): "packing_supplies",
        ("service", "packing", "artwork"): "artwork_packing",
        ("service", "protection", "fragile"): "fragile_valuable_items",
        ("service", "protection", "heavy"): "heavy_items",
        ("service", "protection", "insurance"): "additional_insurance",
        ("service", "protection", "inventory"): "photo_inventory",
        ("service", "storage", "temporary"): "temporary_storage_service",
        ("service", "cleaning", "post_move"): "post_move_cleaning",
        ("service", "admin", "management"): "administrative_management",
        ("service", "transport", "animals"): "animal_transport",
    }
)


__all__ = [
    "DEFAULT_PERCENTAGE_THRESHOLDS",
    "DEFAULT_VOLUME_TABLES",
    "LEGACY_CONDITION_OPTIONS",
    "PercentageThresholds",
    "VolumeTables",
]
