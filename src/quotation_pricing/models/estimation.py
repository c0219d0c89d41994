from __future__ import annotations

from enum import Enum
from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FurnishingLevel(str, Enum):
    light = "LIGHT"
    standard = "STANDARD"
    full = "FULL"


class FridgeType(str, Enum):
    none = "NONE"
    simple = "SIMPLE"
    american = "AMERICAN"


class PianoType(str, Enum):
    none = "NONE"
    upright = "UPRIGHT"
    grand = "GRAND"


class PackingDensity(str, Enum):
    minimal = "MINIMAL"
    standard = "STANDARD"
    dense = "DENSE"
    very_dense = "VERY_DENSE"


class _FormModel(BaseModel):
    # Payloads come straight from the estimation form, which posts camelCase.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Appliances(_FormModel):
    fridge: FridgeType = FridgeType.none
    washing_machine: bool = False
    dishwasher: bool = False
    dryer: bool = False
    oven: bool = False
    freezer: bool = False


class SpecialItems(_FormModel):
    piano: PianoType = PianoType.none
    safe: bool = False
    large_sofa: bool = False
    bulky_furniture: bool = False


class Storage(_FormModel):
    cellar: bool = False
    garage: bool = False


class Bedroom(_FormModel):
    level: FurnishingLevel = FurnishingLevel.standard


class EstimationInput(_FormModel):
    surface: float | None = Field(default=None, description="Living surface in m²")
    living_room_level: FurnishingLevel = FurnishingLevel.standard
    bedrooms: Sequence[Bedroom] = Field(default_factory=tuple)
    has_equipped_kitchen: bool = False
    appliances: Appliances = Field(default_factory=Appliances)
    special_items: SpecialItems = Field(default_factory=SpecialItems)
    storage: Storage = Field(default_factory=Storage)
    density: PackingDensity | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "surface": 50,
                "livingRoomLevel": "STANDARD",
                "bedrooms": [{"level": "STANDARD"}, {"level": "LIGHT"}],
                "hasEquippedKitchen": True,
                "appliances": {"fridge": "SIMPLE", "washingMachine": True},
                "specialItems": {"piano": "NONE"},
                "storage": {"cellar": True},
                "density": "STANDARD",
            }
        },
    )


class VolumeBreakdown(BaseModel):
    """Intermediate figures of one volume estimation, kept for audits."""

    surface: float
    surface_volume: float
    rooms_volume: float
    objects_volume: float
    weighted_base: float
    density_coefficient: float
    packing_factor: float
    raw_volume: float
    lower_bound: float
    upper_bound: float
    clamped: bool
    volume: float


__all__ = [
    "Appliances",
    "Bedroom",
    "EstimationInput",
    "FridgeType",
    "FurnishingLevel",
    "PackingDensity",
    "PianoType",
    "SpecialItems",
    "Storage",
    "VolumeBreakdown",
]
