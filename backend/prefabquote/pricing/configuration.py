# Overview: Typed building configuration parsed from the configurator wire shape.

"""
BuildingConfiguration

WHY: The configurator posts a nested camelCase document. The estimator needs a
typed, immutable view of it with Decimal arithmetic so the same input always
prices the same way.

Parsing here is lenient about missing optional sections (they default to
zero/none) but assumes values have already passed validate_configuration().
Use parse_configuration() in validation.py to do both in one step.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping

from .money import ZERO, measure_to_wire, money_to_wire, to_decimal

PRODUCT_TYPES = ("garden-room", "house-extension", "house-build")
FLOOR_TYPES = ("none", "wooden", "tile")
WALL_FINISHES = ("none", "panel", "skimPaint")
GLAZING_CATEGORIES = ("windows", "externalDoors", "skylights")

DEFAULT_HEIGHT_M = Decimal("2.5")


def _section(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, Mapping) else {}


def _dec(section: Mapping[str, Any], key: str, default: Decimal = ZERO) -> Decimal:
    value = section.get(key)
    if value is None:
        return default
    return to_decimal(value)


def _int(section: Mapping[str, Any], key: str) -> int:
    value = section.get(key)
    if value is None:
        return 0
    return int(to_decimal(value))


@dataclass(frozen=True)
class GlazingItem:
    width_m: Decimal
    height_m: Decimal

    @property
    def area_sqm(self) -> Decimal:
        return self.width_m * self.height_m

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GlazingItem":
        return cls(width_m=to_decimal(data["widthM"]), height_m=to_decimal(data["heightM"]))

    def to_dict(self) -> dict:
        return {"widthM": measure_to_wire(self.width_m), "heightM": measure_to_wire(self.height_m)}


@dataclass(frozen=True)
class ExtraItem:
    """Free-form extra line item: a title and a literal cost."""
    title: str
    cost: Decimal

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExtraItem":
        return cls(title=str(data["title"]).strip(), cost=to_decimal(data["cost"]))

    def to_dict(self) -> dict:
        return {"title": self.title, "cost": money_to_wire(self.cost)}


@dataclass(frozen=True)
class BuildingConfiguration:
    width_m: Decimal
    depth_m: Decimal
    height_m: Decimal = DEFAULT_HEIGHT_M
    product_type: str = "garden-room"

    cladding_area_sqm: Decimal = ZERO

    bathroom_half: int = 0
    bathroom_three_quarter: int = 0

    switches: int = 0
    sockets: int = 0
    downlights: int = 0
    heaters: int = 0
    undersink_heaters: int = 0
    electric_boilers: int = 0

    internal_doors: int = 0
    wall_finish: str = "none"
    wall_area_sqm: Decimal = ZERO

    floor_type: str = "none"
    floor_area_sqm: Decimal = ZERO

    windows: tuple[GlazingItem, ...] = ()
    external_doors: tuple[GlazingItem, ...] = ()
    skylights: tuple[GlazingItem, ...] = ()

    delivery_distance_km: Decimal | None = None
    delivery_cost: Decimal = ZERO

    esp_insulation_sqm: Decimal = ZERO
    render_sqm: Decimal = ZERO
    steel_doors: int = 0
    other_extras: tuple[ExtraItem, ...] = field(default_factory=tuple)

    notes: str = ""

    @property
    def footprint_sqm(self) -> Decimal:
        return self.width_m * self.depth_m

    def glazing(self) -> dict[str, tuple[GlazingItem, ...]]:
        return {
            "windows": self.windows,
            "externalDoors": self.external_doors,
            "skylights": self.skylights,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "BuildingConfiguration":
        size = _section(payload, "size")
        cladding = _section(payload, "cladding")
        bathroom = _section(payload, "bathroom")
        electrical = _section(payload, "electrical")
        wall = _section(payload, "internalWall")
        floor = _section(payload, "floor")
        glazing = _section(payload, "glazing")
        delivery = _section(payload, "delivery")
        extras = _section(payload, "extras")

        distance = delivery.get("distanceKm")

        return cls(
            product_type=payload.get("productType") or "garden-room",
            width_m=to_decimal(size["widthM"]),
            depth_m=to_decimal(size["depthM"]),
            height_m=_dec(size, "heightM", DEFAULT_HEIGHT_M),
            cladding_area_sqm=_dec(cladding, "areaSqm"),
            bathroom_half=_int(bathroom, "half"),
            bathroom_three_quarter=_int(bathroom, "threeQuarter"),
            switches=_int(electrical, "switches"),
            sockets=_int(electrical, "sockets"),
            downlights=_int(electrical, "downlights"),
            # Older payloads carry heaters at the top level
            heaters=_int(electrical, "heaters") + _int(payload, "heaters"),
            undersink_heaters=_int(electrical, "undersinkHeaters"),
            electric_boilers=_int(electrical, "electricBoilers"),
            internal_doors=_int(payload, "internalDoors"),
            wall_finish=wall.get("finish") or "none",
            wall_area_sqm=_dec(wall, "areaSqM"),
            floor_type=floor.get("type") or "none",
            floor_area_sqm=_dec(floor, "areaSqM"),
            windows=tuple(GlazingItem.from_dict(i) for i in glazing.get("windows") or ()),
            external_doors=tuple(GlazingItem.from_dict(i) for i in glazing.get("externalDoors") or ()),
            skylights=tuple(GlazingItem.from_dict(i) for i in glazing.get("skylights") or ()),
            delivery_distance_km=None if distance is None else to_decimal(distance),
            delivery_cost=_dec(delivery, "cost"),
            esp_insulation_sqm=_dec(extras, "espInsulation"),
            render_sqm=_dec(extras, "render"),
            steel_doors=_int(extras, "steelDoor"),
            other_extras=tuple(ExtraItem.from_dict(i) for i in extras.get("other") or ()),
            notes=str(payload.get("notes") or ""),
        )

    def to_dict(self) -> dict:
        """Wire/storage shape; from_dict(to_dict(c)) == c."""
        return {
            "productType": self.product_type,
            "size": {
                "widthM": measure_to_wire(self.width_m),
                "depthM": measure_to_wire(self.depth_m),
                "heightM": measure_to_wire(self.height_m),
            },
            "cladding": {"areaSqm": measure_to_wire(self.cladding_area_sqm)},
            "bathroom": {"half": self.bathroom_half, "threeQuarter": self.bathroom_three_quarter},
            "electrical": {
                "switches": self.switches,
                "sockets": self.sockets,
                "downlights": self.downlights,
                "heaters": self.heaters,
                "undersinkHeaters": self.undersink_heaters,
                "electricBoilers": self.electric_boilers,
            },
            "internalDoors": self.internal_doors,
            "internalWall": {"finish": self.wall_finish, "areaSqM": measure_to_wire(self.wall_area_sqm)},
            "floor": {"type": self.floor_type, "areaSqM": measure_to_wire(self.floor_area_sqm)},
            "glazing": {name: [i.to_dict() for i in items] for name, items in self.glazing().items()},
            "delivery": {
                "distanceKm": measure_to_wire(self.delivery_distance_km),
                "cost": money_to_wire(self.delivery_cost),
            },
            "extras": {
                "espInsulation": measure_to_wire(self.esp_insulation_sqm),
                "render": measure_to_wire(self.render_sqm),
                "steelDoor": self.steel_doors,
                "other": [e.to_dict() for e in self.other_extras],
            },
            "notes": self.notes,
        }
