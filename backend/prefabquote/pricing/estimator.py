# Overview: Pure price estimator; configuration -> itemized, VAT-aware breakdown.

"""
Price Estimator

WHY: The quoted price must be reproducible. Same configuration, same catalog,
same breakdown, byte for byte.

ROUNDING:
- Each line item is computed exactly in Decimal and rounded once (half-up, 2dp)
  when it is emitted. Nothing is re-rounded afterwards.
- A component is the exact sum of its lines; the subtotal is the exact sum of
  all lines. So subtotal == sum(components) == sum(items) always holds.
- VAT is rounded once from the subtotal; total = subtotal + VAT.

No I/O and no shared state; input is assumed to have passed validation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from .catalog import DEFAULT_CATALOG, PriceCatalog
from .configuration import BuildingConfiguration
from .money import ZERO, measure_to_wire, money_to_wire, round_money

# Component categories, in breakdown order
BASE_STRUCTURE = "base_structure"
CLADDING = "cladding"
BATHROOM = "bathroom"
ELECTRICAL = "electrical"
GLAZING = "glazing"
INTERNAL = "internal"
FLOORING = "flooring"
DELIVERY = "delivery"
EXTRAS = "extras"

CATEGORIES = (
    BASE_STRUCTURE,
    CLADDING,
    BATHROOM,
    ELECTRICAL,
    GLAZING,
    INTERNAL,
    FLOORING,
    DELIVERY,
    EXTRAS,
)

_GLAZING_LABELS = {"windows": "Window", "externalDoors": "External door", "skylights": "Skylight"}
_FLOOR_LABELS = {"wooden": "Wooden flooring", "tile": "Tiled flooring"}
_FINISH_LABELS = {"panel": "Panel wall finish", "skimPaint": "Skim and paint wall finish"}


@dataclass(frozen=True)
class LineItem:
    category: str
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    unit: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "category": self.category,
            "description": self.description,
            "quantity": measure_to_wire(self.quantity),
            "unitPrice": money_to_wire(self.unit_price),
            "totalPrice": money_to_wire(self.total_price),
        }
        if self.unit:
            data["unit"] = self.unit
        if self.notes:
            data["notes"] = self.notes
        return data


@dataclass(frozen=True)
class PriceBreakdown:
    currency: str
    include_vat: bool
    vat_rate: Decimal
    items: tuple[LineItem, ...]
    components: dict[str, Decimal] = field(hash=False)
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "currency": self.currency,
            "includeVat": self.include_vat,
            "subtotal": money_to_wire(self.subtotal),
            "vatRate": float(self.vat_rate),
            "vatAmount": money_to_wire(self.vat_amount),
            "total": money_to_wire(self.total),
            "components": {name: money_to_wire(value) for name, value in self.components.items()},
            "items": [item.to_dict() for item in self.items],
        }


class _Lines:
    """Accumulates rounded line items."""

    def __init__(self):
        self.items: list[LineItem] = []

    def add(
        self,
        category: str,
        description: str,
        quantity: Decimal | int,
        unit_price: Decimal,
        *,
        unit: str | None = None,
        notes: str | None = None,
    ) -> None:
        quantity = Decimal(quantity)
        if quantity == ZERO:
            return
        self.items.append(LineItem(
            category=category,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            total_price=round_money(quantity * unit_price),
            unit=unit,
            notes=notes,
        ))

    def add_amount(self, category: str, description: str, amount: Decimal, *, notes: str | None = None) -> None:
        """A one-off charge whose price is not quantity x rate."""
        amount = round_money(amount)
        if amount == ZERO:
            return
        self.items.append(LineItem(
            category=category,
            description=description,
            quantity=Decimal(1),
            unit_price=amount,
            total_price=amount,
            notes=notes,
        ))


def _dims(width: Decimal, height: Decimal) -> str:
    return f"{width}m x {height}m"


def _base(lines: _Lines, config: BuildingConfiguration, catalog: PriceCatalog) -> None:
    lines.add(BASE_STRUCTURE, "Base structure fixed charge", 1, catalog.base_fixed_charge)
    lines.add(
        BASE_STRUCTURE,
        "Base structure",
        config.footprint_sqm,
        catalog.base_rate_per_sqm,
        unit="sqm",
        notes=_dims(config.width_m, config.depth_m),
    )


def _cladding(lines: _Lines, config: BuildingConfiguration, catalog: PriceCatalog) -> None:
    lines.add(CLADDING, "External cladding", config.cladding_area_sqm, catalog.cladding_rate_per_sqm, unit="sqm")


def _bathroom(lines: _Lines, config: BuildingConfiguration, catalog: PriceCatalog) -> None:
    lines.add(BATHROOM, "Half bathroom", config.bathroom_half, catalog.bathroom_half_price)
    lines.add(BATHROOM, "Three-quarter bathroom", config.bathroom_three_quarter, catalog.bathroom_three_quarter_price)


def _electrical(lines: _Lines, config: BuildingConfiguration, catalog: PriceCatalog) -> None:
    lines.add(ELECTRICAL, "Light switch", config.switches, catalog.switch_price)
    lines.add(ELECTRICAL, "Double socket", config.sockets, catalog.socket_price)
    lines.add(ELECTRICAL, "Downlight", config.downlights, catalog.downlight_price)
    lines.add(ELECTRICAL, "Electric heater", config.heaters, catalog.heater_price)
    lines.add(ELECTRICAL, "Under-sink water heater", config.undersink_heaters, catalog.undersink_heater_price)
    lines.add(ELECTRICAL, "Electric boiler", config.electric_boilers, catalog.electric_boiler_price)


def _glazing(lines: _Lines, config: BuildingConfiguration, catalog: PriceCatalog) -> None:
    for category, items in config.glazing().items():
        rate = catalog.glazing[category]
        for item in items:
            lines.add_amount(
                GLAZING,
                _GLAZING_LABELS[category],
                rate.fixed_charge + item.area_sqm * rate.rate_per_sqm,
                notes=_dims(item.width_m, item.height_m),
            )


def _internal(lines: _Lines, config: BuildingConfiguration, catalog: PriceCatalog) -> None:
    lines.add(INTERNAL, "Internal door", config.internal_doors, catalog.internal_door_price)
    if config.wall_finish != "none":
        lines.add(
            INTERNAL,
            _FINISH_LABELS[config.wall_finish],
            config.wall_area_sqm,
            catalog.wall_finish_rates[config.wall_finish],
            unit="sqm",
        )


def _flooring(lines: _Lines, config: BuildingConfiguration, catalog: PriceCatalog) -> None:
    if config.floor_type == "none":
        return
    lines.add(
        FLOORING,
        _FLOOR_LABELS[config.floor_type],
        config.floor_area_sqm,
        catalog.flooring_rates[config.floor_type],
        unit="sqm",
    )


def _delivery(lines: _Lines, config: BuildingConfiguration, catalog: PriceCatalog) -> None:
    if config.delivery_distance_km is None:
        # No distance given: a pre-agreed flat delivery cost is charged as-is
        lines.add_amount(DELIVERY, "Delivery", config.delivery_cost)
        return
    chargeable = max(ZERO, config.delivery_distance_km - catalog.delivery_free_km)
    lines.add(
        DELIVERY,
        "Delivery",
        chargeable,
        catalog.delivery_rate_per_km,
        unit="km",
        notes=f"first {catalog.delivery_free_km} km free",
    )


def _extras(lines: _Lines, config: BuildingConfiguration, catalog: PriceCatalog) -> None:
    lines.add(EXTRAS, "EPS insulation upgrade", config.esp_insulation_sqm, catalog.esp_insulation_rate_per_sqm, unit="sqm")
    lines.add(EXTRAS, "External render", config.render_sqm, catalog.render_rate_per_sqm, unit="sqm")
    lines.add(EXTRAS, "Steel security door", config.steel_doors, catalog.steel_door_price)
    for extra in config.other_extras:
        lines.add_amount(EXTRAS, extra.title, extra.cost)


_COMPONENTS = (_base, _cladding, _bathroom, _electrical, _glazing, _internal, _flooring, _delivery, _extras)


def estimate(
    config: BuildingConfiguration,
    include_vat: bool = True,
    catalog: PriceCatalog = DEFAULT_CATALOG,
) -> PriceBreakdown:
    lines = _Lines()
    for component in _COMPONENTS:
        component(lines, config, catalog)

    components = {name: ZERO for name in CATEGORIES}
    for item in lines.items:
        components[item.category] += item.total_price
    components = {name: round_money(value) for name, value in components.items()}

    subtotal = round_money(sum((item.total_price for item in lines.items), ZERO))
    vat_amount = round_money(subtotal * catalog.vat_rate) if include_vat else round_money(ZERO)

    return PriceBreakdown(
        currency=catalog.currency,
        include_vat=include_vat,
        vat_rate=catalog.vat_rate,
        items=tuple(lines.items),
        components=components,
        subtotal=subtotal,
        vat_amount=vat_amount,
        total=subtotal + vat_amount,
    )
