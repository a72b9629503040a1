# Overview: Rate card used by the estimator (EUR, ex VAT).

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

D = Decimal


@dataclass(frozen=True)
class GlazingRate:
    fixed_charge: Decimal
    rate_per_sqm: Decimal


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class PriceCatalog:
    """
    Immutable rate card.

    All prices are ex VAT in the catalog currency. Swap the whole catalog
    (dataclasses.replace) rather than mutating it so concurrent estimates
    never observe a half-updated card.
    """
    currency: str = "EUR"
    vat_rate: Decimal = D("0.23")

    base_fixed_charge: Decimal = D("4500.00")
    base_rate_per_sqm: Decimal = D("1200.00")

    cladding_rate_per_sqm: Decimal = D("85.00")

    bathroom_half_price: Decimal = D("4500.00")
    bathroom_three_quarter_price: Decimal = D("6500.00")

    switch_price: Decimal = D("45.00")
    socket_price: Decimal = D("60.00")
    downlight_price: Decimal = D("55.00")
    heater_price: Decimal = D("350.00")
    undersink_heater_price: Decimal = D("250.00")
    electric_boiler_price: Decimal = D("1200.00")

    glazing: Mapping[str, GlazingRate] = field(default_factory=lambda: _frozen({
        "windows": GlazingRate(D("150.00"), D("450.00")),
        "externalDoors": GlazingRate(D("350.00"), D("650.00")),
        "skylights": GlazingRate(D("250.00"), D("900.00")),
    }))

    internal_door_price: Decimal = D("400.00")
    wall_finish_rates: Mapping[str, Decimal] = field(default_factory=lambda: _frozen({
        "panel": D("35.00"),
        "skimPaint": D("28.00"),
    }))

    flooring_rates: Mapping[str, Decimal] = field(default_factory=lambda: _frozen({
        "wooden": D("55.00"),
        "tile": D("70.00"),
    }))

    delivery_free_km: Decimal = D("30")
    delivery_rate_per_km: Decimal = D("2.50")

    esp_insulation_rate_per_sqm: Decimal = D("45.00")
    render_rate_per_sqm: Decimal = D("65.00")
    steel_door_price: Decimal = D("1100.00")

    def with_tax(self, *, vat_rate: Decimal | None = None, currency: str | None = None) -> "PriceCatalog":
        return replace(
            self,
            vat_rate=self.vat_rate if vat_rate is None else vat_rate,
            currency=self.currency if currency is None else currency,
        )


DEFAULT_CATALOG = PriceCatalog()
