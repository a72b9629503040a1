# Overview: Pure pricing layer; no Flask, no storage.

from .catalog import DEFAULT_CATALOG, GlazingRate, PriceCatalog
from .configuration import BuildingConfiguration, ExtraItem, GlazingItem
from .estimator import CATEGORIES, LineItem, PriceBreakdown, estimate
from .validation import (
    ValidationResult,
    parse_configuration,
    validate_configuration,
    validate_customer,
)

__all__ = [
    "DEFAULT_CATALOG", "GlazingRate", "PriceCatalog",
    "BuildingConfiguration", "ExtraItem", "GlazingItem",
    "CATEGORIES", "LineItem", "PriceBreakdown", "estimate",
    "ValidationResult", "parse_configuration", "validate_configuration", "validate_customer",
]
