# Overview: Configuration, customer and payment input validation; reports every violation.

"""
Configuration Validator

WHY: An invalid configuration must fail here, loudly and completely, instead of
pricing as zero downstream. Every violated field is reported with a stable code
so a caller can render all problems at once.

CHECK ORDER (configuration):
1. numeric fields present/typed/non-negative
2. width/depth within [2, 15] m, height > 0
3. glazing list caps and item dimensions
4. floor area > 0 whenever floor type != "none"
5. extras list cap and item shape
6. enumerations (product type, floor type, wall finish)

Side-effect free.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping

from ..errors import FieldError, ValidationError
from .configuration import (
    FLOOR_TYPES,
    GLAZING_CATEGORIES,
    PRODUCT_TYPES,
    WALL_FINISHES,
    BuildingConfiguration,
)
from .money import ZERO, has_places, to_decimal

# Stable error codes
REQUIRED_FIELD = "REQUIRED_FIELD"
NOT_A_NUMBER = "NOT_A_NUMBER"
NOT_AN_INTEGER = "NOT_AN_INTEGER"
NEGATIVE_VALUE = "NEGATIVE_VALUE"
OUT_OF_RANGE = "OUT_OF_RANGE"
TOO_MANY_ITEMS = "TOO_MANY_ITEMS"
INVALID_DIMENSION = "INVALID_DIMENSION"
INVALID_AREA = "INVALID_AREA"
INVALID_CHOICE = "INVALID_CHOICE"
INVALID_EMAIL = "INVALID_EMAIL"
INVALID_EIRCODE = "INVALID_EIRCODE"
INVALID_AMOUNT = "INVALID_AMOUNT"
INVALID_DATETIME = "INVALID_DATETIME"
TOO_PRECISE = "TOO_PRECISE"
INVALID_TEXT = "INVALID_TEXT"
LARGE_SIZE_WARNING = "LARGE_SIZE_WARNING"

MIN_SPAN_M = Decimal("2")
MAX_SPAN_M = Decimal("15")
GLAZING_LIMITS = {"windows": 20, "externalDoors": 5, "skylights": 10}
MAX_EXTRAS = 20
LARGE_FOOTPRINT_SQM = Decimal("50")

# Upper bounds keep every line, subtotal and ledger amount inside Numeric(12,2)
MAX_AREA_SQM = Decimal("1000")
MAX_COUNT = Decimal("100")
MAX_DISTANCE_KM = Decimal("2000")
MAX_CHARGE = Decimal("100000")
MEASURE_PLACES = 3
MONEY_PLACES = 2

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# Routing key + unique identifier, e.g. A65 F4E2, D6W 1W23
EIRCODE_REGEX = re.compile(r"^(?:D6W|[AC-FHKNPRTV-Y][0-9]{2})\s?[0-9AC-FHKNPRTV-Y]{4}$", re.IGNORECASE)


@dataclass
class ValidationResult:
    errors: list[FieldError] = field(default_factory=list)
    warnings: list[FieldError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self, message: str) -> None:
        if self.errors:
            raise ValidationError(message, self.errors)

    def to_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


class _Checker:
    def __init__(self):
        self.result = ValidationResult()

    def error(self, path: str, code: str, message: str) -> None:
        self.result.errors.append(FieldError(path, code, message))

    def warn(self, path: str, code: str, message: str) -> None:
        self.result.warnings.append(FieldError(path, code, message))

    def section(self, payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
        value = payload.get(key)
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            self.error(key, REQUIRED_FIELD, f"{key} must be an object")
            return {}
        return value

    def number(
        self,
        data: Mapping[str, Any],
        key: str,
        path: str,
        *,
        required: bool = False,
        integer: bool = False,
        maximum: Decimal | None = None,
        places: int = MEASURE_PLACES,
    ) -> Decimal | None:
        """Returns the parsed value when present, numeric and in bounds, else None."""
        value = data.get(key)
        if value is None:
            if required:
                self.error(path, REQUIRED_FIELD, f"{path} is required")
            return None
        try:
            num = to_decimal(value)
        except TypeError:
            self.error(path, NOT_A_NUMBER, f"{path} must be a number")
            return None
        if integer and num != num.to_integral_value():
            self.error(path, NOT_AN_INTEGER, f"{path} must be a whole number")
            return None
        if num < ZERO:
            self.error(path, NEGATIVE_VALUE, f"{path} must be >= 0")
            return None
        if maximum is not None and num > maximum:
            self.error(path, OUT_OF_RANGE, f"{path} must be <= {maximum}")
            return None
        if not has_places(num, places):
            self.error(path, TOO_PRECISE, f"{path} allows at most {places} decimal places")
            return None
        return num

    def items(self, data: Mapping[str, Any], key: str, path: str) -> list:
        value = data.get(key)
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            self.error(path, REQUIRED_FIELD, f"{path} must be a list")
            return []
        return list(value)


def validate_configuration(payload: Mapping[str, Any] | BuildingConfiguration) -> ValidationResult:
    """Validate a configurator payload (or an already-built configuration)."""
    if isinstance(payload, BuildingConfiguration):
        payload = payload.to_dict()
    c = _Checker()
    if not isinstance(payload, Mapping):
        c.error("configuration", REQUIRED_FIELD, "configuration must be an object")
        return c.result

    size = c.section(payload, "size")
    cladding = c.section(payload, "cladding")
    bathroom = c.section(payload, "bathroom")
    electrical = c.section(payload, "electrical")
    wall = c.section(payload, "internalWall")
    floor = c.section(payload, "floor")
    glazing = c.section(payload, "glazing")
    delivery = c.section(payload, "delivery")
    extras = c.section(payload, "extras")

    # 1. numeric presence / type / sign
    width = c.number(size, "widthM", "size.widthM", required=True)
    depth = c.number(size, "depthM", "size.depthM", required=True)
    height = c.number(size, "heightM", "size.heightM", maximum=MAX_SPAN_M)
    c.number(cladding, "areaSqm", "cladding.areaSqm", maximum=MAX_AREA_SQM)
    c.number(bathroom, "half", "bathroom.half", integer=True, maximum=MAX_COUNT)
    c.number(bathroom, "threeQuarter", "bathroom.threeQuarter", integer=True, maximum=MAX_COUNT)
    for key in ("switches", "sockets", "downlights", "heaters", "undersinkHeaters", "electricBoilers"):
        c.number(electrical, key, f"electrical.{key}", integer=True, maximum=MAX_COUNT)
    c.number(payload, "heaters", "heaters", integer=True, maximum=MAX_COUNT)
    c.number(payload, "internalDoors", "internalDoors", integer=True, maximum=MAX_COUNT)
    c.number(wall, "areaSqM", "internalWall.areaSqM", maximum=MAX_AREA_SQM)
    floor_area = c.number(floor, "areaSqM", "floor.areaSqM", maximum=MAX_AREA_SQM)
    c.number(delivery, "distanceKm", "delivery.distanceKm", maximum=MAX_DISTANCE_KM)
    c.number(delivery, "cost", "delivery.cost", maximum=MAX_CHARGE, places=MONEY_PLACES)
    c.number(extras, "espInsulation", "extras.espInsulation", maximum=MAX_AREA_SQM)
    c.number(extras, "render", "extras.render", maximum=MAX_AREA_SQM)
    c.number(extras, "steelDoor", "extras.steelDoor", integer=True, maximum=MAX_COUNT)

    # 2. ranges
    for path, value in (("size.widthM", width), ("size.depthM", depth)):
        if value is not None and not (MIN_SPAN_M <= value <= MAX_SPAN_M):
            c.error(path, OUT_OF_RANGE, f"{path} must be between {MIN_SPAN_M} and {MAX_SPAN_M} m")
    if height is not None and height == ZERO:
        c.error("size.heightM", OUT_OF_RANGE, "size.heightM must be > 0")

    # 3. glazing
    for category in GLAZING_CATEGORIES:
        path = f"glazing.{category}"
        entries = c.items(glazing, category, path)
        limit = GLAZING_LIMITS[category]
        if len(entries) > limit:
            c.error(path, TOO_MANY_ITEMS, f"{path} allows at most {limit} items")
        for index, entry in enumerate(entries):
            item_path = f"{path}[{index}]"
            if not isinstance(entry, Mapping):
                c.error(item_path, REQUIRED_FIELD, f"{item_path} must be an object")
                continue
            for key in ("widthM", "heightM"):
                dim = c.number(entry, key, f"{item_path}.{key}", required=True, maximum=MAX_SPAN_M)
                if dim is not None and dim == ZERO:
                    c.error(f"{item_path}.{key}", INVALID_DIMENSION, f"{item_path}.{key} must be > 0")

    # 4. floor
    floor_type = floor.get("type") or "none"
    # a present-but-invalid area was already reported in step 1
    area_reported = floor.get("areaSqM") is not None and floor_area is None
    if floor_type != "none" and not area_reported and (floor_area is None or floor_area == ZERO):
        c.error("floor.areaSqM", INVALID_AREA, "floor.areaSqM must be > 0 when a floor type is selected")

    # 5. extras
    other = c.items(extras, "other", "extras.other")
    if len(other) > MAX_EXTRAS:
        c.error("extras.other", TOO_MANY_ITEMS, f"extras.other allows at most {MAX_EXTRAS} items")
    for index, entry in enumerate(other):
        item_path = f"extras.other[{index}]"
        if not isinstance(entry, Mapping):
            c.error(item_path, REQUIRED_FIELD, f"{item_path} must be an object")
            continue
        title = entry.get("title")
        if not isinstance(title, str) or not title.strip():
            c.error(f"{item_path}.title", REQUIRED_FIELD, f"{item_path}.title is required")
        c.number(entry, "cost", f"{item_path}.cost", required=True, maximum=MAX_CHARGE, places=MONEY_PLACES)

    # 6. enumerations
    product_type = payload.get("productType") or "garden-room"
    if product_type not in PRODUCT_TYPES:
        c.error("productType", INVALID_CHOICE, f"productType must be one of {list(PRODUCT_TYPES)}")
    if floor_type not in FLOOR_TYPES:
        c.error("floor.type", INVALID_CHOICE, f"floor.type must be one of {list(FLOOR_TYPES)}")
    finish = wall.get("finish") or "none"
    if finish not in WALL_FINISHES:
        c.error("internalWall.finish", INVALID_CHOICE, f"internalWall.finish must be one of {list(WALL_FINISHES)}")

    if width is not None and depth is not None and width * depth > LARGE_FOOTPRINT_SQM:
        c.warn("size", LARGE_SIZE_WARNING, "Large floor area may require planning permission")

    return c.result


def parse_configuration(payload: Mapping[str, Any]) -> BuildingConfiguration:
    """Validate then build. Raises ValidationError listing every violation."""
    validate_configuration(payload).raise_for_errors("Product configuration validation failed")
    return BuildingConfiguration.from_dict(payload)


# Column widths of the quote and ledger tables
NAME_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 255
ADDRESS_MAX_LENGTH = 255
PHONE_PREFIX_MAX_LENGTH = 8
PHONE_NUMBER_MAX_LENGTH = 32
TIMEFRAME_MAX_LENGTH = 64
RECORDED_BY_MAX_LENGTH = 100
NOTE_MAX_LENGTH = 2000


def check_optional_text(value: Any, path: str, max_length: int, errors: list[FieldError]) -> str | None:
    """
    Optional free text: None, or a string of at most max_length characters.

    Returns the stripped string (None when blank). Anything else appends an
    INVALID_TEXT error and returns None.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        errors.append(FieldError(path, INVALID_TEXT, f"{path} must be a string"))
        return None
    text = value.strip()
    if len(text) > max_length:
        errors.append(FieldError(path, INVALID_TEXT, f"{path} must be at most {max_length} characters"))
        return None
    return text or None


def validate_customer(customer: Any) -> ValidationResult:
    c = _Checker()
    if not isinstance(customer, Mapping):
        c.error("customer", REQUIRED_FIELD, "customer must be an object")
        return c.result
    errors = c.result.errors

    for key, label in (("firstName", "First name"), ("lastName", "Last name")):
        value = customer.get(key)
        if not isinstance(value, str) or not value.strip():
            c.error(f"customer.{key}", REQUIRED_FIELD, f"{label} is required")
        else:
            check_optional_text(value, f"customer.{key}", NAME_MAX_LENGTH, errors)

    email = customer.get("email")
    if not isinstance(email, str) or not EMAIL_REGEX.match(email.strip()):
        c.error("customer.email", INVALID_EMAIL, "Valid email address is required")
    else:
        check_optional_text(email, "customer.email", EMAIL_MAX_LENGTH, errors)

    eircode = customer.get("eircode")
    if not isinstance(eircode, str) or not EIRCODE_REGEX.match(eircode.strip()):
        c.error("customer.eircode", INVALID_EIRCODE, "Valid Irish Eircode is required")

    for key, limit in (
        ("addressLine1", ADDRESS_MAX_LENGTH),
        ("addressLine2", ADDRESS_MAX_LENGTH),
        ("town", NAME_MAX_LENGTH),
        ("county", NAME_MAX_LENGTH),
    ):
        check_optional_text(customer.get(key), f"customer.{key}", limit, errors)

    phone = customer.get("phone")
    if phone is None:
        phone = {}
    elif not isinstance(phone, Mapping):
        c.error("customer.phone", REQUIRED_FIELD, "customer.phone must be an object")
        phone = {}
    check_optional_text(phone.get("countryPrefix"), "customer.phone.countryPrefix", PHONE_PREFIX_MAX_LENGTH, errors)
    check_optional_text(phone.get("phoneNum"), "customer.phone.phoneNum", PHONE_NUMBER_MAX_LENGTH, errors)

    return c.result
