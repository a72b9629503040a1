# Overview: Service-layer operations for quotes; composes validation, pricing, numbering and storage.

"""
Quote Service

CREATE FLOW:
1. Validate configuration and customer together (all problems reported at once)
2. Estimate the price (pure)
3. Allocate the quote number (own atomic increment, retried on conflict)
4. Insert configuration + quote inside one store.atomic() block

Allocation happens before the insert transaction so a counter conflict never
holds the quote write open. If step 4 fails the number is burned, leaving a gap.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from flask import current_app

from ..errors import FieldError, NotFoundError, ValidationError
from ..pricing import (
    DEFAULT_CATALOG,
    BuildingConfiguration,
    PriceBreakdown,
    PriceCatalog,
    estimate,
    validate_configuration,
    validate_customer,
)
from ..pricing.money import ZERO, money_to_wire, round_money, to_decimal
from ..pricing.validation import (
    INVALID_CHOICE,
    NOT_AN_INTEGER,
    OUT_OF_RANGE,
    TIMEFRAME_MAX_LENGTH,
    ValidationResult,
    check_optional_text,
)
from ..storage.base import CONFIGURATIONS, QUOTES, Page, RecordStore
from ..time_utils import to_utc_z, utcnow
from .payment_service import PAYMENT_STATUSES, STATUS_PRE_QUOTE
from .quote_number_service import allocate_quote_number

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
SORTABLE_FIELDS = ("created_at", "submitted_at", "expires_at", "quote_number", "payment_status", "total_paid")

# Wire sort keys accepted alongside the snake_case ones
_SORT_ALIASES = {
    "createdAt": "created_at",
    "submittedAt": "submitted_at",
    "expiresAt": "expires_at",
    "quoteNumber": "quote_number",
    "paymentStatus": "payment_status",
    "totalPaid": "total_paid",
}


# =============================================================================
# CATALOG
# =============================================================================

def catalog_from_config(config: Mapping[str, Any]) -> PriceCatalog:
    """Default rate card with the VAT rate and currency from app config."""
    return DEFAULT_CATALOG.with_tax(
        vat_rate=to_decimal(config.get("VAT_RATE", DEFAULT_CATALOG.vat_rate)),
        currency=config.get("CURRENCY", DEFAULT_CATALOG.currency),
    )


def current_catalog() -> PriceCatalog:
    return catalog_from_config(current_app.config)


# =============================================================================
# ESTIMATES
# =============================================================================

def estimate_configuration(
    payload: Any,
    *,
    include_vat: bool = True,
    catalog: Optional[PriceCatalog] = None,
) -> tuple[PriceBreakdown, ValidationResult]:
    """
    Validate then price a configurator payload.

    Returns the breakdown and the validation result (for its warnings).
    Raises ValidationError when the configuration is invalid.
    """
    result = validate_configuration(payload)
    result.raise_for_errors("Product configuration validation failed")
    config = BuildingConfiguration.from_dict(payload)
    return estimate(config, include_vat=include_vat, catalog=catalog or DEFAULT_CATALOG), result


# =============================================================================
# QUOTE CREATION
# =============================================================================

def _parse_expected_installments(value: Any, errors: list[FieldError]) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        errors.append(FieldError(
            "expectedInstallments", NOT_AN_INTEGER, "expectedInstallments must be a positive integer"
        ))
        return None
    return value


def _customer_fields(customer: Mapping[str, Any]) -> dict:
    phone = customer.get("phone") if isinstance(customer.get("phone"), Mapping) else {}

    def _text(value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    return {
        "first_name": _text(customer.get("firstName")),
        "last_name": _text(customer.get("lastName")),
        "email": _text(customer.get("email")).lower(),
        "phone_prefix": _text(phone.get("countryPrefix")),
        "phone_number": _text(phone.get("phoneNum")),
        "address_line1": _text(customer.get("addressLine1")),
        "address_line2": _text(customer.get("addressLine2")),
        "town": _text(customer.get("town")),
        "county": _text(customer.get("county")),
        "eircode": _text(customer.get("eircode")).upper(),
    }


def create_quote(
    store: RecordStore,
    configuration: Any,
    customer: Any,
    *,
    include_vat: bool = True,
    desired_install_timeframe: Optional[str] = None,
    expected_installments: Any = None,
    catalog: Optional[PriceCatalog] = None,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    now: Optional[datetime] = None,
) -> tuple[dict, dict, PriceBreakdown]:
    """
    Persist a quote for a configuration and customer.

    Returns:
        (quote record, configuration record, breakdown)

    Raises:
        ValidationError: configuration, customer or installment count invalid
        AllocationConflict: quote number could not be allocated after retries
        PersistenceError: the insert failed
    """
    catalog = catalog or DEFAULT_CATALOG
    config_result = validate_configuration(configuration)
    customer_result = validate_customer(customer)
    errors = config_result.errors + customer_result.errors
    installments = _parse_expected_installments(expected_installments, errors)
    timeframe = check_optional_text(
        desired_install_timeframe, "desiredInstallTimeframe", TIMEFRAME_MAX_LENGTH, errors
    )
    if errors:
        raise ValidationError("Quote validation failed", errors)

    config = BuildingConfiguration.from_dict(configuration)
    breakdown = estimate(config, include_vat=include_vat, catalog=catalog)

    now = now or utcnow()
    quote_number = allocate_quote_number(store, now)

    config_record = {
        "product_type": config.product_type,
        "configuration": config.to_dict(),
        "include_vat": include_vat,
        "currency": breakdown.currency,
        "vat_rate": breakdown.vat_rate,
        "subtotal": breakdown.subtotal,
        "vat_amount": breakdown.vat_amount,
        "total": breakdown.total,
        "created_at": now,
    }
    quote_record = {
        **_customer_fields(customer),
        "quote_number": quote_number,
        "desired_install_timeframe": timeframe,
        "payment_status": STATUS_PRE_QUOTE,
        "total_paid": round_money(ZERO),
        "expected_installments": installments,
        "last_payment_at": None,
        "expires_at": now + timedelta(days=retention_days),
        "submitted_at": now,
        "created_at": now,
        "updated_at": now,
    }

    with store.atomic():
        config_record["id"] = store.insert(CONFIGURATIONS, config_record)
        quote_record["configuration_id"] = config_record["id"]
        quote_record["id"] = store.insert(QUOTES, quote_record)

    logger.info("Created quote %s (%s %s)", quote_number, breakdown.currency, breakdown.total)
    return quote_record, config_record, breakdown


# =============================================================================
# QUOTE QUERIES
# =============================================================================

def get_quote(store: RecordStore, quote_id: str) -> dict:
    quote = store.find_by_id(QUOTES, quote_id)
    if quote is None:
        raise NotFoundError(QUOTES, quote_id)
    return quote


def get_quote_by_number(store: RecordStore, quote_number: str) -> dict:
    quote = store.find_one(QUOTES, {"quote_number": quote_number})
    if quote is None:
        raise NotFoundError(QUOTES, quote_number)
    return quote


def get_configuration(store: RecordStore, configuration_id: str) -> dict:
    record = store.find_by_id(CONFIGURATIONS, configuration_id)
    if record is None:
        raise NotFoundError(CONFIGURATIONS, configuration_id)
    return record


def get_quote_breakdown(store: RecordStore, quote_id: str, catalog: Optional[PriceCatalog] = None) -> PriceBreakdown:
    """
    Recompute the breakdown from the stored configuration.

    Uses the VAT rate and currency the quote was priced under, so the totals
    match the stored snapshot unless the rate card itself has changed.
    """
    quote = get_quote(store, quote_id)
    record = get_configuration(store, quote["configuration_id"])
    catalog = (catalog or DEFAULT_CATALOG).with_tax(
        vat_rate=to_decimal(record["vat_rate"]),
        currency=record["currency"],
    )
    config = BuildingConfiguration.from_dict(record["configuration"])
    return estimate(config, include_vat=record["include_vat"], catalog=catalog)


def list_quotes(
    store: RecordStore,
    *,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    """Paginated quote listing, optionally filtered by payment status."""
    errors = []
    if status is not None and status not in PAYMENT_STATUSES:
        errors.append(FieldError("status", INVALID_CHOICE, f"status must be one of {PAYMENT_STATUSES}"))
    if page < 1:
        errors.append(FieldError("page", OUT_OF_RANGE, "page must be >= 1"))
    if not (1 <= limit <= MAX_PAGE_SIZE):
        errors.append(FieldError("limit", OUT_OF_RANGE, f"limit must be between 1 and {MAX_PAGE_SIZE}"))
    sort_field = _SORT_ALIASES.get(sort_by, sort_by)
    if sort_field not in SORTABLE_FIELDS:
        errors.append(FieldError("sort_by", INVALID_CHOICE, f"sort_by must be one of {list(SORTABLE_FIELDS)}"))
    if sort_order not in ("asc", "desc"):
        errors.append(FieldError("sort_order", INVALID_CHOICE, "sort_order must be asc or desc"))
    if errors:
        raise ValidationError("Invalid quote listing parameters", errors)

    filters = {"payment_status": status} if status else {}
    total = store.count(QUOTES, filters)
    quotes = store.find(QUOTES, filters, sort=[(sort_field, sort_order)], page=Page(page, limit))
    return {
        "quotes": quotes,
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit),
    }


def get_quote_summary(store: RecordStore) -> dict:
    """Counts by status plus the quoted value and money received across all quotes."""
    by_status = {status: store.count(QUOTES, {"payment_status": status}) for status in PAYMENT_STATUSES}
    quotes = store.find(QUOTES)
    configuration_ids = [q["configuration_id"] for q in quotes]
    configurations = store.find(CONFIGURATIONS, {"id__in": configuration_ids}) if configuration_ids else []

    quoted_value = sum((to_decimal(c["total"]) for c in configurations), ZERO)
    total_paid = sum((to_decimal(q["total_paid"]) for q in quotes), ZERO)
    return {
        "totalQuotes": len(quotes),
        "byStatus": by_status,
        "quotedValue": money_to_wire(quoted_value),
        "totalPaid": money_to_wire(total_paid),
        "outstanding": money_to_wire(quoted_value - total_paid),
    }


# =============================================================================
# SERIALIZATION
# =============================================================================

def serialize_configuration(record: dict) -> dict:
    return {
        "id": record["id"],
        "productType": record["product_type"],
        "configuration": record["configuration"],
        "includeVat": record["include_vat"],
        "currency": record["currency"],
        "vatRate": float(to_decimal(record["vat_rate"])),
        "estimate": {
            "subtotal": money_to_wire(to_decimal(record["subtotal"])),
            "vatAmount": money_to_wire(to_decimal(record["vat_amount"])),
            "total": money_to_wire(to_decimal(record["total"])),
        },
        "createdAt": to_utc_z(record["created_at"]),
    }


def serialize_quote(quote: dict, configuration: Optional[dict] = None) -> dict:
    data = {
        "id": quote["id"],
        "quoteNumber": quote["quote_number"],
        "configurationId": quote["configuration_id"],
        "customer": {
            "firstName": quote["first_name"],
            "lastName": quote["last_name"],
            "email": quote["email"],
            "phone": {
                "countryPrefix": quote.get("phone_prefix"),
                "phoneNum": quote.get("phone_number"),
            },
            "addressLine1": quote.get("address_line1"),
            "addressLine2": quote.get("address_line2"),
            "town": quote.get("town"),
            "county": quote.get("county"),
            "eircode": quote["eircode"],
        },
        "desiredInstallTimeframe": quote.get("desired_install_timeframe"),
        "payment": {
            "status": quote["payment_status"],
            "totalPaid": money_to_wire(to_decimal(quote["total_paid"])),
            "expectedInstallments": quote.get("expected_installments"),
            "lastPaymentAt": to_utc_z(quote.get("last_payment_at")),
        },
        "expiresAt": to_utc_z(quote["expires_at"]),
        "submittedAt": to_utc_z(quote["submitted_at"]),
        "createdAt": to_utc_z(quote["created_at"]),
        "updatedAt": to_utc_z(quote["updated_at"]),
    }
    if configuration is not None:
        data["configuration"] = serialize_configuration(configuration)
    return data