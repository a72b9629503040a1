# Overview: Service-layer operations for the payment ledger; append-only entries plus materialised totals.

"""
Payment Ledger Service

WHY: A quote is paid over months (deposit, installments, final payment,
occasional refunds). The quote's total_paid must always equal the sum of its
ledger entries, even if an earlier write was interrupted.

DESIGN PRINCIPLES:
- Append-only: entries are never updated or deleted. Corrections are new
  REFUND or ADJUSTMENT entries.
- Signed amounts: refunds are negative, adjustments may be either sign.
- Full recompute: after every append, total_paid is re-derived from the whole
  entry set (never total += amount). Recomputing is idempotent, so a
  recompute after a partial failure repairs the quote.
- Insert + recompute + quote update run inside one store.atomic() block,
  after locking the quote. Concurrent appends to one quote serialise there,
  so each recompute sees every entry committed before it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from ..errors import FieldError, NotFoundError, ValidationError
from ..pricing.money import ZERO, has_places, money_to_wire, round_money, to_decimal
from ..pricing.validation import (
    INVALID_AMOUNT,
    INVALID_CHOICE,
    INVALID_DATETIME,
    NOT_A_NUMBER,
    NOT_AN_INTEGER,
    NOTE_MAX_LENGTH,
    OUT_OF_RANGE,
    RECORDED_BY_MAX_LENGTH,
    check_optional_text,
)
from ..storage.base import CONFIGURATIONS, PAYMENTS, QUOTES, RecordStore
from ..time_utils import parse_iso_datetime, to_utc_naive, to_utc_z, utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT TYPES (CONSTANTS)
# =============================================================================

PAYMENT_DEPOSIT = "DEPOSIT"
PAYMENT_INSTALLMENT = "INSTALLMENT"
PAYMENT_FINAL = "FINAL"
PAYMENT_REFUND = "REFUND"
PAYMENT_ADJUSTMENT = "ADJUSTMENT"

VALID_PAYMENT_TYPES = [
    PAYMENT_DEPOSIT,
    PAYMENT_INSTALLMENT,
    PAYMENT_FINAL,
    PAYMENT_REFUND,
    PAYMENT_ADJUSTMENT,
]


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

STATUS_PRE_QUOTE = "pre-quote"
STATUS_QUOTED = "quoted"
STATUS_DEPOSIT_PAID = "deposit-paid"
STATUS_INSTALLMENTS = "installments"
STATUS_PAID = "paid"
STATUS_OVERDUE = "overdue"
STATUS_REFUNDED = "refunded"

PAYMENT_STATUSES = [
    STATUS_PRE_QUOTE,
    STATUS_QUOTED,
    STATUS_DEPOSIT_PAID,
    STATUS_INSTALLMENTS,
    STATUS_PAID,
    STATUS_OVERDUE,
    STATUS_REFUNDED,
]

# Quotes in these states are being paid off and are never retention-expired
ACTIVE_PAYMENT_STATUSES = [STATUS_PAID, STATUS_INSTALLMENTS]

# Largest single ledger entry, either sign; keeps totals inside Numeric(12,2)
MAX_PAYMENT_AMOUNT = Decimal("10000000")


# =============================================================================
# VALIDATION
# =============================================================================

def _parse_amount(payment_type: str, amount: Any, errors: list[FieldError]) -> Optional[Decimal]:
    try:
        value = to_decimal(amount)
    except TypeError:
        errors.append(FieldError("amount", NOT_A_NUMBER, "amount must be a number"))
        return None

    if abs(value) > MAX_PAYMENT_AMOUNT:
        errors.append(FieldError("amount", OUT_OF_RANGE, f"amount must be within +/-{MAX_PAYMENT_AMOUNT}"))
        return None

    if not has_places(value, 2):
        errors.append(FieldError("amount", INVALID_AMOUNT, "amount must have at most 2 decimal places"))
        return None

    if payment_type in (PAYMENT_DEPOSIT, PAYMENT_INSTALLMENT, PAYMENT_FINAL) and value <= ZERO:
        errors.append(FieldError("amount", INVALID_AMOUNT, f"{payment_type} amount must be positive"))
    elif payment_type == PAYMENT_REFUND and value >= ZERO:
        errors.append(FieldError("amount", INVALID_AMOUNT, "REFUND amount must be negative"))
    elif payment_type == PAYMENT_ADJUSTMENT and value == ZERO:
        errors.append(FieldError("amount", INVALID_AMOUNT, "ADJUSTMENT amount must be non-zero"))
    return value


def _parse_installment_number(value: Any, errors: list[FieldError]) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        errors.append(FieldError("installmentNumber", NOT_AN_INTEGER, "installmentNumber must be a positive integer"))
        return None
    return value


def validate_payment(
    payment_type: Any,
    amount: Any,
    installment_number: Any = None,
    *,
    note: Any = None,
    recorded_by: Any = None,
) -> tuple[Decimal, Optional[int], Optional[str], Optional[str]]:
    """
    Check a ledger entry before it is written. Raises ValidationError listing every problem.

    Returns (amount, installment_number, note, recorded_by) normalised.
    """
    errors: list[FieldError] = []
    if payment_type not in VALID_PAYMENT_TYPES:
        errors.append(FieldError(
            "paymentType", INVALID_CHOICE, f"paymentType must be one of {VALID_PAYMENT_TYPES}"
        ))
        parsed_amount = None
    else:
        parsed_amount = _parse_amount(payment_type, amount, errors)
    parsed_installment = _parse_installment_number(installment_number, errors)
    parsed_note = check_optional_text(note, "note", NOTE_MAX_LENGTH, errors)
    parsed_recorded_by = check_optional_text(recorded_by, "recordedBy", RECORDED_BY_MAX_LENGTH, errors)
    if errors:
        raise ValidationError("Payment validation failed", errors)
    return parsed_amount, parsed_installment, parsed_note, parsed_recorded_by


# =============================================================================
# STATUS DERIVATION
# =============================================================================

def next_status(current: str, payment_type: Optional[str], total_paid: Decimal) -> str:
    """Status after a ledger entry of payment_type has been applied."""
    if payment_type == PAYMENT_DEPOSIT:
        if current in (STATUS_PRE_QUOTE, STATUS_QUOTED, STATUS_OVERDUE):
            return STATUS_DEPOSIT_PAID
        return current
    if payment_type == PAYMENT_INSTALLMENT:
        return STATUS_INSTALLMENTS
    if payment_type == PAYMENT_FINAL:
        return STATUS_PAID
    if payment_type == PAYMENT_REFUND and total_paid <= ZERO:
        return STATUS_REFUNDED
    return current


# =============================================================================
# LEDGER OPERATIONS
# =============================================================================

def _require_quote(store: RecordStore, quote_id: str, *, for_update: bool = False) -> dict:
    quote = store.find_by_id(QUOTES, quote_id, for_update=for_update)
    if quote is None:
        raise NotFoundError(QUOTES, quote_id)
    return quote


def _recompute(store: RecordStore, quote: dict, payment_type: Optional[str] = None) -> Decimal:
    """Re-derive total_paid/last_payment_at (and status) from every entry. Idempotent."""
    entries = store.find(PAYMENTS, {"quote_id": quote["id"]})
    total = round_money(sum((to_decimal(e["amount"]) for e in entries), ZERO))
    last_payment_at = max((e["timestamp"] for e in entries), default=None)

    store.update_by_id(QUOTES, quote["id"], {
        "total_paid": total,
        "last_payment_at": last_payment_at,
        "payment_status": next_status(quote["payment_status"], payment_type, total),
        "updated_at": utcnow(),
    })
    return total


def append_payment(
    store: RecordStore,
    quote_id: str,
    payment_type: str,
    amount: Any,
    *,
    installment_number: Any = None,
    note: Optional[str] = None,
    recorded_by: Optional[str] = None,
    timestamp: datetime | str | None = None,
) -> dict:
    """
    Append one immutable entry to a quote's ledger.

    Returns the stored entry. Raises ValidationError for bad input and
    NotFoundError for an unknown quote; nothing is written in either case.
    """
    parsed_amount, parsed_installment, note, recorded_by = validate_payment(
        payment_type, amount, installment_number, note=note, recorded_by=recorded_by,
    )

    if isinstance(timestamp, str):
        try:
            timestamp = parse_iso_datetime(timestamp)
        except ValueError:
            timestamp = False
    if timestamp is not None and not isinstance(timestamp, datetime):
        raise ValidationError("Payment validation failed", [
            FieldError("timestamp", INVALID_DATETIME, "timestamp must be an ISO-8601 datetime"),
        ])
    if timestamp is not None:
        timestamp = to_utc_naive(timestamp)
    now = utcnow()

    entry = {
        "quote_id": quote_id,
        "payment_type": payment_type,
        "amount": parsed_amount,
        "installment_number": parsed_installment,
        "note": note,
        "recorded_by": recorded_by,
        "timestamp": timestamp or now,
        "created_at": now,
    }

    with store.atomic():
        quote = _require_quote(store, quote_id, for_update=True)
        entry["id"] = store.insert(PAYMENTS, entry)
        total = _recompute(store, quote, payment_type)

    logger.info(
        "Recorded %s of %s on quote %s (total paid %s)",
        payment_type, parsed_amount, quote["quote_number"], total,
    )
    return entry


def recompute_total(store: RecordStore, quote_id: str) -> Decimal:
    """Rebuild a quote's total_paid from its ledger without changing its status."""
    with store.atomic():
        quote = _require_quote(store, quote_id, for_update=True)
        return _recompute(store, quote)


def get_history(store: RecordStore, quote_id: str) -> list[dict]:
    """All ledger entries for a quote, newest first."""
    _require_quote(store, quote_id)
    return store.find(
        PAYMENTS,
        {"quote_id": quote_id},
        sort=[("timestamp", "desc"), ("created_at", "desc")],
    )


def set_payment_status(store: RecordStore, quote_id: str, status: str) -> dict:
    """Manual status transition (e.g. quoted, overdue)."""
    if status not in PAYMENT_STATUSES:
        raise ValidationError("Invalid payment status", [
            FieldError("status", INVALID_CHOICE, f"status must be one of {PAYMENT_STATUSES}"),
        ])
    if not store.update_by_id(QUOTES, quote_id, {"payment_status": status, "updated_at": utcnow()}):
        raise NotFoundError(QUOTES, quote_id)
    logger.info("Quote %s moved to %s", quote_id, status)
    return _require_quote(store, quote_id)


def get_payment_summary(store: RecordStore, quote_id: str) -> dict:
    """
    Payment position of a quote against its quoted total.

    Returns:
        Dict with totalPaid, quotedTotal, balanceDue, installment counts and status
    """
    quote = _require_quote(store, quote_id)
    entries = store.find(PAYMENTS, {"quote_id": quote_id})
    configuration = store.find_by_id(CONFIGURATIONS, quote["configuration_id"])

    quoted_total = to_decimal(configuration["total"]) if configuration else None
    total_paid = to_decimal(quote["total_paid"])

    return {
        "quoteId": quote["id"],
        "quoteNumber": quote["quote_number"],
        "paymentStatus": quote["payment_status"],
        "currency": configuration["currency"] if configuration else None,
        "quotedTotal": money_to_wire(quoted_total),
        "totalPaid": money_to_wire(total_paid),
        "balanceDue": money_to_wire(quoted_total - total_paid) if quoted_total is not None else None,
        "expectedInstallments": quote["expected_installments"],
        "installmentsPaid": sum(1 for e in entries if e["payment_type"] == PAYMENT_INSTALLMENT),
        "entryCount": len(entries),
        "lastPaymentAt": to_utc_z(quote["last_payment_at"]),
    }


def serialize_payment(entry: dict) -> dict:
    return {
        "id": entry["id"],
        "quoteId": entry["quote_id"],
        "paymentType": entry["payment_type"],
        "amount": money_to_wire(to_decimal(entry["amount"])),
        "installmentNumber": entry.get("installment_number"),
        "note": entry.get("note"),
        "recordedBy": entry.get("recorded_by"),
        "timestamp": to_utc_z(entry["timestamp"]),
        "createdAt": to_utc_z(entry["created_at"]),
    }
