# Overview: Flask API routes for quotes, estimates and the payment ledger; parses input and returns JSON responses.

# backend/prefabquote/routes/quotes.py
"""
Quote API Routes

WHY: The configurator needs a live price while the customer edits, a way to
submit the configuration as a quote, and the back office needs to record
payments against that quote over its lifetime.

DESIGN:
- Estimates are stateless (nothing is stored)
- Quote creation validates, prices, numbers and persists in one call
- Payments are appended to an immutable ledger; totals are recomputed
- Engine errors map to JSON bodies: 400 validation, 404 not found,
  503 allocation conflict, 500 persistence
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import (
    AllocationConflict,
    FieldError,
    NotFoundError,
    PersistenceError,
    QuoteEngineError,
    ValidationError,
)
from ..pricing.validation import INVALID_CHOICE, REQUIRED_FIELD
from ..services import payment_service, quote_service
from ..storage import get_store
from ..time_utils import to_utc_z


quotes_bp = Blueprint("quotes", __name__, url_prefix="/api/quotes")


def _engine_error(exc: QuoteEngineError):
    if isinstance(exc, ValidationError):
        return jsonify(exc.to_dict()), 400
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, AllocationConflict):
        current_app.logger.warning("Quote number allocation failed: %s", exc)
        return jsonify({"error": "Quote number could not be allocated, please retry"}), 503
    if isinstance(exc, PersistenceError):
        current_app.logger.error("Storage failure: %s", exc, exc_info=exc)
        return jsonify({"error": "Storage error"}), 500
    current_app.logger.exception("Quote engine failure")
    return jsonify({"error": "Internal server error"}), 500


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", [
            FieldError("body", REQUIRED_FIELD, "Request body must be a JSON object"),
        ])
    return data


def _include_vat(data: dict) -> bool:
    value = data.get("includeVat", True)
    if not isinstance(value, bool):
        raise ValidationError("includeVat must be a boolean", [
            FieldError("includeVat", INVALID_CHOICE, "includeVat must be true or false"),
        ])
    return value


# =============================================================================
# ESTIMATES
# =============================================================================

@quotes_bp.post("/estimate")
def estimate_route():
    """
    Price a configuration without storing anything.

    Request body:
    {
        "configuration": {...configurator payload...},
        "includeVat": true
    }

    Returns:
        200: {estimate, warnings}
        400: Validation errors (every violated field listed)
    """
    try:
        data = _json_body()
        breakdown, result = quote_service.estimate_configuration(
            data.get("configuration"),
            include_vat=_include_vat(data),
            catalog=quote_service.current_catalog(),
        )
        return jsonify({
            "estimate": breakdown.to_dict(),
            "warnings": [w.to_dict() for w in result.warnings],
        }), 200

    except QuoteEngineError as e:
        return _engine_error(e)
    except Exception:
        current_app.logger.exception("Failed to estimate configuration")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUOTE CREATION
# =============================================================================

@quotes_bp.post("/")
def create_quote_route():
    """
    Submit a configuration as a quote.

    Request body:
    {
        "configuration": {...},
        "customer": {
            "firstName": "Aoife", "lastName": "Byrne", "email": "aoife@example.ie",
            "phone": {"countryPrefix": "+353", "phoneNum": "871234567"},
            "addressLine1": "...", "town": "...", "county": "...", "eircode": "A65 F4E2"
        },
        "includeVat": true,
        "desiredInstallTimeframe": "3-6 months",   (optional)
        "expectedInstallments": 3                    (optional)
    }

    Returns:
        201: {quote, estimate}
        400: Validation errors
        503: Quote number allocation conflict (retry)
    """
    try:
        data = _json_body()
        quote, configuration, breakdown = quote_service.create_quote(
            get_store(),
            data.get("configuration"),
            data.get("customer"),
            include_vat=_include_vat(data),
            desired_install_timeframe=data.get("desiredInstallTimeframe"),
            expected_installments=data.get("expectedInstallments"),
            catalog=quote_service.current_catalog(),
            retention_days=current_app.config["QUOTE_RETENTION_DAYS"],
        )
        return jsonify({
            "quote": quote_service.serialize_quote(quote, configuration),
            "estimate": breakdown.to_dict(),
        }), 201

    except QuoteEngineError as e:
        return _engine_error(e)
    except Exception:
        current_app.logger.exception("Failed to create quote")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUOTE QUERIES
# =============================================================================

@quotes_bp.get("/")
def list_quotes_route():
    """
    List quotes.

    Query params:
        status: payment status filter (optional)
        page: 1-based page (default 1)
        limit: page size 1-100 (default 20)
        sort_by: createdAt, submittedAt, expiresAt, quoteNumber, paymentStatus, totalPaid
        sort_order: asc | desc (default desc)
    """
    try:
        page = request.args.get("page", 1, type=int)
        limit = request.args.get("limit", quote_service.DEFAULT_PAGE_SIZE, type=int)
        result = quote_service.list_quotes(
            get_store(),
            status=request.args.get("status") or None,
            page=page,
            limit=limit,
            sort_by=request.args.get("sort_by", "created_at"),
            sort_order=request.args.get("sort_order", "desc"),
        )
        result["quotes"] = [quote_service.serialize_quote(q) for q in result["quotes"]]
        return jsonify(result), 200

    except QuoteEngineError as e:
        return _engine_error(e)
    except Exception:
        current_app.logger.exception("Failed to list quotes")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.get("/summary")
def quote_summary_route():
    """Counts by status, quoted value and money received."""
    try:
        return jsonify(quote_service.get_quote_summary(get_store())), 200

    except QuoteEngineError as e:
        return _engine_error(e)
    except Exception:
        current_app.logger.exception("Failed to build quote summary")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.get("/<quote_id>")
def get_quote_route(quote_id: str):
    """Quote with its stored configuration and estimate snapshot."""
    try:
        store = get_store()
        quote = quote_service.get_quote(store, quote_id)
        configuration = quote_service.get_configuration(store, quote["configuration_id"])
        return jsonify({"quote": quote_service.serialize_quote(quote, configuration)}), 200

    except QuoteEngineError as e:
        return _engine_error(e)
    except Exception:
        current_app.logger.exception("Failed to get quote")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.get("/number/<quote_number>")
def get_quote_by_number_route(quote_number: str):
    try:
        store = get_store()
        quote = quote_service.get_quote_by_number(store, quote_number)
        configuration = quote_service.get_configuration(store, quote["configuration_id"])
        return jsonify({"quote": quote_service.serialize_quote(quote, configuration)}), 200

    except QuoteEngineError as e:
        return _engine_error(e)
    except Exception:
        current_app.logger.exception("Failed to get quote by number")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.get("/<quote_id>/status")
def get_quote_status_route(quote_id: str):
    """Lightweight status lookup for the customer-facing client."""
    try:
        quote = quote_service.get_quote(get_store(), quote_id)
        return jsonify({
            "status": quote["payment_status"],
            "lastUpdated": to_utc_z(quote["updated_at"]),
            "details": {
                "id": quote["id"],
                "quoteNumber": quote["quote_number"],
                "configurationId": quote["configuration_id"],
                "requestedAt": to_utc_z(quote["submitted_at"]),
            },
        }), 200

    except QuoteEngineError as e:
        return _engine_error(e)
    except Exception:
        current_app.logger.exception("Failed to get quote status")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.get("/<quote_id>/breakdown")
def get_quote_breakdown_route(quote_id: str):
    """Breakdown recomputed from the stored configuration."""
    try:
        breakdown = quote_service.get_quote_breakdown(get_store(), quote_id)
        return jsonify({"estimate": breakdown.to_dict()}), 200

    except QuoteEngineError as e:
        return _engine_error(e)
    except Exception:
        current_app.logger.exception("Failed to compute quote breakdown")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.patch("/<quote_id>/status")
def update_quote_status_route(quote_id: str):
    """
    Manual status transition.

    Request body:
    {
        "status": "quoted"
    }
    """
    try:
        data = _json_body()
        quote = payment_service.set_payment_status(get_store(), quote_id, data.get("status"))
        return jsonify({"quote": quote_service.serialize_quote(quote)}), 200

    except QuoteEngineError as e:
        return _engine_error(e)
    except Exception:
        current_app.logger.exception("Failed to update quote status")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT LEDGER
# =============================================================================

@quotes_bp.get("/<quote_id>/payments")
def get_payments_route(quote_id: str):
    """Ledger entries (newest first) plus the payment summary."""
    try:
        store = get_store()
        history = payment_service.get_history(store, quote_id)
        return jsonify({
            "payments": [payment_service.serialize_payment(e) for e in history],
            "summary": payment_service.get_payment_summary(store, quote_id),
        }), 200

    except QuoteEngineError as e:
        return _engine_error(e)
    except Exception:
        current_app.logger.exception("Failed to get payment history")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.post("/<quote_id>/payments")
def add_payment_route(quote_id: str):
    """
    Append a ledger entry.

    Request body:
    {
        "paymentType": "DEPOSIT",
        "amount": 1000.00,
        "installmentNumber": 1,        (optional, INSTALLMENT)
        "note": "Bank transfer",       (optional)
        "recordedBy": "office",        (optional)
        "timestamp": "2025-11-02T10:00:00Z"   (optional, defaults to now)
    }

    PAYMENT TYPES:
    - DEPOSIT, INSTALLMENT, FINAL: amount > 0
    - REFUND: amount < 0
    - ADJUSTMENT: amount != 0

    Returns:
        201: {payment, summary}
        400: Invalid input
        404: Unknown quote
    """
    try:
        data = _json_body()
        store = get_store()
        entry = payment_service.append_payment(
            store,
            quote_id,
            data.get("paymentType"),
            data.get("amount"),
            installment_number=data.get("installmentNumber"),
            note=data.get("note"),
            recorded_by=data.get("recordedBy"),
            timestamp=data.get("timestamp"),
        )
        return jsonify({
            "payment": payment_service.serialize_payment(entry),
            "summary": payment_service.get_payment_summary(store, quote_id),
        }), 201

    except QuoteEngineError as e:
        return _engine_error(e)
    except Exception:
        current_app.logger.exception("Failed to add payment")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.post("/<quote_id>/payments/recompute")
def recompute_payments_route(quote_id: str):
    """Rebuild total_paid from the ledger (repair after a partial failure)."""
    try:
        store = get_store()
        payment_service.recompute_total(store, quote_id)
        return jsonify({"summary": payment_service.get_payment_summary(store, quote_id)}), 200

    except QuoteEngineError as e:
        return _engine_error(e)
    except Exception:
        current_app.logger.exception("Failed to recompute payments")
        return jsonify({"error": "Internal server error"}), 500
