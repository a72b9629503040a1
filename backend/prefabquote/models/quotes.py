from __future__ import annotations

from ..extensions import db


class ProductConfiguration(db.Model):
    """
    A submitted building configuration plus the price quoted for it.

    WHY: The breakdown is derived data. Only the quoted totals are frozen here
    (with the VAT rate and currency they were computed under) so the
    breakdown can be recomputed later and compared against what was quoted.
    """
    __tablename__ = "product_configurations"

    id = db.Column(db.String(36), primary_key=True)
    product_type = db.Column(db.String(32), nullable=False, index=True)

    # Wire-shape configuration document (camelCase keys)
    configuration = db.Column(db.JSON, nullable=False)

    include_vat = db.Column(db.Boolean, nullable=False, default=True)
    currency = db.Column(db.String(3), nullable=False)
    vat_rate = db.Column(db.Numeric(5, 4), nullable=False)

    # Snapshot of the estimate at submission time
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    vat_amount = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime, nullable=False)


class QuoteRequest(db.Model):
    """
    A customer's quote for one configuration.

    LIFECYCLE (payment_status):
    pre-quote -> quoted -> deposit-paid -> installments -> paid
    Side states: overdue, refunded.

    Mutated only by payment events and manual status transitions.
    total_paid is materialised from payment_history and never incremented.
    """
    __tablename__ = "quote_requests"
    __table_args__ = (
        db.UniqueConstraint("quote_number", name="uq_quote_requests_quote_number"),
        db.Index("ix_quote_requests_status_expires", "payment_status", "expires_at"),
    )

    id = db.Column(db.String(36), primary_key=True)
    configuration_id = db.Column(
        db.String(36), db.ForeignKey("product_configurations.id"), nullable=False, index=True
    )

    # Human-readable quote number (e.g., "Q4-2025-00042")
    quote_number = db.Column(db.String(32), nullable=False)

    # Customer contact block
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone_prefix = db.Column(db.String(8), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)
    address_line1 = db.Column(db.String(255), nullable=True)
    address_line2 = db.Column(db.String(255), nullable=True)
    town = db.Column(db.String(100), nullable=True)
    county = db.Column(db.String(100), nullable=True)
    eircode = db.Column(db.String(8), nullable=False)
    desired_install_timeframe = db.Column(db.String(64), nullable=True)

    payment_status = db.Column(db.String(16), nullable=False, default="pre-quote", index=True)
    total_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    expected_installments = db.Column(db.Integer, nullable=True)
    last_payment_at = db.Column(db.DateTime, nullable=True)

    expires_at = db.Column(db.DateTime, nullable=False)
    submitted_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, nullable=False)

    configuration_record = db.relationship("ProductConfiguration", backref=db.backref("quotes", lazy=True))


class PaymentHistoryEntry(db.Model):
    """
    Immutable payment ledger entry.

    Append-only: rows are never updated or deleted. Corrections are new
    REFUND/ADJUSTMENT rows. Amount is signed (refunds negative).
    """
    __tablename__ = "payment_history"
    __table_args__ = (
        db.Index("ix_payment_history_quote_timestamp", "quote_id", "timestamp"),
    )

    id = db.Column(db.String(36), primary_key=True)
    quote_id = db.Column(db.String(36), db.ForeignKey("quote_requests.id"), nullable=False, index=True)

    payment_type = db.Column(db.String(16), nullable=False)  # DEPOSIT, INSTALLMENT, FINAL, REFUND, ADJUSTMENT
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    installment_number = db.Column(db.Integer, nullable=True)
    note = db.Column(db.Text, nullable=True)
    recorded_by = db.Column(db.String(100), nullable=True)

    timestamp = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False)

    quote = db.relationship("QuoteRequest", backref=db.backref("payment_history", lazy=True))


class SequenceCounter(db.Model):
    """
    Per-period quote number counter ("quote-2025-Q4" -> 42).

    Only ever touched through RecordStore.atomic_increment.
    """
    __tablename__ = "sequence_counters"
    __table_args__ = (
        db.UniqueConstraint("counter_key", name="uq_sequence_counters_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    counter_key = db.Column(db.String(64), nullable=False)
    seq = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, nullable=False)
