"""
Payment ledger: append-only entries, recomputed totals and status transitions.
"""

import os
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from prefabquote import create_app
from prefabquote.errors import NotFoundError, ValidationError
from prefabquote.extensions import db
from prefabquote.services import payment_service, quote_service
from prefabquote.services.concurrency import run_with_retry
from prefabquote.storage import InMemoryDocumentStore, SqlRecordStore
from prefabquote.storage.base import PAYMENTS, QUOTES


D = Decimal


@pytest.fixture
def quote(store, configuration, customer):
    record, _, _ = quote_service.create_quote(store, configuration, customer, expected_installments=3)
    return record


def ledger_sum(store, quote_id):
    return sum((e["amount"] for e in store.find(PAYMENTS, {"quote_id": quote_id})), D("0"))


class TestAppendPayment:
    def test_deposit_then_refund(self, store, quote):
        payment_service.append_payment(store, quote["id"], "DEPOSIT", 1000.00)
        payment_service.append_payment(store, quote["id"], "REFUND", -200.00)

        stored = store.find_by_id(QUOTES, quote["id"])
        assert stored["total_paid"] == D("800.00")
        assert stored["total_paid"] == ledger_sum(store, quote["id"])

    def test_total_always_equals_ledger_sum(self, store, quote):
        for payment_type, amount in [
            ("DEPOSIT", "2500.00"),
            ("INSTALLMENT", "1000.10"),
            ("ADJUSTMENT", "-0.10"),
            ("INSTALLMENT", "999.99"),
        ]:
            payment_service.append_payment(store, quote["id"], payment_type, amount)
            stored = store.find_by_id(QUOTES, quote["id"])
            assert stored["total_paid"] == ledger_sum(store, quote["id"])
        assert stored["total_paid"] == D("4499.99")

    def test_entry_is_returned_with_id(self, store, quote):
        entry = payment_service.append_payment(
            store, quote["id"], "INSTALLMENT", 500, installment_number=1, note="Bank transfer", recorded_by="office",
        )
        assert entry["id"]
        assert entry["amount"] == D("500")
        stored = store.find(PAYMENTS, {"id": entry["id"]})[0]
        assert stored["installment_number"] == 1
        assert stored["note"] == "Bank transfer"

    def test_last_payment_at_tracks_latest_timestamp(self, store, quote):
        early = datetime(2025, 10, 1, 9, 0)
        late = datetime(2025, 11, 1, 9, 0)
        payment_service.append_payment(store, quote["id"], "DEPOSIT", 100, timestamp=late)
        payment_service.append_payment(store, quote["id"], "ADJUSTMENT", 5, timestamp="2025-10-01T09:00:00Z")
        stored = store.find_by_id(QUOTES, quote["id"])
        assert stored["last_payment_at"] == late
        assert early < late

    def test_aware_timestamp_stored_as_utc(self, store, quote):
        aware = datetime(2025, 11, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        entry = payment_service.append_payment(store, quote["id"], "DEPOSIT", 100, timestamp=aware)
        assert entry["timestamp"] == datetime(2025, 11, 1, 10, 0)
        assert store.find_by_id(QUOTES, quote["id"])["last_payment_at"] == datetime(2025, 11, 1, 10, 0)

    def test_unknown_quote(self, store):
        with pytest.raises(NotFoundError):
            payment_service.append_payment(store, "missing", "DEPOSIT", 100)
        assert store.count(PAYMENTS) == 0


class TestPaymentValidation:
    @pytest.mark.parametrize("payment_type,amount", [
        ("DEPOSIT", 0),
        ("DEPOSIT", -10),
        ("INSTALLMENT", -1),
        ("FINAL", 0),
        ("REFUND", 50),
        ("REFUND", 0),
        ("ADJUSTMENT", 0),
        ("DEPOSIT", "12.345"),
        ("DEPOSIT", "lots"),
        ("DEPOSIT", "1e30"),
        ("DEPOSIT", "10000000.01"),
        ("REFUND", "-1e30"),
        ("ADJUSTMENT", "-10000000.01"),
        ("DEPOSIT", None),
        ("GIFT", 100),
    ])
    def test_rejected(self, store, quote, payment_type, amount):
        with pytest.raises(ValidationError):
            payment_service.append_payment(store, quote["id"], payment_type, amount)
        assert store.count(PAYMENTS) == 0
        assert store.find_by_id(QUOTES, quote["id"])["total_paid"] == D("0.00")

    @pytest.mark.parametrize("installment_number", [0, -1, "2", 1.5])
    def test_bad_installment_number(self, store, quote, installment_number):
        with pytest.raises(ValidationError):
            payment_service.append_payment(
                store, quote["id"], "INSTALLMENT", 100, installment_number=installment_number,
            )

    def test_bad_timestamp(self, store, quote):
        with pytest.raises(ValidationError):
            payment_service.append_payment(store, quote["id"], "DEPOSIT", 100, timestamp="yesterday")

    def test_largest_amount_accepted(self, store, quote):
        payment_service.append_payment(store, quote["id"], "DEPOSIT", "10000000.00")
        assert store.find_by_id(QUOTES, quote["id"])["total_paid"] == D("10000000.00")

    @pytest.mark.parametrize("kwargs, field", [
        ({"note": ["a"]}, "note"),
        ({"note": "x" * 2001}, "note"),
        ({"recorded_by": {"x": 1}}, "recordedBy"),
        ({"recorded_by": "x" * 101}, "recordedBy"),
    ])
    def test_free_text_fields(self, store, quote, kwargs, field):
        with pytest.raises(ValidationError) as exc_info:
            payment_service.append_payment(store, quote["id"], "DEPOSIT", 10, **kwargs)
        assert [e.field for e in exc_info.value.errors] == [field]
        assert store.count(PAYMENTS) == 0

    def test_free_text_is_stripped(self, store, quote):
        entry = payment_service.append_payment(
            store, quote["id"], "DEPOSIT", 10, note="  Bank transfer ", recorded_by="   ",
        )
        stored = store.find(PAYMENTS, {"id": entry["id"]})[0]
        assert stored["note"] == "Bank transfer"
        assert stored["recorded_by"] is None


class TestStatusTransitions:
    def test_new_quote_is_pre_quote(self, quote):
        assert quote["payment_status"] == "pre-quote"

    def test_full_lifecycle(self, store, quote):
        def status():
            return store.find_by_id(QUOTES, quote["id"])["payment_status"]

        payment_service.append_payment(store, quote["id"], "DEPOSIT", 5000)
        assert status() == "deposit-paid"
        payment_service.append_payment(store, quote["id"], "ADJUSTMENT", 10)
        assert status() == "deposit-paid"
        payment_service.append_payment(store, quote["id"], "INSTALLMENT", 5000, installment_number=1)
        assert status() == "installments"
        payment_service.append_payment(store, quote["id"], "FINAL", 5000)
        assert status() == "paid"

    def test_full_refund(self, store, quote):
        payment_service.append_payment(store, quote["id"], "DEPOSIT", 1000)
        payment_service.append_payment(store, quote["id"], "REFUND", -400)
        assert store.find_by_id(QUOTES, quote["id"])["payment_status"] == "deposit-paid"
        payment_service.append_payment(store, quote["id"], "REFUND", -600)
        assert store.find_by_id(QUOTES, quote["id"])["payment_status"] == "refunded"

    def test_deposit_on_overdue_quote(self, store, quote):
        payment_service.set_payment_status(store, quote["id"], "overdue")
        payment_service.append_payment(store, quote["id"], "DEPOSIT", 1000)
        assert store.find_by_id(QUOTES, quote["id"])["payment_status"] == "deposit-paid"

    def test_manual_status(self, store, quote):
        updated = payment_service.set_payment_status(store, quote["id"], "quoted")
        assert updated["payment_status"] == "quoted"
        with pytest.raises(ValidationError):
            payment_service.set_payment_status(store, quote["id"], "archived")
        with pytest.raises(NotFoundError):
            payment_service.set_payment_status(store, "missing", "quoted")


class TestHistoryAndRecompute:
    def test_history_newest_first(self, store, quote):
        base = datetime(2025, 10, 1)
        for day, amount in [(3, 300), (1, 100), (2, 200)]:
            payment_service.append_payment(
                store, quote["id"], "ADJUSTMENT", amount, timestamp=base + timedelta(days=day),
            )
        history = payment_service.get_history(store, quote["id"])
        assert [e["amount"] for e in history] == [D("300"), D("200"), D("100")]

    def test_history_unknown_quote(self, store):
        with pytest.raises(NotFoundError):
            payment_service.get_history(store, "missing")

    def test_recompute_repairs_drifted_total(self, store, quote):
        payment_service.append_payment(store, quote["id"], "DEPOSIT", 1000)
        payment_service.append_payment(store, quote["id"], "INSTALLMENT", 250)
        store.update_by_id(QUOTES, quote["id"], {"total_paid": D("99.00")})

        assert payment_service.recompute_total(store, quote["id"]) == D("1250.00")
        stored = store.find_by_id(QUOTES, quote["id"])
        assert stored["total_paid"] == D("1250.00")
        assert stored["payment_status"] == "installments"

    def test_recompute_is_idempotent(self, store, quote):
        payment_service.append_payment(store, quote["id"], "DEPOSIT", 1000)
        first = payment_service.recompute_total(store, quote["id"])
        second = payment_service.recompute_total(store, quote["id"])
        assert first == second == D("1000.00")

    def test_payment_summary(self, store, quote):
        payment_service.append_payment(store, quote["id"], "DEPOSIT", 2000)
        payment_service.append_payment(store, quote["id"], "INSTALLMENT", 1000, installment_number=1)
        summary = payment_service.get_payment_summary(store, quote["id"])
        assert summary["quotedTotal"] == 32604.84
        assert summary["totalPaid"] == 3000.0
        assert summary["balanceDue"] == 29604.84
        assert summary["installmentsPaid"] == 1
        assert summary["expectedInstallments"] == 3
        assert summary["currency"] == "EUR"


class TestConcurrentAppends:
    """Parallel appends to one quote must leave total_paid equal to the ledger sum."""

    THREADS = 8
    PER_THREAD = 5
    AMOUNT = D("10.00")

    def _append_in_threads(self, append):
        errors = []

        def worker():
            try:
                for _ in range(self.PER_THREAD):
                    append()
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(self.THREADS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert not errors, errors

    @property
    def expected_total(self):
        return self.AMOUNT * self.THREADS * self.PER_THREAD

    def test_memory_store(self, configuration, customer):
        store = InMemoryDocumentStore()
        quote, _, _ = quote_service.create_quote(store, configuration, customer)

        self._append_in_threads(
            lambda: payment_service.append_payment(store, quote["id"], "INSTALLMENT", self.AMOUNT)
        )

        stored = store.find_by_id(QUOTES, quote["id"])
        assert store.count(PAYMENTS) == self.THREADS * self.PER_THREAD
        assert ledger_sum(store, quote["id"]) == self.expected_total
        assert stored["total_paid"] == self.expected_total

    def test_sql_store(self, configuration, customer):
        tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(tmpdir.name, "ledger.db")
        app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "STORAGE_BACKEND": "sql",
        })
        with app.app_context():
            db.create_all()
            quote, _, _ = quote_service.create_quote(SqlRecordStore(db), configuration, customer)

        def append():
            with app.app_context():
                store = SqlRecordStore(db)
                run_with_retry(
                    lambda: payment_service.append_payment(store, quote["id"], "INSTALLMENT", self.AMOUNT),
                    attempts=5,
                )

        try:
            self._append_in_threads(append)
            with app.app_context():
                store = SqlRecordStore(db)
                stored = store.find_by_id(QUOTES, quote["id"])
                assert store.count(PAYMENTS) == self.THREADS * self.PER_THREAD
                assert ledger_sum(store, quote["id"]) == self.expected_total
                assert stored["total_paid"] == self.expected_total
        finally:
            with app.app_context():
                db.session.remove()
                db.drop_all()
                db.engine.dispose()
            tmpdir.cleanup()


class LockRecordingStore(InMemoryDocumentStore):
    def __init__(self):
        super().__init__()
        self.locked_reads = []

    def find_by_id(self, collection, record_id, *, for_update=False):
        if for_update:
            self.locked_reads.append((collection, record_id))
        return super().find_by_id(collection, record_id, for_update=for_update)


class TestQuoteRowLocking:
    def test_append_and_recompute_lock_the_quote(self, configuration, customer):
        store = LockRecordingStore()
        quote, _, _ = quote_service.create_quote(store, configuration, customer)
        store.locked_reads.clear()

        payment_service.append_payment(store, quote["id"], "DEPOSIT", 100)
        payment_service.recompute_total(store, quote["id"])

        assert store.locked_reads == [(QUOTES, quote["id"]), (QUOTES, quote["id"])]
