"""
Quote service: creation, lookups, listing, summaries and retention.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from prefabquote.errors import NotFoundError, PersistenceError, ValidationError
from prefabquote.pricing.catalog import DEFAULT_CATALOG
from prefabquote.services import maintenance_service, payment_service, quote_service
from prefabquote.services.quote_number_service import QUOTE_NUMBER_REGEX
from prefabquote.storage.base import CONFIGURATIONS, QUOTES, new_id


NOW = datetime(2025, 11, 5, 10, 30)


def make_quote(store, configuration, customer, **kwargs):
    quote, _, _ = quote_service.create_quote(store, configuration, customer, **kwargs)
    return quote


class TestCreateQuote:
    def test_creates_quote_and_configuration(self, store, configuration, customer):
        quote, config_record, breakdown = quote_service.create_quote(
            store, configuration, customer, desired_install_timeframe="3-6 months", now=NOW,
        )

        assert QUOTE_NUMBER_REGEX.match(quote["quote_number"])
        assert quote["quote_number"] == "Q4-2025-00001"
        assert quote["payment_status"] == "pre-quote"
        assert quote["total_paid"] == Decimal("0.00")
        assert quote["expires_at"] == NOW + timedelta(days=30)
        assert quote["submitted_at"] == NOW
        assert quote["desired_install_timeframe"] == "3-6 months"

        stored_config = store.find_by_id(CONFIGURATIONS, quote["configuration_id"])
        assert stored_config["id"] == config_record["id"]
        assert stored_config["total"] == breakdown.total == Decimal("32604.84")
        assert stored_config["subtotal"] == Decimal("26508.00")
        assert stored_config["product_type"] == "garden-room"

    def test_customer_fields_normalized(self, store, configuration, customer):
        quote = make_quote(store, configuration, customer)
        stored = store.find_by_id(QUOTES, quote["id"])
        assert stored["email"] == "aoife.byrne@example.ie"
        assert stored["eircode"] == "H91 E2K3"
        assert stored["phone_prefix"] == "+353"
        assert stored["address_line2"] is None

    def test_sequential_numbers(self, store, configuration, customer):
        numbers = [make_quote(store, configuration, customer, now=NOW)["quote_number"] for _ in range(3)]
        assert numbers == ["Q4-2025-00001", "Q4-2025-00002", "Q4-2025-00003"]

    def test_retention_days_override(self, store, configuration, customer):
        quote = make_quote(store, configuration, customer, retention_days=7, now=NOW)
        assert quote["expires_at"] == NOW + timedelta(days=7)

    def test_excluding_vat(self, store, configuration, customer):
        _, config_record, breakdown = quote_service.create_quote(store, configuration, customer, include_vat=False)
        assert breakdown.vat_amount == Decimal("0.00")
        assert config_record["total"] == Decimal("26508.00")
        assert config_record["include_vat"] is False

    def test_reports_configuration_and_customer_errors_together(self, store, configuration, customer):
        configuration["size"]["widthM"] = 20
        customer["email"] = "not-an-email"
        del customer["eircode"]

        with pytest.raises(ValidationError) as exc_info:
            quote_service.create_quote(store, configuration, customer)

        fields = {e.field for e in exc_info.value.errors}
        assert {"size.widthM", "customer.email", "customer.eircode"} <= fields
        assert store.count(QUOTES) == 0
        assert store.count(CONFIGURATIONS) == 0

    @pytest.mark.parametrize("value", [0, -2, 1.5, "3", True])
    def test_bad_expected_installments(self, store, configuration, customer, value):
        with pytest.raises(ValidationError) as exc_info:
            quote_service.create_quote(store, configuration, customer, expected_installments=value)
        assert [e.field for e in exc_info.value.errors] == ["expectedInstallments"]

    @pytest.mark.parametrize("value", ["x" * 65, {"months": 3}])
    def test_bad_install_timeframe(self, store, configuration, customer, value):
        with pytest.raises(ValidationError) as exc_info:
            quote_service.create_quote(store, configuration, customer, desired_install_timeframe=value)
        assert [e.field for e in exc_info.value.errors] == ["desiredInstallTimeframe"]
        assert store.count(QUOTES) == 0

    def test_duplicate_quote_number_rejected_by_store(self, store, configuration, customer):
        quote = make_quote(store, configuration, customer)
        duplicate = dict(quote, id=new_id())
        with pytest.raises(PersistenceError):
            store.insert(QUOTES, duplicate)
        assert store.count(QUOTES) == 1


class TestQuoteLookups:
    def test_get_quote_by_number(self, store, configuration, customer):
        quote = make_quote(store, configuration, customer)
        found = quote_service.get_quote_by_number(store, quote["quote_number"])
        assert found["id"] == quote["id"]

    def test_missing_quote(self, store):
        with pytest.raises(NotFoundError):
            quote_service.get_quote(store, "missing")
        with pytest.raises(NotFoundError):
            quote_service.get_quote_by_number(store, "Q1-2025-99999")

    def test_breakdown_matches_stored_snapshot(self, store, configuration, customer):
        quote, config_record, breakdown = quote_service.create_quote(store, configuration, customer)
        recomputed = quote_service.get_quote_breakdown(store, quote["id"])
        assert recomputed.total == config_record["total"]
        assert recomputed.to_dict() == breakdown.to_dict()

    def test_fine_measurements_reproduce_breakdown(self, store, configuration, customer):
        configuration["size"]["widthM"] = "3.125"
        configuration["cladding"]["areaSqm"] = 28.125
        configuration["delivery"]["cost"] = "149.99"
        quote, _, breakdown = quote_service.create_quote(store, configuration, customer)
        assert quote_service.get_quote_breakdown(store, quote["id"]).to_dict() == breakdown.to_dict()

    def test_breakdown_uses_stored_vat_rate(self, store, configuration, customer):
        catalog = DEFAULT_CATALOG.with_tax(vat_rate=Decimal("0.135"), currency="GBP")
        quote, config_record, _ = quote_service.create_quote(store, configuration, customer, catalog=catalog)

        recomputed = quote_service.get_quote_breakdown(store, quote["id"])
        assert recomputed.currency == "GBP"
        assert recomputed.vat_amount == Decimal("3578.58")
        assert recomputed.total == config_record["total"]


class TestListQuotes:
    def test_pagination_newest_first(self, store, configuration, customer):
        created = [
            make_quote(store, configuration, customer, now=NOW + timedelta(minutes=i))
            for i in range(3)
        ]

        first = quote_service.list_quotes(store, page=1, limit=2)
        assert first["total"] == 3
        assert first["totalPages"] == 2
        assert [q["id"] for q in first["quotes"]] == [created[2]["id"], created[1]["id"]]

        second = quote_service.list_quotes(store, page=2, limit=2)
        assert [q["id"] for q in second["quotes"]] == [created[0]["id"]]

    def test_sort_alias_and_status_filter(self, store, configuration, customer):
        first = make_quote(store, configuration, customer, now=NOW)
        second = make_quote(store, configuration, customer, now=NOW + timedelta(minutes=1))
        payment_service.append_payment(store, second["id"], "DEPOSIT", 500)

        result = quote_service.list_quotes(store, sort_by="quoteNumber", sort_order="asc")
        assert [q["id"] for q in result["quotes"]] == [first["id"], second["id"]]

        paid = quote_service.list_quotes(store, status="deposit-paid")
        assert [q["id"] for q in paid["quotes"]] == [second["id"]]

    def test_empty_listing(self, store):
        result = quote_service.list_quotes(store)
        assert result == {"quotes": [], "total": 0, "page": 1, "limit": 20, "totalPages": 0}

    @pytest.mark.parametrize("kwargs, field", [
        ({"limit": 0}, "limit"),
        ({"limit": 101}, "limit"),
        ({"page": 0}, "page"),
        ({"status": "lost"}, "status"),
        ({"sort_by": "email"}, "sort_by"),
        ({"sort_order": "sideways"}, "sort_order"),
    ])
    def test_invalid_parameters(self, store, kwargs, field):
        with pytest.raises(ValidationError) as exc_info:
            quote_service.list_quotes(store, **kwargs)
        assert [e.field for e in exc_info.value.errors] == [field]


class TestQuoteSummary:
    def test_summary_totals(self, store, configuration, customer):
        first = make_quote(store, configuration, customer)
        make_quote(store, configuration, customer)
        payment_service.append_payment(store, first["id"], "DEPOSIT", 1000)

        summary = quote_service.get_quote_summary(store)
        assert summary["totalQuotes"] == 2
        assert summary["byStatus"]["pre-quote"] == 1
        assert summary["byStatus"]["deposit-paid"] == 1
        assert summary["byStatus"]["paid"] == 0
        assert summary["quotedValue"] == 65209.68
        assert summary["totalPaid"] == 1000.0
        assert summary["outstanding"] == 64209.68

    def test_empty_summary(self, store):
        summary = quote_service.get_quote_summary(store)
        assert summary["totalQuotes"] == 0
        assert summary["quotedValue"] == 0.0


class TestSerialization:
    def test_serialize_quote_nests_customer_and_payment(self, store, configuration, customer):
        quote, config_record, _ = quote_service.create_quote(store, configuration, customer, now=NOW)
        data = quote_service.serialize_quote(quote, config_record)

        assert data["quoteNumber"] == "Q4-2025-00001"
        assert data["customer"]["phone"] == {"countryPrefix": "+353", "phoneNum": "871234567"}
        assert data["payment"] == {
            "status": "pre-quote",
            "totalPaid": 0.0,
            "expectedInstallments": None,
            "lastPaymentAt": None,
        }
        assert data["submittedAt"] == "2025-11-05T10:30:00Z"
        assert data["configuration"]["estimate"]["total"] == 32604.84
        assert data["configuration"]["vatRate"] == 0.23


class TestExpiredQuotes:
    def test_lists_only_expired_unpaid_quotes(self, store, configuration, customer):
        old = make_quote(store, configuration, customer, now=NOW - timedelta(days=60))
        old_paid = make_quote(store, configuration, customer, now=NOW - timedelta(days=45))
        old_installments = make_quote(store, configuration, customer, now=NOW - timedelta(days=40))
        recent = make_quote(store, configuration, customer, now=NOW - timedelta(days=5))

        payment_service.append_payment(store, old_paid["id"], "FINAL", 32604.84)
        payment_service.append_payment(store, old_installments["id"], "INSTALLMENT", 1000, installment_number=1)

        expired = maintenance_service.find_expired_quotes(store, now=NOW)
        ids = [q["id"] for q in expired]
        assert ids == [old["id"]]
        assert recent["id"] not in ids

    def test_sorted_by_expiry(self, store, configuration, customer):
        newer = make_quote(store, configuration, customer, now=NOW - timedelta(days=35))
        older = make_quote(store, configuration, customer, now=NOW - timedelta(days=50))
        expired = maintenance_service.find_expired_quotes(store, now=NOW)
        assert [q["id"] for q in expired] == [older["id"], newer["id"]]
