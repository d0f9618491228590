"""Tests for the canonical transaction contract and cleaning pipeline."""

import math
from datetime import datetime, timezone

import pytest

from customer_intelligence.foundation.transactions import (
    NO_TRANSACTIONS_NOTICE,
    CanonicalTransaction,
    CleaningOptions,
    ColumnMapping,
    clean_transactions,
    clean_transactions_report,
    parse_invoice_date,
    parse_number,
)

MAPPING = ColumnMapping(
    customer_id="Customer",
    invoice_id="Invoice",
    invoice_date="Date",
    quantity="Qty",
    unit_price="Price",
    description="Item",
)


def raw(customer="C1", invoice="I1", date="2023-01-15", qty="2", price="5.00", item="Mug"):
    return {
        "Invoice": invoice,
        "Item": item,
        "Qty": qty,
        "Date": date,
        "Price": price,
        "Customer": customer,
    }


class TestParseNumber:
    """Test leading-numeric parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("3", 3.0),
            (" 12.5 units", 12.5),
            ("3 pcs", 3.0),
            ("-2", -2.0),
            (".5", 0.5),
            ("1e3", 1000.0),
            (7, 7.0),
        ],
    )
    def test_numeric_prefix(self, value, expected):
        """The leading numeric portion is parsed."""
        assert parse_number(value) == expected

    @pytest.mark.parametrize("value", ["abc", "", None, "$5"])
    def test_non_numeric_is_nan(self, value):
        """Values without a leading number parse to NaN."""
        assert math.isnan(parse_number(value))


class TestParseInvoiceDate:
    """Test invoice date parsing."""

    def test_iso_date_is_utc_midnight(self):
        """Naive ISO values are taken as UTC."""
        assert parse_invoice_date("2023-01-15") == datetime(2023, 1, 15, tzinfo=timezone.utc)

    def test_iso_with_zulu_suffix(self):
        """A trailing Z means UTC."""
        assert parse_invoice_date("2023-01-15T10:00:00Z") == datetime(
            2023, 1, 15, 10, tzinfo=timezone.utc
        )

    def test_iso_with_offset_converted_to_utc(self):
        """Aware ISO values are converted to UTC."""
        assert parse_invoice_date("2023-01-15T10:00:00+02:00") == datetime(
            2023, 1, 15, 8, tzinfo=timezone.utc
        )

    def test_month_day_year_with_time(self):
        """M/D/YYYY H:MM is parsed in UTC."""
        assert parse_invoice_date("12/1/2010 8:26") == datetime(
            2010, 12, 1, 8, 26, tzinfo=timezone.utc
        )

    def test_month_day_year_with_dashes_and_seconds(self):
        """Dash separators and seconds are accepted."""
        assert parse_invoice_date("12-01-2010 08:26:45") == datetime(
            2010, 12, 1, 8, 26, 45, tzinfo=timezone.utc
        )

    @pytest.mark.parametrize(
        "value",
        ["2/30/2023", "13/1/2023", "1/1/2023 24:00", "not a date", "", None],
    )
    def test_invalid_dates_rejected(self, value):
        """Dates that do not survive construction unchanged are rejected."""
        assert parse_invoice_date(value) is None

    @pytest.mark.parametrize(
        "value",
        ["12/31/9999 99:00", "9999-12-31T23:00:00-02:00"],
    )
    def test_dates_past_the_last_representable_day_rejected(self, value):
        """Rolling or converting past year 9999 returns None instead of raising."""
        assert parse_invoice_date(value) is None

    def test_last_representable_day_accepted(self):
        """The final day of year 9999 still parses."""
        assert parse_invoice_date("12/31/9999 23:00") == datetime(
            9999, 12, 31, 23, tzinfo=timezone.utc
        )


class TestColumnMapping:
    """Test ColumnMapping helpers."""

    def test_from_dict_accepts_camel_case(self):
        """External camelCase keys map onto roles."""
        mapping = ColumnMapping.from_dict(
            {
                "customerId": "Customer",
                "invoiceId": "Invoice",
                "invoiceDate": "Date",
                "quantity": "Qty",
                "unitPrice": "Price",
                "description": "Item",
            }
        )
        assert mapping == MAPPING
        assert mapping.as_dict()["customerId"] == "Customer"

    def test_missing_fields(self):
        """Unassigned roles are listed."""
        mapping = ColumnMapping.from_dict({"customer_id": "Customer", "quantity": "Qty"})

        assert mapping.missing_fields() == [
            "invoice_id",
            "invoice_date",
            "unit_price",
            "description",
        ]
        with pytest.raises(ValueError, match="Please map the following fields"):
            mapping.validate_against(["Customer", "Qty"])

    def test_unknown_header_raises(self):
        """Roles mapped to headers absent from the data are rejected."""
        with pytest.raises(ValueError, match="Mapped columns not found in data: unit_price='Price'"):
            MAPPING.validate_against(["Customer", "Invoice", "Date", "Qty", "Item"])


class TestCleaningOptions:
    """Test CleaningOptions construction."""

    def test_defaults_all_enabled(self):
        """All filters are on by default."""
        options = CleaningOptions()
        assert options.remove_duplicate_transactions
        assert options.remove_null_customer_id
        assert options.remove_negative_quantity
        assert options.handle_missing_unit_price

    def test_from_dict_camel_case(self):
        """External option names are accepted."""
        options = CleaningOptions.from_dict({"removeDuplicateTransactions": False})
        assert not options.remove_duplicate_transactions
        assert options.remove_null_customer_id

    def test_unknown_option_raises(self):
        """Unknown option names are rejected."""
        with pytest.raises(ValueError, match="Unknown cleaning option"):
            CleaningOptions.from_dict({"dropEverything": True})


class TestCanonicalTransaction:
    """Test CanonicalTransaction invariants."""

    def make(self, **overrides):
        values = dict(
            customer_id="C1",
            invoice_id="I1",
            description="Mug",
            invoice_date=datetime(2023, 1, 1, tzinfo=timezone.utc),
            quantity=2.0,
            unit_price=5.0,
            total_price=10.0,
        )
        values.update(overrides)
        return CanonicalTransaction(**values)

    def test_valid(self):
        """A valid transaction is created."""
        assert self.make().total_price == 10.0

    def test_non_positive_total_raises(self):
        """Totals must be positive."""
        with pytest.raises(ValueError, match="Total price must be positive"):
            self.make(total_price=0.0)

    def test_naive_date_raises(self):
        """Dates must be timezone-aware."""
        with pytest.raises(ValueError, match="timezone-aware"):
            self.make(invoice_date=datetime(2023, 1, 1))

    def test_empty_invoice_raises(self):
        """Invoice IDs must not be empty."""
        with pytest.raises(ValueError, match="Invoice ID cannot be empty"):
            self.make(invoice_id="")


class TestCleanTransactions:
    """Test the cleaning pipeline."""

    def test_derives_canonical_fields(self):
        """Valid rows become canonical transactions."""
        [txn] = clean_transactions([raw()], MAPPING)

        assert txn.customer_id == "C1"
        assert txn.invoice_id == "I1"
        assert txn.description == "Mug"
        assert txn.invoice_date == datetime(2023, 1, 15, tzinfo=timezone.utc)
        assert txn.quantity == 2.0
        assert txn.unit_price == 5.0
        assert txn.total_price == 10.0

    def test_duplicates_removed_first_wins(self):
        """Exact duplicate rows are collapsed."""
        rows = [raw(), raw(), raw(invoice="I2")]

        report = clean_transactions_report(rows, MAPPING)

        assert [t.invoice_id for t in report.transactions] == ["I1", "I2"]
        assert report.input_count == 3
        assert report.dropped_count == 1

    def test_duplicates_kept_when_disabled(self):
        """Duplicate removal can be switched off."""
        rows = [raw(), raw()]
        options = CleaningOptions(remove_duplicate_transactions=False)

        assert len(clean_transactions(rows, MAPPING, options)) == 2

    def test_null_customer_filter(self):
        """Rows without a customer are removed unless the filter is off."""
        rows = [raw(customer=""), raw(invoice="I2")]

        assert len(clean_transactions(rows, MAPPING)) == 1
        kept = clean_transactions(rows, MAPPING, CleaningOptions(remove_null_customer_id=False))
        assert [t.customer_id for t in kept] == ["", "C1"]

    def test_quantity_and_price_filters(self):
        """Non-positive or non-numeric quantities and prices are removed."""
        rows = [
            raw(invoice="I1", qty="-1"),
            raw(invoice="I2", qty="abc"),
            raw(invoice="I3", price="0"),
            raw(invoice="I4", price=""),
            raw(invoice="I5"),
        ]

        assert [t.invoice_id for t in clean_transactions(rows, MAPPING)] == ["I5"]

    def test_positive_total_survives_disabled_filters(self):
        """With both filters off, only the final total check applies."""
        rows = [raw(qty="-1", price="-2"), raw(invoice="I2", qty="-1")]
        options = CleaningOptions(
            remove_negative_quantity=False, handle_missing_unit_price=False
        )

        [txn] = clean_transactions(rows, MAPPING, options)

        assert txn.total_price == 2.0

    def test_unparseable_rows_always_dropped(self):
        """Bad dates and empty descriptions are dropped regardless of options."""
        rows = [raw(date="2/30/2023"), raw(invoice="I2", item=""), raw(invoice="")]

        report = clean_transactions_report(rows, MAPPING)

        assert report.transactions == []
        assert report.notice == NO_TRANSACTIONS_NOTICE

    def test_overflowing_date_dropped(self):
        """A date rolling past year 9999 drops its row and keeps the rest."""
        rows = [raw(date="12/31/9999 99:00"), raw(invoice="I2")]

        [txn] = clean_transactions(rows, MAPPING)

        assert txn.invoice_id == "I2"

    def test_empty_input(self):
        """No rows produce the informational notice."""
        report = clean_transactions_report([], MAPPING)

        assert report.transactions == []
        assert report.notice == NO_TRANSACTIONS_NOTICE

    def test_mapping_validated_against_records(self):
        """Mapping to a column that does not exist raises."""
        mapping = ColumnMapping.from_dict({**MAPPING.roles(), "unit_price": "UnitPrice"})

        with pytest.raises(ValueError, match="Mapped columns not found"):
            clean_transactions([raw()], mapping)
