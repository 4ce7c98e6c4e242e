"""
Tests for statement transformers.
"""

import hashlib
from decimal import Decimal

import pytest

from ledger_import.transformers import compute_row_checksum, read_amex_csv, transform_amex


class TestTransformAmex:
    """Amex row parsing."""

    def test_fields(self, sample_parsed):
        assert sample_parsed.date == "2025-02-03"
        assert sample_parsed.description == "WOOLWORTHS 1234 SYDNEY"
        assert sample_parsed.amount == Decimal("-45.20")
        assert sample_parsed.account == "Amex"
        assert sample_parsed.location == "North Sydney"
        assert sample_parsed.online is False

    def test_raw_row_and_checksum(self, sample_amex_row, sample_parsed):
        """The checksum is the SHA-256 of the serialized row."""
        assert sample_parsed.raw_row.startswith('{"Date":"03/02/2025"')
        assert sample_parsed.checksum == hashlib.sha256(
            sample_parsed.raw_row.encode("utf-8")
        ).hexdigest()
        assert sample_parsed.checksum == compute_row_checksum(sample_amex_row)

    def test_identical_rows_share_checksum(self, sample_amex_row):
        assert transform_amex(dict(sample_amex_row)).checksum == transform_amex(
            dict(sample_amex_row)
        ).checksum

    def test_online_detection(self, sample_amex_row):
        sample_amex_row["Description"] = "NETFLIX.COM           MELBOURNE"
        assert transform_amex(sample_amex_row).online is True

    def test_refund_becomes_positive(self, sample_amex_row):
        sample_amex_row["Amount"] = "-12.00"
        assert transform_amex(sample_amex_row).amount == Decimal("12.00")

    def test_missing_town(self, sample_amex_row):
        sample_amex_row["Town/City"] = ""
        assert transform_amex(sample_amex_row).location is None

    @pytest.mark.parametrize("field,value", [("Date", "2025-02-03"), ("Amount", "abc")])
    def test_invalid_values(self, sample_amex_row, field, value):
        sample_amex_row[field] = value
        with pytest.raises(ValueError):
            transform_amex(sample_amex_row)


class TestReadAmexCsv:
    """CSV file reading."""

    def test_reads_rows_and_skips_bad_ones(self, tmp_path):
        path = tmp_path / "amex.csv"
        path.write_text(
            "Date,Description,Amount,Town/City\n"
            '03/02/2025,COLES 123,10.50,"SYDNEY\nNSW"\n'
            "bad-date,ALDI,5.00,\n"
            "04/02/2025,PAYPAL *STEAM,20.00,\n",
            encoding="utf-8",
        )

        transactions = read_amex_csv(path)

        assert [t.description for t in transactions] == ["COLES 123", "PAYPAL *STEAM"]
        assert transactions[0].location == "Sydney"
        assert transactions[1].online is True
