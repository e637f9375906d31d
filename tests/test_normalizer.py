import math
from datetime import datetime

import pytest

from gst_recon import normalizer


@pytest.mark.parametrize("raw", ["INV-007", "inv007", "INV007", " inv - 007 "])
def test_invoice_id_variants_collapse(raw):
    assert normalizer.clean_invoice_id(raw) == "INV7"


def test_invoice_id_edge_cases():
    assert normalizer.clean_invoice_id("000") == "000"
    assert normalizer.clean_invoice_id("007/A") == "7/A"
    assert normalizer.clean_invoice_id("A-01") == "A1"
    assert normalizer.clean_invoice_id("gst\\24-25\\01") == "GST/2425/1"
    assert normalizer.clean_invoice_id("INV10045") == "INV10045"
    assert normalizer.clean_invoice_id("2024/005") == "2024/5"
    assert normalizer.clean_invoice_id(1234.0) == "1234"
    assert normalizer.clean_invoice_id(None) == ""


def test_tax_id_is_only_trimmed_and_uppercased():
    assert normalizer.clean_tax_id("  09aaa-1 ") == "09AAA-1"


def test_name_and_contact():
    assert normalizer.clean_name("  Acme   Co\tLtd ") == "ACME CO LTD"
    assert normalizer.clean_contact("  Accounts@Acme.IN ") == "accounts@acme.in"


def test_to_amount():
    assert normalizer.to_amount("1,23,456.50") == 123456.5
    assert normalizer.to_amount(" 99 ") == 99.0
    assert normalizer.to_amount("12abc") == 12.0
    assert normalizer.to_amount("₹1,200") == 1200.0
    assert normalizer.to_amount("") == 0.0
    assert normalizer.to_amount(None) == 0.0
    assert normalizer.to_amount("n/a") == 0.0
    assert normalizer.to_amount(float("nan")) == 0.0
    assert normalizer.to_amount(float("inf")) == 0.0
    assert normalizer.to_amount("1e999") == 0.0


def test_clean_date_formats():
    assert normalizer.clean_date(45000) == "2023-03-15"
    assert normalizer.clean_date("05/03/24") == "2024-03-05"
    assert normalizer.clean_date("5-3-2024") == "2024-03-05"
    assert normalizer.clean_date("2024-03-05") == "2024-03-05"
    assert normalizer.clean_date(datetime(2024, 1, 2, 10, 30)) == "2024-01-02"
    assert normalizer.clean_date("") == ""


def test_clean_date_dotted_is_day_first():
    assert normalizer.clean_date("05.03.2024") == "2024-03-05"
    assert normalizer.clean_date("5.3.24") == "2024-03-05"


def test_clean_date_partial_is_stable():
    assert normalizer.clean_date("Mar 2024") == "2024-03-01"
    assert normalizer.clean_date("5 Mar 2024") == "2024-03-05"
    assert normalizer.clean_date("05 03 2024") == "2024-03-05"


def test_clean_date_passes_unparseable_through():
    assert normalizer.clean_date(" unknown ") == "unknown"
    assert normalizer.clean_date("31/02/2024") == "31/02/2024"


def test_normalize_majority_name_and_first_contact():
    rows = [
        {"GSTIN of Supplier": "09AAA", "Trade Name": "ACME", "Email": ""},
        {"GSTIN of Supplier": "09aaa ", "Trade Name": "Acme Co", "Email": "first@acme.in"},
        {"GSTIN of Supplier": "09AAA", "Trade Name": " acme ", "Email": "second@acme.in"},
    ]
    result = normalizer.normalize(rows)
    assert result.name_by_key == {"09AAA": "ACME"}
    assert result.contact_by_key == {"09AAA": "first@acme.in"}


def test_normalize_name_tie_goes_to_first_seen():
    rows = [
        {"GSTIN of Supplier": "X1", "Trade Name": "BETA"},
        {"GSTIN of Supplier": "X1", "Trade Name": "ALPHA"},
    ]
    assert normalizer.normalize(rows).name_by_key["X1"] == "BETA"


def test_normalize_tolerates_missing_columns():
    result = normalizer.normalize([{"Unrelated": "x"}])
    row = result.clean[0]
    assert row.tax_id == ""
    assert row.invoice_id == ""
    assert row.invoice_date == ""
    assert row.amounts.taxable == 0.0
    assert result.name_by_key == {}
    assert result.anomalies == 0


def test_normalize_counts_anomalies_and_stays_finite():
    rows = [{
        "GSTIN of Supplier": "X1",
        "Invoice Number": "1",
        "Invoice Date": "someday",
        "Invoice Value": "abc",
        "Taxable Value": "1,000",
        "Central Tax (CGST)": float("nan"),
    }]
    result = normalizer.normalize(rows)
    amounts = result.clean[0].amounts
    assert result.anomalies == 3
    assert amounts.taxable == 1000.0
    assert amounts.invoice_value == 0.0
    assert all(math.isfinite(v) for v in amounts.to_dict().values())


def test_normalize_empty_input():
    result = normalizer.normalize([])
    assert result.clean == []
    assert result.name_by_key == {}
    assert result.contact_by_key == {}


def test_gstin_checksum():
    assert normalizer.gstin_checksum_ok("27AAPFU0939F1ZV")
    assert not normalizer.gstin_checksum_ok("27AAPFU0939F1ZA")
    assert not normalizer.gstin_checksum_ok("09AAA")
