import logging

from gst_recon import mismatches
from gst_recon.aggregator import group_by_key
from gst_recon.mismatches import MismatchKind
from gst_recon.models import Amounts, GroupedRow
from gst_recon.normalizer import normalize


def _g(tax_id, invoice_id, taxable, igst=0.0):
    return GroupedRow(tax_id=tax_id, invoice_id=invoice_id,
                      amounts=Amounts(invoice_value=taxable + igst, igst=igst, taxable=taxable))


CONTACTS = {"X1": "x1@example.com", "X2": "x2@example.com"}
NAMES = {"X1": "ACME", "X2": "BETA"}


def _grouped(raw_rows):
    return group_by_key(normalize(raw_rows).clean)


def test_match_within_tolerance_is_skipped():
    book = _grouped([{"GSTIN of Supplier": "X1", "Invoice Number": "A-01", "Taxable Value": 1000}])
    statement = _grouped([{"GSTIN of Supplier": "X1", "Invoice Number": "A01", "Taxable Value": 995}])
    assert book[0].key == statement[0].key == ("X1", "A1")
    assert mismatches.extract_mismatches(book, statement, CONTACTS, NAMES, 10.0) == []


def test_amount_mismatch_beyond_tolerance():
    book = _grouped([{"GSTIN of Supplier": "X1", "Invoice Number": "A-01", "Taxable Value": 1000}])
    statement = _grouped([{"GSTIN of Supplier": "X1", "Invoice Number": "A01", "Taxable Value": 980}])
    records = mismatches.extract_mismatches(book, statement, CONTACTS, NAMES, 10.0)
    assert len(records) == 1
    entry = records[0].entries[0]
    assert entry.kind == MismatchKind.AMOUNT_MISMATCH
    assert entry.difference == 20.0
    assert entry.book.taxable == 1000.0
    assert entry.statement.taxable == 980.0


def test_missing_on_either_side():
    book = [_g("X1", "A1", 500.0, igst=90.0)]
    statement = [_g("X2", "B1", 300.0)]
    records = mismatches.extract_mismatches(book, statement, CONTACTS, NAMES, 10.0)
    assert [r.tax_id for r in records] == ["X1", "X2"]

    only_book = records[0].entries[0]
    assert only_book.kind == MismatchKind.MISSING_IN_STATEMENT
    assert only_book.difference == 500.0
    assert only_book.statement == Amounts()
    assert only_book.book.igst == 90.0

    only_statement = records[1].entries[0]
    assert only_statement.kind == MismatchKind.MISSING_IN_BOOK
    assert only_statement.difference == -300.0
    assert only_statement.book == Amounts()


def test_records_carry_name_contact_and_total():
    book = [_g("X1", "A1", 500.0), _g("X1", "A2", 100.0)]
    statement = [_g("X1", "A2", 150.0)]
    [record] = mismatches.extract_mismatches(book, statement, CONTACTS, NAMES, 10.0)
    assert record.display_name == "ACME"
    assert record.contact_address == "x1@example.com"
    assert [e.invoice_id for e in record.entries] == ["A1", "A2"]
    assert record.total_difference == 450.0


def test_unknown_name_falls_back():
    [record] = mismatches.extract_mismatches([_g("X1", "A1", 50.0)], [], CONTACTS, {}, 10.0)
    assert record.display_name == "Unknown"


def test_supplier_without_contact_is_skipped_and_logged(caplog):
    book = [_g("X9", "Z1", 500.0), _g("X1", "A1", 500.0)]
    with caplog.at_level(logging.WARNING, logger="gst_recon.mismatches"):
        records, skipped = mismatches.extract_mismatches_with_skips(book, [], CONTACTS, NAMES, 10.0)
    assert [r.tax_id for r in records] == ["X1"]
    assert skipped == ["X9"]
    assert "X9" in caplog.text


def test_every_key_is_matched_or_reported_once():
    book = [_g("X1", "A1", 100.0), _g("X1", "A2", 100.0), _g("X2", "B1", 100.0), _g("X2", "B2", 100.0)]
    statement = [_g("X1", "A1", 105.0), _g("X1", "A2", 150.0), _g("X2", "B3", 10.0), _g("X1", "A9", 1.0)]
    records = mismatches.extract_mismatches(book, statement, CONTACTS, NAMES, 10.0)

    reported = [(r.tax_id, e.invoice_id) for r in records for e in r.entries]
    assert len(reported) == len(set(reported))

    union = set(mismatches.union_keys(book, statement))
    assert union == {g.key for g in book} | {g.key for g in statement}
    assert union - set(reported) == {("X1", "A1")}


def test_union_keys_discovery_order():
    book = [_g("X2", "B1", 1.0), _g("X1", "A1", 1.0)]
    statement = [_g("X1", "A1", 1.0), _g("X3", "C1", 1.0)]
    assert mismatches.union_keys(book, statement) == [("X2", "B1"), ("X1", "A1"), ("X3", "C1")]


def test_extraction_is_deterministic():
    book = [_g("X1", "A1", 100.0), _g("X2", "B1", 200.0)]
    statement = [_g("X2", "B1", 100.0), _g("X1", "A5", 5.0)]
    first = mismatches.extract_mismatches(book, statement, CONTACTS, NAMES, 10.0)
    second = mismatches.extract_mismatches(book, statement, CONTACTS, NAMES, 10.0)
    assert first == second


def test_to_dict_is_json_ready():
    [record] = mismatches.extract_mismatches([_g("X1", "A1", 50.0)], [], CONTACTS, NAMES, 10.0)
    data = record.to_dict()
    assert data["entries"][0]["kind"] == "Missing in GSTR-2B"
    assert data["total_difference"] == 50.0
