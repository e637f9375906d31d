import pytest

from gst_recon import differ
from gst_recon.models import Amounts, GroupedRow


def _g(tax_id, invoice_id, taxable, invoice_value=None, igst=0.0, cgst=0.0, sgst=0.0):
    if invoice_value is None:
        invoice_value = taxable + igst + cgst + sgst
    return GroupedRow(tax_id=tax_id, invoice_id=invoice_id, amounts=Amounts(
        invoice_value=invoice_value, igst=igst, cgst=cgst, sgst=sgst, taxable=taxable))


NAMES = {"X1": "ACME", "X2": "BETA", "X3": "ACME"}


@pytest.mark.parametrize("a,b,eps", [(100.0, 95.0, 10.0), (100.0, 80.0, 10.0), (3.0, 3.0, 0.0), (0.0, 10.0, 10.0)])
def test_clamp_is_antisymmetric(a, b, eps):
    forward, backward = differ.clamp(a - b, eps), differ.clamp(b - a, eps)
    if abs(a - b) <= eps:
        assert forward == 0 and backward == 0
    else:
        assert forward == -backward != 0


def test_totals_view_is_unclamped():
    table = differ.build_totals([_g("X1", "A1", 100.0, invoice_value=100.0)],
                                [_g("X1", "A1", 90.0, invoice_value=90.0)])
    assert len(table) == 4
    assert table[1][0] == "GST as Per Book Data"
    assert table[1][1] == 100.0
    assert table[2][1] == 90.0
    assert table[3] == ["Difference", 10.0, 0.0, 0.0, 0.0, 10.0]


def test_directional_views_follow_driving_side():
    book = [_g("X1", "A1", 1000.0), _g("X2", "B1", 500.0)]
    statement = [_g("X1", "A1", 995.0), _g("X3", "C1", 70.0)]

    forward = differ.build_book_vs_statement(book, statement, NAMES, 10.0)
    assert forward[0][1] == "Invoice Number from Purchase Book"
    assert forward[1:] == [["ACME", "A1", 1000.0, 995.0, 0.0], ["BETA", "B1", 500.0, 0.0, 500.0]]

    backward = differ.build_statement_vs_book(statement, book, NAMES, 10.0)
    assert backward[1:] == [["ACME", "A1", 995.0, 1000.0, 0.0], ["ACME", "C1", 70.0, 0.0, 70.0]]


def test_bills_wise_statuses_and_order():
    book = [
        _g("X2", "B1", 100.0, igst=18.0),
        _g("X1", "A2", 100.0, igst=18.0),
        _g("X1", "A1", 100.0, igst=18.0),
    ]
    statement = [
        _g("X1", "A1", 100.0, igst=18.0),
        _g("X1", "A2", 70.0, invoice_value=118.0, igst=48.0),
        _g("X3", "C1", 50.0),
    ]
    table = differ.build_bills_wise(book, statement, 10.0)
    assert table[0][-1] == "Status"
    by_key = {(r[0], r[1]): r[-1] for r in table[1:]}
    assert [(r[0], r[1]) for r in table[1:]] == [("X1", "A1"), ("X1", "A2"), ("X2", "B1"), ("X3", "C1")]
    assert by_key[("X1", "A1")] == "Match"
    assert by_key[("X1", "A2")] == "Mismatch: Tax, Taxable"
    assert by_key[("X2", "B1")] == "Missing in 2B"
    assert by_key[("X3", "C1")] == "Missing in Book"


def test_tax_id_rollup_sums_before_differencing():
    book = [_g("X1", "A1", 600.0), _g("X1", "A2", 400.0)]
    statement = [_g("X1", "A1", 995.0)]
    table = differ.build_tax_id_wise(book, statement, 10.0)
    row = table[1]
    assert row[0] == "X1"
    assert row[7] == 1000.0 and row[8] == 995.0 and row[9] == 0.0
    assert row[-1] == "Match"


def test_name_rollup_groups_tax_ids_sharing_a_name():
    book = [_g("X1", "A1", 100.0), _g("X3", "C1", 100.0), _g("X2", "B1", 10.0)]
    statement = [_g("X1", "A1", 200.0)]
    table = differ.build_name_wise(book, statement, NAMES, 10.0)
    assert [r[0] for r in table[1:]] == ["ACME", "BETA"]
    acme = table[1]
    assert acme[7] == 200.0 and acme[8] == 200.0
    assert acme[-1] == "Match"
    assert table[2][-1] == "Missing in 2B"


def test_matched_by_tax_id_counts_only_taxable_matches():
    book = [_g("X2", "B1", 100.0), _g("X1", "A1", 1000.0), _g("X1", "A2", 500.0), _g("X1", "A3", 1.0)]
    statement = [_g("X1", "A1", 995.0), _g("X1", "A2", 400.0), _g("X2", "B1", 100.0)]
    table = differ.build_matched_by_tax_id(book, statement, NAMES, 10.0)
    assert table[1] == ["X1", "ACME", 1, 1000.0, 995.0, 5.0]
    assert table[2] == ["X2", "BETA", 1, 100.0, 100.0, 0.0]
    assert table[3] == []
    assert table[4] == ["Grand Total", "", 2, 1100.0, 1095.0, 5.0]


def test_perfect_matches_need_all_three_fields():
    book = [
        _g("X1", "A1", 100.0, igst=18.0),
        _g("X1", "A2", 100.0, igst=18.0),
        _g("X2", "B1", 100.0),
    ]
    statement = [
        _g("X1", "A1", 100.0, igst=18.0),
        _g("X1", "A2", 100.0, igst=40.0),
    ]
    table = differ.build_perfect_matches(book, statement, NAMES, 10.0)
    assert len(table) == 4
    assert table[1][:3] == ["X1", "ACME", "A1"]
    assert table[1][-1] == "Perfect Match"
    assert table[2] == []
    assert table[3] == ["Total Matched Invoices", "", 1, 118.0, 118.0, 18.0, 18.0, 100.0, 100.0, ""]


def test_build_views_names_every_sheet():
    views = differ.build_views([_g("X1", "A1", 1.0)], [], NAMES, 10.0)
    assert list(views) == [
        differ.SHEET_BOOK_VS_STATEMENT,
        differ.SHEET_STATEMENT_VS_BOOK,
        differ.SHEET_TOTALS,
        differ.SHEET_BILLS_WISE,
        differ.SHEET_TAX_ID_WISE,
        differ.SHEET_NAME_WISE,
        differ.SHEET_MATCHED_BY_TAX_ID,
        differ.SHEET_PERFECT_MATCHES,
    ]


def test_count_statuses_buckets_mismatches():
    table = [["hdr"], ["a", "Match"], ["b", "Mismatch: Tax"], ["c", "Mismatch: Invoice, Taxable"], ["d", "Missing in Book"]]
    assert differ.count_statuses(table) == {"Match": 1, "Mismatch": 2, "Missing in Book": 1}
