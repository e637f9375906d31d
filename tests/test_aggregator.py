from gst_recon import aggregator
from gst_recon.models import Amounts, CleanRow


def _row(tax_id, invoice_id, taxable, date="", igst=0.0):
    return CleanRow(tax_id=tax_id, invoice_id=invoice_id, invoice_date=date,
                    amounts=Amounts(invoice_value=taxable + igst, igst=igst, taxable=taxable))


def test_duplicate_lines_are_summed():
    rows = [
        _row("X1", "A1", 100.0, igst=18.0),
        _row("X1", "A1", 50.0, igst=9.0),
        _row("X2", "A1", 10.0),
    ]
    grouped = aggregator.group_by_key(rows)
    assert len(grouped) == 2
    first = grouped[0]
    assert first.key == ("X1", "A1")
    assert first.amounts.taxable == 150.0
    assert first.amounts.igst == 27.0
    assert first.amounts.invoice_value == 177.0


def test_first_non_empty_date_wins():
    rows = [
        _row("X1", "A1", 1.0, date=""),
        _row("X1", "A1", 1.0, date="2024-04-01"),
        _row("X1", "A1", 1.0, date="2024-05-01"),
    ]
    assert aggregator.group_by_key(rows)[0].invoice_date == "2024-04-01"


def test_output_keeps_first_occurrence_order():
    rows = [_row("B", "2", 1.0), _row("A", "1", 1.0), _row("B", "2", 1.0), _row("C", "3", 1.0)]
    assert [g.key for g in aggregator.group_by_key(rows)] == [("B", "2"), ("A", "1"), ("C", "3")]


def test_empty_input():
    assert aggregator.group_by_key([]) == []


def test_regrouping_is_idempotent():
    rows = [
        _row("X1", "A1", 100.25, date="2024-04-01", igst=18.5),
        _row("X1", "A1", 0.75),
        _row("X2", "B7", 40.0),
    ]
    once = aggregator.group_by_key(rows)
    twice = aggregator.group_by_key([g.as_clean_row() for g in once])
    assert twice == once
