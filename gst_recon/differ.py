"""
Report tables comparing the purchase book against GSTR-2B.

Every builder returns a list of rows (header first) ready to be written as
one sheet. Differences are clamped to zero inside the tolerance band,
except in the totals sheet which shows the raw difference.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from gst_recon.aggregator import index_by_key
from gst_recon.models import ZERO, Amounts, GroupedRow

Table = List[List[Any]]

STATUS_MATCH = 'Match'
STATUS_MISSING_IN_STATEMENT = 'Missing in 2B'
STATUS_MISSING_IN_BOOK = 'Missing in Book'

SHEET_BOOK_VS_STATEMENT = 'Zoho Book Vs GSTR'
SHEET_STATEMENT_VS_BOOK = 'GSTR VS Zoho Book'
SHEET_TOTALS = 'Sum Function'
SHEET_BILLS_WISE = 'Bills Wise Summary'
SHEET_TAX_ID_WISE = 'GSTIN Wise Summary'
SHEET_NAME_WISE = 'Trade Name Wise Summary'
SHEET_MATCHED_BY_TAX_ID = 'Matched Taxable by GSTIN'
SHEET_PERFECT_MATCHES = 'Invoice Wise Match'

_ROLLUP_COLUMNS = [
    'Book: Invoice Value', '2B: Invoice Value', 'Diff: Invoice Value',
    'Book: Total Tax', '2B: Total Tax', 'Diff: Total Tax',
    'Book: Taxable', '2B: Taxable', 'Diff: Taxable', 'Status',
]


def clamp(diff: float, eps: float) -> float:
    """Report a difference as 0 when it lies within +/- eps."""
    return 0.0 if abs(diff) <= eps else diff


def _diffs(left: Amounts, right: Amounts, eps: float) -> Tuple[float, float, float]:
    return (
        clamp(left.invoice_value - right.invoice_value, eps),
        clamp(left.total_tax - right.total_tax, eps),
        clamp(left.taxable - right.taxable, eps),
    )


def classify_status(on_left: bool, on_right: bool, diffs: Tuple[float, float, float]) -> str:
    """
    Status of one unit (invoice, tax id or name) seen from both sides.

    A mismatch lists the failing fields in the fixed order
    Invoice, Tax, Taxable.
    """
    if on_left and not on_right:
        return STATUS_MISSING_IN_STATEMENT
    if on_right and not on_left:
        return STATUS_MISSING_IN_BOOK
    problems = [label for label, d in zip(('Invoice', 'Tax', 'Taxable'), diffs) if d != 0]
    if problems:
        return 'Mismatch: ' + ', '.join(problems)
    return STATUS_MATCH


def _comparison_cells(left: Amounts, right: Amounts, eps: float) -> Tuple[List[Any], Tuple[float, float, float]]:
    d_inv, d_tax, d_taxable = _diffs(left, right, eps)
    cells = [
        left.invoice_value, right.invoice_value, d_inv,
        left.total_tax, right.total_tax, d_tax,
        left.taxable, right.taxable, d_taxable,
    ]
    return cells, (d_inv, d_tax, d_taxable)


def _directional(left: List[GroupedRow], right: List[GroupedRow],
                 name_by_key: Mapping[str, str], eps: float, header: List[str]) -> Table:
    right_map = index_by_key(right)
    rows: Table = [header]
    for row in left:
        counterpart = right_map.get(row.key)
        other_taxable = counterpart.amounts.taxable if counterpart else 0.0
        rows.append([
            name_by_key.get(row.tax_id, ''),
            row.invoice_id,
            row.amounts.taxable,
            other_taxable,
            clamp(row.amounts.taxable - other_taxable, eps),
        ])
    return rows


def build_book_vs_statement(book: List[GroupedRow], statement: List[GroupedRow],
                            name_by_key: Mapping[str, str], eps: float) -> Table:
    """Every book invoice with its GSTR-2B taxable value, in book order."""
    return _directional(book, statement, name_by_key, eps, [
        'Trade Name',
        'Invoice Number from Purchase Book',
        'Taxable Value from Purchase Book',
        'Taxable Value from GSTR-2B',
        'Difference',
    ])


def build_statement_vs_book(statement: List[GroupedRow], book: List[GroupedRow],
                            name_by_key: Mapping[str, str], eps: float) -> Table:
    """Every GSTR-2B invoice with its book taxable value, in statement order."""
    return _directional(statement, book, name_by_key, eps, [
        'Trade Name',
        'Invoice Number from GSTR-2B',
        'Taxable Value from GSTR-2B',
        'Taxable Value from Purchase Book',
        'Difference',
    ])


def totals(rows: Iterable[GroupedRow]) -> Amounts:
    total = ZERO
    for row in rows:
        total = total + row.amounts
    return total


def build_totals(book: List[GroupedRow], statement: List[GroupedRow]) -> Table:
    """Grand totals per side and their raw (unclamped) difference."""
    tb, ts = totals(book), totals(statement)

    def cells(a: Amounts) -> List[float]:
        return [a.invoice_value, a.igst, a.cgst, a.sgst, a.taxable]

    return [
        ['Particulars', 'Invoice Value', 'Integrated Tax (IGST)', 'Central Tax (CGST)',
         'State Tax (SGST)', 'Taxable Value'],
        ['GST as Per Book Data'] + cells(tb),
        ['GST as Per GSTR-2B'] + cells(ts),
        ['Difference'] + [b - s for b, s in zip(cells(tb), cells(ts))],
    ]


def build_bills_wise(book: List[GroupedRow], statement: List[GroupedRow], eps: float) -> Table:
    """Invoice-level comparison over the union of both sides, sorted by key."""
    left_map, right_map = index_by_key(book), index_by_key(statement)
    keys = set(left_map) | set(right_map)
    rows: Table = [['GSTIN of Supplier', 'Invoice Number'] + _ROLLUP_COLUMNS]
    for key in sorted(keys, key=lambda k: f"{k[0]}|{k[1]}"):
        left, right = left_map.get(key), right_map.get(key)
        cells, diffs = _comparison_cells(
            left.amounts if left else ZERO, right.amounts if right else ZERO, eps)
        status = classify_status(left is not None, right is not None, diffs)
        rows.append([key[0], key[1]] + cells + [status])
    return rows


def _rollup(rows: Iterable[GroupedRow], group_of: Callable[[GroupedRow], str]) -> Dict[str, Amounts]:
    sums: Dict[str, Amounts] = {}
    for row in rows:
        group = group_of(row)
        sums[group] = sums.get(group, ZERO) + row.amounts
    return sums


def _rollup_table(label: str, left: Dict[str, Amounts], right: Dict[str, Amounts], eps: float) -> Table:
    rows: Table = [[label] + _ROLLUP_COLUMNS]
    for group in sorted(set(left) | set(right)):
        cells, diffs = _comparison_cells(left.get(group, ZERO), right.get(group, ZERO), eps)
        status = classify_status(group in left, group in right, diffs)
        rows.append([group] + cells + [status])
    return rows


def build_tax_id_wise(book: List[GroupedRow], statement: List[GroupedRow], eps: float) -> Table:
    """Per-supplier totals compared side by side."""
    left = _rollup(book, lambda r: r.tax_id)
    right = _rollup(statement, lambda r: r.tax_id)
    return _rollup_table('GSTIN of Supplier', left, right, eps)


def build_name_wise(book: List[GroupedRow], statement: List[GroupedRow],
                    name_by_key: Mapping[str, str], eps: float) -> Table:
    """Same as the GSTIN rollup, grouped by resolved trade name instead."""
    left = _rollup(book, lambda r: name_by_key.get(r.tax_id, ''))
    right = _rollup(statement, lambda r: name_by_key.get(r.tax_id, ''))
    return _rollup_table('Trade Name', left, right, eps)


def build_matched_by_tax_id(book: List[GroupedRow], statement: List[GroupedRow],
                            name_by_key: Mapping[str, str], eps: float) -> Table:
    """
    Count and total the invoice pairs whose taxable values agree, per GSTIN.

    Only invoices present on both sides are considered. A blank row and a
    Grand Total row close the table.
    """
    right_map = index_by_key(statement)
    matched: Dict[str, List[float]] = {}
    for left in book:
        right = right_map.get(left.key)
        if right is None or clamp(left.amounts.taxable - right.amounts.taxable, eps) != 0:
            continue
        acc = matched.setdefault(left.tax_id, [0, 0.0, 0.0])
        acc[0] += 1
        acc[1] += left.amounts.taxable
        acc[2] += right.amounts.taxable

    rows: Table = [[
        'GSTIN of Supplier', 'Trade Name', 'Matched Invoices (Taxable)',
        'Book: Taxable (Matched)', '2B: Taxable (Matched)', 'Diff: Taxable (Matched)',
    ]]
    grand = [0, 0.0, 0.0]
    for tax_id in sorted(matched):
        count, book_taxable, statement_taxable = matched[tax_id]
        rows.append([tax_id, name_by_key.get(tax_id, ''), count,
                     book_taxable, statement_taxable, book_taxable - statement_taxable])
        grand = [grand[0] + count, grand[1] + book_taxable, grand[2] + statement_taxable]

    rows.append([])
    rows.append(['Grand Total', '', grand[0], grand[1], grand[2], grand[1] - grand[2]])
    return rows


def build_perfect_matches(book: List[GroupedRow], statement: List[GroupedRow],
                          name_by_key: Mapping[str, str], eps: float) -> Table:
    """Invoices agreeing on invoice value, total tax and taxable value at once."""
    right_map = index_by_key(statement)
    rows: Table = [[
        'GSTIN of Supplier', 'Trade Name', 'Invoice Number',
        'Book: Invoice Value', '2B: Invoice Value',
        'Book: Total Tax', '2B: Total Tax',
        'Book: Taxable Value', '2B: Taxable Value',
        'Match Status',
    ]]
    count = 0
    sums = [0.0] * 6
    for left in book:
        right = right_map.get(left.key)
        if right is None:
            continue
        if any(_diffs(left.amounts, right.amounts, eps)):
            continue
        values = [
            left.amounts.invoice_value, right.amounts.invoice_value,
            left.amounts.total_tax, right.amounts.total_tax,
            left.amounts.taxable, right.amounts.taxable,
        ]
        rows.append([left.tax_id, name_by_key.get(left.tax_id, ''), left.invoice_id]
                    + values + ['Perfect Match'])
        count += 1
        sums = [s + v for s, v in zip(sums, values)]

    rows.append([])
    rows.append(['Total Matched Invoices', '', count] + sums + [''])
    return rows


def build_views(book: List[GroupedRow], statement: List[GroupedRow],
                name_by_key: Mapping[str, str], eps: float) -> Dict[str, Table]:
    """All report sheets, in workbook order."""
    return {
        SHEET_BOOK_VS_STATEMENT: build_book_vs_statement(book, statement, name_by_key, eps),
        SHEET_STATEMENT_VS_BOOK: build_statement_vs_book(statement, book, name_by_key, eps),
        SHEET_TOTALS: build_totals(book, statement),
        SHEET_BILLS_WISE: build_bills_wise(book, statement, eps),
        SHEET_TAX_ID_WISE: build_tax_id_wise(book, statement, eps),
        SHEET_NAME_WISE: build_name_wise(book, statement, name_by_key, eps),
        SHEET_MATCHED_BY_TAX_ID: build_matched_by_tax_id(book, statement, name_by_key, eps),
        SHEET_PERFECT_MATCHES: build_perfect_matches(book, statement, name_by_key, eps),
    }


def count_statuses(table: Table) -> Dict[str, int]:
    """Tally the Status column of a bills/GSTIN/name-wise table."""
    counts: Dict[str, int] = {}
    for row in table[1:]:
        status: Optional[str] = row[-1] if row else None
        if not status:
            continue
        bucket = 'Mismatch' if status.startswith('Mismatch') else status
        counts[bucket] = counts.get(bucket, 0) + 1
    return counts
