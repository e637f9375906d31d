"""
Collapse duplicate line entries into one row per invoice.
"""

from typing import Dict, Iterable, List

from gst_recon.models import CleanRow, GroupedRow, InvoiceKey


def group_by_key(rows: Iterable[CleanRow]) -> List[GroupedRow]:
    """
    Group clean rows by (tax_id, invoice_id).

    Amounts are summed; the first non-empty invoice date is kept. Output
    follows the order in which each key was first seen.
    """
    grouped: Dict[InvoiceKey, GroupedRow] = {}
    for row in rows:
        current = grouped.get(row.key)
        if current is None:
            grouped[row.key] = GroupedRow(
                tax_id=row.tax_id,
                invoice_id=row.invoice_id,
                invoice_date=row.invoice_date,
                amounts=row.amounts,
            )
            continue
        grouped[row.key] = GroupedRow(
            tax_id=current.tax_id,
            invoice_id=current.invoice_id,
            invoice_date=current.invoice_date or row.invoice_date,
            amounts=current.amounts + row.amounts,
        )
    return list(grouped.values())


def index_by_key(rows: Iterable[GroupedRow]) -> Dict[InvoiceKey, GroupedRow]:
    return {row.key: row for row in rows}
