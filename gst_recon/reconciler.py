"""
One reconciliation run: raw rows in, report tables and mismatch records out.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from gst_recon.aggregator import group_by_key
from gst_recon.config import ColumnMap, ReconConfig
from gst_recon.differ import SHEET_BILLS_WISE, Table, build_views, count_statuses
from gst_recon.errors import InputStructureError
from gst_recon.mismatches import MismatchRecord, extract_mismatches_with_skips
from gst_recon.normalizer import RawRow, gstin_checksum_ok, normalize

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    book_rows: int = 0
    statement_rows: int = 0
    book_invoices: int = 0
    statement_invoices: int = 0
    # Bills-wise status tally: Match / Mismatch / Missing in 2B / Missing in Book
    status_counts: Dict[str, int] = field(default_factory=dict)
    anomalies_corrected: int = 0
    suppliers_with_mismatches: int = 0
    skipped_without_contact: List[str] = field(default_factory=list)
    suspicious_tax_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'book_rows': self.book_rows,
            'statement_rows': self.statement_rows,
            'book_invoices': self.book_invoices,
            'statement_invoices': self.statement_invoices,
            'status_counts': dict(self.status_counts),
            'anomalies_corrected': self.anomalies_corrected,
            'suppliers_with_mismatches': self.suppliers_with_mismatches,
            'skipped_without_contact': list(self.skipped_without_contact),
            'suspicious_tax_ids': list(self.suspicious_tax_ids),
        }


@dataclass
class ReconResult:
    views: Dict[str, Table]
    mismatches: List[MismatchRecord]
    summary: RunSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': self.summary.to_dict(),
            'mismatches': [record.to_dict() for record in self.mismatches],
        }


def check_structure(rows: Sequence[RawRow], side: str, columns: ColumnMap) -> None:
    """
    Refuse a table that cannot be matched at all.

    Raises:
        InputStructureError: if the table is empty, or no row carries the
            GSTIN or invoice-number column.
    """
    if not rows:
        raise InputStructureError(f"{side} has no data rows")
    missing = [col for col in columns.key_columns() if not any(col in row for row in rows)]
    if missing:
        raise InputStructureError(
            f"{side} is missing required column(s): {', '.join(repr(c) for c in missing)}"
        )


def reconcile(book_rows: Sequence[RawRow], statement_rows: Sequence[RawRow],
              config: ReconConfig = ReconConfig()) -> ReconResult:
    """
    Reconcile purchase-book rows against GSTR-2B rows.

    Trade names come from GSTR-2B with non-empty book names taking
    precedence; contact addresses come from the book, with GSTR-2B as a
    fallback.

    Args:
        book_rows: Raw purchase-book rows.
        statement_rows: Raw GSTR-2B rows.
        config: Tolerance and column headers.

    Returns:
        ReconResult with report tables, mismatch records and run summary.
    """
    check_structure(book_rows, 'Purchase book', config.columns)
    check_structure(statement_rows, 'GSTR-2B', config.columns)

    book_norm = normalize(book_rows, config.columns)
    statement_norm = normalize(statement_rows, config.columns)

    name_by_key = dict(statement_norm.name_by_key)
    name_by_key.update({k: v for k, v in book_norm.name_by_key.items() if v})
    contact_by_key = dict(statement_norm.contact_by_key)
    contact_by_key.update(book_norm.contact_by_key)

    book = group_by_key(book_norm.clean)
    statement = group_by_key(statement_norm.clean)

    views = build_views(book, statement, name_by_key, config.eps)
    records, skipped = extract_mismatches_with_skips(
        book, statement, contact_by_key, name_by_key, config.eps)

    tax_ids = dict.fromkeys(row.tax_id for row in book + statement if row.tax_id)
    summary = RunSummary(
        book_rows=len(book_rows),
        statement_rows=len(statement_rows),
        book_invoices=len(book),
        statement_invoices=len(statement),
        status_counts=count_statuses(views[SHEET_BILLS_WISE]),
        anomalies_corrected=book_norm.anomalies + statement_norm.anomalies,
        suppliers_with_mismatches=len(records),
        skipped_without_contact=skipped,
        suspicious_tax_ids=[t for t in tax_ids if not gstin_checksum_ok(t)],
    )

    if summary.anomalies_corrected:
        logger.info("%d tolerable anomalies silently corrected", summary.anomalies_corrected)
    if skipped:
        logger.warning("%d supplier(s) skipped for missing contact", len(skipped))
    logger.info(
        "Reconciled %d book invoice(s) against %d GSTR-2B invoice(s) with eps=%s",
        len(book), len(statement), config.eps,
    )
    return ReconResult(views=views, mismatches=records, summary=summary)
