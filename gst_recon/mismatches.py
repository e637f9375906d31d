"""
Per-supplier discrepancy lists for notification.

Walks the union of invoice keys from both grouped tables and keeps every
invoice whose taxable value disagrees beyond the tolerance, bundling them
into one record per GSTIN.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from gst_recon.aggregator import index_by_key
from gst_recon.differ import clamp
from gst_recon.models import ZERO, Amounts, GroupedRow, InvoiceKey

logger = logging.getLogger(__name__)


class MismatchKind(str, Enum):
    MISSING_IN_STATEMENT = 'Missing in GSTR-2B'
    MISSING_IN_BOOK = 'Found only in GSTR-2B'
    AMOUNT_MISMATCH = 'Amount mismatch'


@dataclass(frozen=True)
class MismatchEntry:
    invoice_id: str
    kind: MismatchKind
    book: Amounts
    statement: Amounts
    # Book taxable minus GSTR-2B taxable
    difference: float
    invoice_date: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'invoice_id': self.invoice_id,
            'invoice_date': self.invoice_date,
            'kind': self.kind.value,
            'book': self.book.to_dict(),
            'statement': self.statement.to_dict(),
            'difference': self.difference,
        }


@dataclass(frozen=True)
class MismatchRecord:
    tax_id: str
    display_name: str
    contact_address: str
    entries: Tuple[MismatchEntry, ...] = field(default_factory=tuple)

    @property
    def total_difference(self) -> float:
        return sum(entry.difference for entry in self.entries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tax_id': self.tax_id,
            'display_name': self.display_name,
            'contact_address': self.contact_address,
            'total_difference': self.total_difference,
            'entries': [entry.to_dict() for entry in self.entries],
        }


def union_keys(book: List[GroupedRow], statement: List[GroupedRow]) -> List[InvoiceKey]:
    """Book keys in order, followed by keys found only in the statement."""
    seen = dict.fromkeys(row.key for row in book)
    for row in statement:
        seen.setdefault(row.key)
    return list(seen)


def diff_entry(key: InvoiceKey, left: Optional[GroupedRow], right: Optional[GroupedRow],
               eps: float) -> Optional[MismatchEntry]:
    """
    Build the discrepancy entry for one invoice key, or None if it matches.

    At least one of `left` and `right` must be given.
    """
    if left is not None and right is not None:
        diff = clamp(left.amounts.taxable - right.amounts.taxable, eps)
        if diff == 0:
            return None
        return MismatchEntry(
            invoice_id=key[1],
            kind=MismatchKind.AMOUNT_MISMATCH,
            book=left.amounts,
            statement=right.amounts,
            difference=diff,
            invoice_date=left.invoice_date or right.invoice_date,
        )
    if left is not None:
        return MismatchEntry(
            invoice_id=key[1],
            kind=MismatchKind.MISSING_IN_STATEMENT,
            book=left.amounts,
            statement=ZERO,
            difference=left.amounts.taxable,
            invoice_date=left.invoice_date,
        )
    return MismatchEntry(
        invoice_id=key[1],
        kind=MismatchKind.MISSING_IN_BOOK,
        book=ZERO,
        statement=right.amounts,
        difference=-right.amounts.taxable,
        invoice_date=right.invoice_date,
    )


def extract_mismatches_with_skips(
    book: List[GroupedRow],
    statement: List[GroupedRow],
    contact_by_key: Mapping[str, str],
    name_by_key: Mapping[str, str],
    eps: float,
) -> Tuple[List[MismatchRecord], List[str]]:
    """
    Collect mismatch records and the GSTINs dropped for lack of a contact.

    Returns:
        (records, skipped_tax_ids). Records follow the order in which each
        GSTIN was first met while walking the key union; entries inside a
        record keep that walk order too.
    """
    left_map, right_map = index_by_key(book), index_by_key(statement)
    entries_by_tax_id: Dict[str, List[MismatchEntry]] = {}

    for key in union_keys(book, statement):
        entry = diff_entry(key, left_map.get(key), right_map.get(key), eps)
        if entry is not None:
            entries_by_tax_id.setdefault(key[0], []).append(entry)

    records: List[MismatchRecord] = []
    skipped: List[str] = []
    for tax_id, entries in entries_by_tax_id.items():
        contact = contact_by_key.get(tax_id, '')
        if not contact:
            logger.warning(
                "No email found for GSTIN %s; skipping %d mismatched invoice(s)",
                tax_id or '<blank>', len(entries),
            )
            skipped.append(tax_id)
            continue
        records.append(MismatchRecord(
            tax_id=tax_id,
            display_name=name_by_key.get(tax_id) or 'Unknown',
            contact_address=contact,
            entries=tuple(entries),
        ))

    logger.debug("Found %d supplier(s) with mismatches, %d skipped", len(records), len(skipped))
    return records, skipped


def extract_mismatches(
    book: List[GroupedRow],
    statement: List[GroupedRow],
    contact_by_key: Mapping[str, str],
    name_by_key: Mapping[str, str],
    eps: float,
) -> List[MismatchRecord]:
    """One record per reachable GSTIN listing its mismatched invoices."""
    records, _ = extract_mismatches_with_skips(book, statement, contact_by_key, name_by_key, eps)
    return records
