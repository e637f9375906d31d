"""
Normalization of raw sheet rows into canonical invoice rows.

Rows coming out of a purchase book or a GSTR-2B download disagree on
casing, separators, number formats and date encodings. Everything here is
tolerant: garbage becomes an empty string or zero, never an exception.
"""

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from dateutil import parser as date_parser

from gst_recon.config import DEFAULT_COLUMNS, ColumnMap
from gst_recon.models import Amounts, CleanRow

logger = logging.getLogger(__name__)

RawRow = Dict[str, Any]

# Spreadsheet serial day 0 (Excel's 1900 leap-year bug is folded into the epoch)
SERIAL_EPOCH = date(1899, 12, 30)
MAX_SERIAL = 2958465  # 9999-12-31
PARTIAL_DATE_DEFAULT = datetime(1900, 1, 1)

_WHITESPACE_OR_HYPHEN = re.compile(r'[\s\-]')
_LEADING_ZEROS = re.compile(r'(?<!\d)0+(?=[1-9])')
_MULTI_SPACE = re.compile(r'\s+')
_NUMBER_PREFIX = re.compile(r'^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')
_DAY_FIRST_DATE = re.compile(r'^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2,4})$')


def _as_text(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        # Numeric cells such as 1234.0 should read like the typed 1234
        return str(int(value))
    return str(value)


def clean_tax_id(value: Any) -> str:
    return _as_text(value).strip().upper()


def clean_invoice_id(value: Any) -> str:
    """
    Canonicalize an invoice number.

    Order matters: upper-case and trim, drop whitespace and hyphens, turn
    backslashes into slashes, then strip the first run of zeros that opens
    a number and is followed by a nonzero digit ("007/A" -> "7/A",
    "INV-007" -> "INV7", "000" stays "000").
    """
    v = _as_text(value).upper().strip()
    v = _WHITESPACE_OR_HYPHEN.sub('', v)
    v = v.replace('\\', '/')
    v = _LEADING_ZEROS.sub('', v, count=1)
    return v


def clean_name(value: Any) -> str:
    return _MULTI_SPACE.sub(' ', _as_text(value).upper().strip())


def clean_contact(value: Any) -> str:
    return _as_text(value).strip().lower()


def _parse_amount(value: Any) -> Optional[float]:
    """Return the numeric value of a cell, 0.0 for blanks, None if unparseable."""
    if value is None or value == '':
        return 0.0
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    text = str(value).replace(',', '').replace('₹', '').strip()
    if not text:
        return 0.0
    match = _NUMBER_PREFIX.match(text)
    if not match:
        return None
    number = float(match.group(0))
    return number if math.isfinite(number) else None


def to_amount(value: Any) -> float:
    """Parse a money cell; unparseable or empty input becomes 0.0."""
    number = _parse_amount(value)
    return 0.0 if number is None else number


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or not 0 < value <= MAX_SERIAL:
            return None
        return SERIAL_EPOCH + timedelta(days=int(value))

    text = str(value).strip()
    match = _DAY_FIRST_DATE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        if year < 100:
            year += 2000
        try:
            return date(year, month, day)
        except ValueError:
            return None

    try:
        return date_parser.isoparse(text).date()
    except (ValueError, OverflowError):
        pass
    try:
        # Missing fields come from a fixed default, never from today
        return date_parser.parse(text, dayfirst=True, default=PARTIAL_DATE_DEFAULT).date()
    except (ValueError, TypeError, OverflowError):
        return None


def clean_date(value: Any) -> str:
    """
    Render an invoice date as YYYY-MM-DD.

    Accepts date objects, spreadsheet serial numbers, DD/MM/YY[YY] strings
    with '/', '-' or '.' separators (two-digit years are 20xx) and other
    strings dateutil can read day-first. A partial date such as "Mar 2024"
    takes day 1. Anything else is returned as the trimmed raw text.
    """
    if value is None or value == '':
        return ''
    parsed = parse_date(value)
    if parsed is None:
        return _as_text(value).strip()
    return parsed.isoformat()


@dataclass
class NormalizedTable:
    clean: List[CleanRow] = field(default_factory=list)
    name_by_key: Dict[str, str] = field(default_factory=dict)
    contact_by_key: Dict[str, str] = field(default_factory=dict)
    # Cells that had content but had to be zeroed or passed through raw
    anomalies: int = 0


def normalize(rows: Iterable[RawRow], columns: ColumnMap = DEFAULT_COLUMNS) -> NormalizedTable:
    """
    Clean raw rows and resolve a display name and contact per tax id.

    The display name is the most frequent non-empty name seen for a tax id
    (ties go to the name seen first); the contact is the first non-empty
    address seen.

    Args:
        rows: Raw rows, one dict per sheet row.
        columns: Source column headers.

    Returns:
        NormalizedTable with clean rows, lookup maps and anomaly count.
    """
    result = NormalizedTable()
    name_counts: Dict[str, Counter] = {}

    for raw in rows:
        tax_id = clean_tax_id(raw.get(columns.tax_id))
        name = clean_name(raw.get(columns.name))
        contact = clean_contact(raw.get(columns.contact))

        raw_date = raw.get(columns.invoice_date)
        invoice_date = clean_date(raw_date)
        if raw_date not in (None, '') and parse_date(raw_date) is None:
            result.anomalies += 1

        values = {}
        for attr in ('invoice_value', 'igst', 'cgst', 'sgst', 'taxable'):
            number = _parse_amount(raw.get(getattr(columns, attr)))
            if number is None:
                result.anomalies += 1
                number = 0.0
            values[attr] = number

        result.clean.append(CleanRow(
            tax_id=tax_id,
            invoice_id=clean_invoice_id(raw.get(columns.invoice_id)),
            display_name=name,
            contact_address=contact,
            invoice_date=invoice_date,
            amounts=Amounts(**values),
        ))

        if not tax_id:
            continue
        counter = name_counts.setdefault(tax_id, Counter())
        if name:
            counter[name] += 1
        if contact and tax_id not in result.contact_by_key:
            result.contact_by_key[tax_id] = contact

    for tax_id, counter in name_counts.items():
        # most_common keeps first-inserted order among equal counts
        result.name_by_key[tax_id] = counter.most_common(1)[0][0] if counter else ''

    logger.debug(
        "Normalized %d rows (%d tax ids, %d anomalies)",
        len(result.clean), len(result.name_by_key), result.anomalies,
    )
    return result


def gstin_checksum_ok(tax_id: str) -> bool:
    """Check the 15th character of a GSTIN against its mod-36 check digit."""
    charset = '0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ'
    if len(tax_id) != 15 or any(c not in charset for c in tax_id):
        return False
    factor = 1
    total = 0
    for char in tax_id[:14]:
        product = charset.index(char) * factor
        factor = 3 - factor
        total += (product // 36) + (product % 36)
    return tax_id[14] == charset[(36 - (total % 36)) % 36]
