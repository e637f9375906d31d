"""
Bank statement narration tagging and cash-flow summary.

Each narration is matched against an ordered rule list (specific vendor
rules first, generic division tokens last). The first matching rule gives
the division and remark; either can be a constant or a function of the
narration text.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from gst_recon.normalizer import parse_date, to_amount

Resolver = Callable[[str, Optional[re.Match]], Optional[str]]
RuleValue = Union[None, str, Resolver]

DEFAULT_DIVISION = 'Common'
MONTH_NAMES = ['Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun', 'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec']

# Remarks left out of the cash-flow pivots
EXCLUDED_REMARKS = {'INTERBANK'}


@dataclass(frozen=True)
class Rule:
    pattern: re.Pattern
    division: RuleValue = None
    remark: RuleValue = None

    def apply(self, text: str) -> Optional['Classification']:
        match = self.pattern.search(text)
        if match is None:
            return None
        division = _resolve(self.division, text, match)
        return Classification(
            division=DEFAULT_DIVISION if division is None else division,
            remark=_resolve(self.remark, text, match),
        )


@dataclass(frozen=True)
class Classification:
    division: Optional[str] = None
    remark: Optional[str] = None


def _resolve(value: RuleValue, text: str, match: re.Match) -> Optional[str]:
    if callable(value):
        return value(text, match)
    return value


def rule(pattern: Union[str, re.Pattern], division: RuleValue = None, remark: RuleValue = None) -> Rule:
    if isinstance(pattern, str):
        pattern = re.compile(pattern, re.IGNORECASE)
    return Rule(pattern, division, remark)


def _first_remark(options: Sequence[Tuple[str, str]]) -> Resolver:
    """Resolver returning the remark of the first sub-pattern found in the text."""
    compiled = [(re.compile(p, re.IGNORECASE), remark) for p, remark in options]

    def resolve(text: str, match: Optional[re.Match]) -> Optional[str]:
        for pattern, remark in compiled:
            if pattern.search(text):
                return remark
        return None

    return resolve


def _imprest_division(text: str, match: Optional[re.Match]) -> str:
    tag = (match.group(1) if match else '').upper()
    if tag == 'CSD':
        return 'CSD'
    if tag == 'COM':
        return 'Common'
    return 'ITSS'


PRIORITY_RULES: List[Rule] = [
    rule('NATIONAL INFORMATICS CENTRE SERVICE', 'ITSS', 'NICSI'),
    rule('BHARTI HEXACOM', 'TSG', 'Bharti'),
    rule('BEETEL TELETECH', 'TSG', 'Beetel'),
    rule('ZTE', 'TSG', 'ZTE'),
    rule('BHARAT ?SANCHAR ?NIGAM', 'TSG', 'BSNL'),
    rule('VODAFONE IDEA', 'TSG', 'Vodafone'),
    rule('INDUS TOWERS', 'TSG', 'Indus'),
    rule('BHARTI AIRTEL', 'TSG', 'Airtel'),
    rule('MANTARAV', 'ITSS', 'Mantrav'),
    rule('LARSEN AND TOUBRO', 'TSG', 'L&T'),
    rule('KIRAN MALIK', 'TSG', 'Rent'),
    rule('NEERU CHHABRA', 'Common', 'Rent'),
    rule(r'SAMSUNG INDIA ELECTRONICS (PVT|PRIVATE)', 'CSD', 'Samsung'),
    rule('SAMSUNG BHIWANI', 'CSD', 'Samsung Bhiwani'),
    rule('ADISOFT', 'ITSS', 'Adisoft'),
    rule('SOHAM ENTERPRISES', 'TSG', 'Vendor'),
    rule('MC CANCELLED', 'Common', 'EMD'),
    rule('BONSAI ENTERPRISES PVT LTD', 'TSG', 'Vendor'),
    rule('VARDHMAN PLASTIC', 'Common', 'Vendor'),
    rule('ESIC', 'Common', 'ESIC'),
    rule('VERTIV ENERGY PRIVATE LIMITED', 'TSG', 'Vertiv'),
    rule('INDOFAST SWAP ENERGY PRIVATE LIMITED', 'TSG', 'Indofast'),
    rule('DD/MC CANCELLATION', 'TSG', 'Bank Charges'),
    rule('BILLDKUPPOWERCORPLTD', 'Common', 'Electricity'),
    rule('EPFO', 'Common', 'EPFO'),
    rule('ACME DIGITEK SOLUTIONS PRIVATE', 'ITSS', 'Digitek'),
    rule('04850330000355', 'TSG', 'ATC'),
    rule(r'HARMAN INTERNATIONAL \(INDIA\)', 'CSD', 'Harman'),
    rule('REALME MOBILE TELECO', 'CSD', 'Realme'),
    rule('SINGH CORPORATION', 'TSG', 'Singh Corp'),
    rule('CLN ENERGY LIMITED', 'TSG', 'CLN'),
    rule('STL NETWORKS', 'TSG', 'STL'),
    rule('DMI HOUSING FINANCE', 'ITSS', 'DMI'),
    rule('DAIKIN AIRCONDITIONING INDIA', 'TSG', 'Daikin'),
    rule('UVASKA', 'TSG', 'Uvaska'),
    rule(r'RV SOLUTIONS (PRIVATE LIMITED|PVT LTD)-R ?V SOLUTIONS', 'Common', 'Interbank'),
    rule(r'\bSALARY\s+ITC\b', 'ITSS', 'Salary'),
    rule('TOYOTAFINANCIALSERVI', 'Common', 'Loan'),
    rule(r'VENDOR\s+PAYMENT\s+CSD', 'CSD', 'Vendor payment'),
    rule(r'VENDOR\s+PAYMENT\s+ITC?', 'ITSS', 'Vendor payment'),
    rule(r'VENDOR\s+PAYMENT\s+COM', 'Common', 'Vendor payment'),
    rule(r'FT\s*-\s*SALARY\s+ADV\s+IT\b', 'ITSS', 'Salary Adv'),
    rule(r'\bSALARY\s+IT\b', 'ITSS', 'Salary'),
    rule('DD ISSUE', '', 'EMD'),
    # Imprest tagged with a division: IMPREST CSD / COM / IT / ITC
    rule(r'IMPREST\s+(CSD|COM|ITC?)\b', _imprest_division, 'Imprest'),
    rule(r'VENDOR\s+PAYMENT\s+TSG', 'TSG', 'Vendor payment'),
    rule(r'\bFNF\s+TSG\b', 'TSG', 'FNF'),
    rule(r'\bRENT\s+TSG\b', 'TSG', 'Rent'),
    rule(r'\bELE(?:CTRICITY)?\s*PAYMENT\s+TSG\b', 'TSG', 'Electricity payment'),
    rule(r'IB FUNDS TRANSFER|TPT-RV.*TO.*575|TO 575-?RV SOLUTIONS', 'Common', 'Interbank'),
]

FALLBACK_RULES: List[Rule] = [
    rule(r'FUND TRANSFER\s+TSG|FT\s*-\s*FUND TRANSFER\s+TSG', 'TSG', 'FT'),
    rule(r'\bTSG\b', 'TSG', _first_remark([
        (r'SALARY', 'Salary'),
        (r'VENDOR', 'Vendor payment'),
        (r'\bFNF\b', 'FNF'),
        (r'RENT', 'Rent'),
        (r'FUND TRANSFER|^FT\b', 'FT'),
    ])),
    rule(r'\bCSD\b', 'CSD', _first_remark([
        (r'\bFNF\b', 'FNF'),
        (r'\bRENT\b', 'Rent'),
        (r'\bVENDOR', 'Vendor payment'),
    ])),
    rule(r'\bITC?\b', 'ITSS', _first_remark([
        (r'\bFNF\b', 'FNF'),
        (r'\bRENT\b', 'Rent'),
        (r'\bVENDOR', 'Vendor payment'),
    ])),
    rule(r'IMPREST', 'Common', 'Imprest'),
    rule('VENDOR PAYMENT', 'Common', 'Vendor'),
    rule(r'\bFNF\b', None, 'FNF'),
]


def classify_narration(text: Optional[str], rules: Optional[Sequence[Rule]] = None) -> Classification:
    """Tag a narration with the first matching rule; no match gives an empty result."""
    raw = text or ''
    for candidate in (rules if rules is not None else PRIORITY_RULES + FALLBACK_RULES):
        result = candidate.apply(raw)
        if result is not None:
            return result
    return Classification()


def _upper(value: Any) -> str:
    return str(value if value is not None else '').upper()


def find_header_row(matrix: Sequence[Sequence[Any]]) -> int:
    """Index of the row with 'Date' in column A and 'Narration' in column B."""
    for idx, row in enumerate(matrix):
        if len(row) >= 2 and _upper(row[0]).strip().startswith('DATE') and 'NARRATION' in _upper(row[1]):
            return idx
    raise ValueError('Could not locate header row with "Date" & "Narration".')


def annotate_statement(matrix: Sequence[Sequence[Any]]) -> List[List[Any]]:
    """
    Fill the Division and Remarks columns of a bank statement.

    Columns are appended to the header when absent. Cells that already hold
    a value are never overwritten.
    """
    out = [list(row) for row in matrix]
    if not out:
        return out
    header_idx = find_header_row(out)
    header = out[header_idx]
    labels = [_upper(h).strip() for h in header]

    if 'DIVISION' in labels:
        div_col = labels.index('DIVISION')
    else:
        div_col = len(header)
        header.append('Division')
    if 'REMARKS' in labels:
        rem_col = labels.index('REMARKS')
    else:
        rem_col = len(header)
        header.append('Remarks')

    width = max(div_col, rem_col) + 1
    for row in out[header_idx + 1:]:
        narration = row[1] if len(row) > 1 else None
        if not narration:
            continue
        row.extend([None] * (width - len(row)))
        has_div = str(row[div_col] or '').strip()
        has_rem = str(row[rem_col] or '').strip()
        if has_div and has_rem:
            continue
        result = classify_narration(str(narration))
        if not has_div:
            row[div_col] = result.division
        if not has_rem:
            row[rem_col] = result.remark or ''
    return out


@dataclass
class StatementColumns:
    date: int
    narration: int
    credit: Optional[int] = None
    debit: Optional[int] = None
    division: Optional[int] = None
    remarks: Optional[int] = None


def index_columns(header: Sequence[Any]) -> StatementColumns:
    labels = [_upper(h).strip() for h in header]

    def find(pred: Callable[[str], bool]) -> Optional[int]:
        for idx, label in enumerate(labels):
            if pred(label):
                return idx
        return None

    date_col = find(lambda h: h.startswith('DATE'))
    narration_col = find(lambda h: 'NARRATION' in h)
    if date_col is None or narration_col is None:
        raise ValueError('Missing Date/Narration columns.')

    credit = find(lambda h: bool(re.search(r'\bCR(EDIT)?\b', h)) or 'CREDIT' in h)
    debit = find(lambda h: bool(re.search(r'\bDR(EBIT)?\b', h)) or 'DEBIT' in h)
    if credit is None:
        credit = find(lambda h: 'DEPOSIT' in h)
    if debit is None:
        debit = find(lambda h: 'WITHDRAWAL' in h)

    return StatementColumns(
        date=date_col,
        narration=narration_col,
        credit=credit,
        debit=debit,
        division=find(lambda h: h == 'DIVISION'),
        remarks=find(lambda h: h == 'REMARKS'),
    )


def month_label(month: Tuple[int, int]) -> str:
    year, mon = month
    return f"{MONTH_NAMES[mon - 1]}-{year % 100:02d}"


@dataclass
class FlowPivot:
    """Amounts per label per month, for one direction of cash flow."""

    months: List[Tuple[int, int]]
    amounts: Dict[str, Dict[Tuple[int, int], float]]
    totals: Dict[str, float]
    grand: float


def _cell(row: Sequence[Any], idx: Optional[int]) -> Any:
    if idx is None or idx >= len(row):
        return None
    return row[idx]


def accumulate_flows(rows: Sequence[Sequence[Any]], columns: StatementColumns, credit: bool) -> FlowPivot:
    amount_col = columns.credit if credit else columns.debit
    months = set()
    amounts: Dict[str, Dict[Tuple[int, int], float]] = {}
    totals: Dict[str, float] = {}
    grand = 0.0

    for row in rows:
        when = _cell(row, columns.date)
        day: Optional[date] = parse_date(when) if when not in (None, '') else None
        if day is None:
            continue
        month = (day.year, day.month)
        months.add(month)

        remark = str(_cell(row, columns.remarks) or '').strip()
        if remark and remark.upper() in EXCLUDED_REMARKS:
            continue
        narration = str(_cell(row, columns.narration) or '').strip()
        label = remark or narration or '(Unlabeled)'

        amount = to_amount(_cell(row, amount_col))
        if not amount:
            continue
        per_month = amounts.setdefault(label, {})
        per_month[month] = per_month.get(month, 0.0) + amount
        totals[label] = totals.get(label, 0.0) + amount
        grand += amount

    return FlowPivot(months=sorted(months), amounts=amounts, totals=totals, grand=grand)


def pivot_table(title: str, pivot: FlowPivot) -> List[List[Any]]:
    """Label x month table, largest totals first, with a Total footer."""
    rows: List[List[Any]] = [[title] + [month_label(m) for m in pivot.months] + ['Total', '% Contributions']]
    ordered = sorted(pivot.totals.items(), key=lambda item: item[1], reverse=True)
    for label, _ in ordered:
        values = [pivot.amounts[label].get(m, 0.0) for m in pivot.months]
        total = sum(values)
        rows.append([label] + values + [total, total / pivot.grand if pivot.grand else 0])

    column_totals = [sum(per.get(m, 0.0) for per in pivot.amounts.values()) for m in pivot.months]
    rows.append(['Total'] + column_totals + [sum(column_totals), 1])
    return rows


def build_cashflow_summary(matrix: Sequence[Sequence[Any]]) -> List[List[Any]]:
    """
    Inflow and Outflow pivots of a bank statement, by remark and month.

    The narration stands in for a missing remark. Two blank rows separate
    the tables.
    """
    if not matrix:
        return [['Summary'], ['(empty)']]
    header_idx = find_header_row(matrix)
    columns = index_columns(matrix[header_idx])
    body = matrix[header_idx + 1:]
    inflow = pivot_table('Inflow', accumulate_flows(body, columns, credit=True))
    outflow = pivot_table('Outflow', accumulate_flows(body, columns, credit=False))
    return inflow + [[], []] + outflow
