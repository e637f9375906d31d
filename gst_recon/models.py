"""
Row types shared by the reconciliation engine.
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple

# Composite natural key of an invoice: (tax_id, invoice_id)
InvoiceKey = Tuple[str, str]


@dataclass(frozen=True)
class Amounts:
    """The five numeric fields carried by every invoice row."""

    invoice_value: float = 0.0
    igst: float = 0.0
    cgst: float = 0.0
    sgst: float = 0.0
    taxable: float = 0.0

    @property
    def total_tax(self) -> float:
        return self.igst + self.cgst + self.sgst

    def __add__(self, other: 'Amounts') -> 'Amounts':
        return Amounts(
            invoice_value=self.invoice_value + other.invoice_value,
            igst=self.igst + other.igst,
            cgst=self.cgst + other.cgst,
            sgst=self.sgst + other.sgst,
            taxable=self.taxable + other.taxable,
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            'invoice_value': self.invoice_value,
            'igst': self.igst,
            'cgst': self.cgst,
            'sgst': self.sgst,
            'taxable': self.taxable,
            'total_tax': self.total_tax,
        }


ZERO = Amounts()


@dataclass(frozen=True)
class CleanRow:
    tax_id: str
    invoice_id: str
    display_name: str = ''
    contact_address: str = ''
    invoice_date: str = ''
    amounts: Amounts = field(default_factory=Amounts)

    @property
    def key(self) -> InvoiceKey:
        return (self.tax_id, self.invoice_id)


@dataclass(frozen=True)
class GroupedRow:
    """One invoice per side after summing all its line entries."""

    tax_id: str
    invoice_id: str
    invoice_date: str = ''
    amounts: Amounts = field(default_factory=Amounts)

    @property
    def key(self) -> InvoiceKey:
        return (self.tax_id, self.invoice_id)

    def as_clean_row(self) -> CleanRow:
        return CleanRow(
            tax_id=self.tax_id,
            invoice_id=self.invoice_id,
            invoice_date=self.invoice_date,
            amounts=self.amounts,
        )
