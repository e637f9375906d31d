"""
Run configuration for reconciliation and supplier notification.

Everything the engine needs is passed in explicitly through these objects;
only `MailSettings.from_env` looks at the process environment.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

# Default tolerance in rupees
EPS_DEFAULT = 10.0


@dataclass(frozen=True)
class ColumnMap:
    """Source column headers, as exported on the GSTR-2B portal."""

    tax_id: str = 'GSTIN of Supplier'
    name: str = 'Trade Name'
    contact: str = 'Email'
    invoice_date: str = 'Invoice Date'
    invoice_id: str = 'Invoice Number'
    invoice_value: str = 'Invoice Value'
    igst: str = 'Integrated Tax (IGST)'
    cgst: str = 'Central Tax (CGST)'
    sgst: str = 'State Tax (SGST)'
    taxable: str = 'Taxable Value'

    def key_columns(self) -> List[str]:
        return [self.tax_id, self.invoice_id]


DEFAULT_COLUMNS = ColumnMap()


@dataclass(frozen=True)
class ReconConfig:
    eps: float = EPS_DEFAULT
    columns: ColumnMap = field(default_factory=ColumnMap)
    book_sheet: str = 'Zoho Data'
    statement_sheet: str = 'GSTR-2B'

    def __post_init__(self):
        if self.eps < 0:
            raise ValueError(f"eps must be non-negative, got {self.eps}")


def _split_addresses(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(',') if part.strip()]


@dataclass(frozen=True)
class MailSettings:
    """SMTP and sender identity used by the notifier."""

    host: str = ''
    port: int = 587
    username: str = ''
    password: str = ''
    sender_address: str = ''
    sender_name: str = 'Accounts Department'
    company_name: str = ''
    reply_to: str = ''
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    use_tls: bool = True
    timeout: float = 30.0
    # Pause between two messages, to stay under the relay's rate limit
    delay_seconds: float = 1.0

    @classmethod
    def from_env(cls) -> 'MailSettings':
        """
        Build settings from EMAIL_* environment variables.

        Unset variables fall back to the dataclass defaults; the sender
        address defaults to the SMTP user.
        """
        username = os.getenv('EMAIL_USER', '')
        return cls(
            host=os.getenv('EMAIL_HOST', ''),
            port=int(os.getenv('EMAIL_PORT', '587')),
            username=username,
            password=os.getenv('EMAIL_PASSWORD', ''),
            sender_address=os.getenv('EMAIL_FROM_ADDRESS', username),
            sender_name=os.getenv('EMAIL_FROM_NAME', 'Accounts Department'),
            company_name=os.getenv('EMAIL_COMPANY_NAME', ''),
            reply_to=os.getenv('EMAIL_REPLY_TO', ''),
            cc=_split_addresses(os.getenv('EMAIL_CC')),
            bcc=_split_addresses(os.getenv('EMAIL_BCC')),
            use_tls=os.getenv('EMAIL_USE_TLS', '1').lower() not in ('0', 'false', 'no'),
            timeout=float(os.getenv('EMAIL_TIMEOUT', '30')),
            delay_seconds=float(os.getenv('EMAIL_DELAY_SECONDS', '1.0')),
        )
