"""
Supplier notices for GST reconciliation mismatches.

Renders one e-mail per MismatchRecord and sends them over SMTP, one at a
time. A failed message is reported and the run moves on to the next
supplier.
"""

import html
import logging
import smtplib
import time
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any, Callable, Dict, List, Optional, Sequence

from gst_recon.config import MailSettings
from gst_recon.errors import NotificationError
from gst_recon.mismatches import MismatchEntry, MismatchRecord

logger = logging.getLogger(__name__)

# Days a supplier gets to respond
RESPONSE_DAYS = 7


def format_inr(amount: float) -> str:
    """Format an amount with Indian digit grouping, e.g. ₹1,23,456.50."""
    sign = '-' if amount < 0 else ''
    whole, frac = f"{abs(amount):.2f}".split('.')
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ','.join(groups + [tail])
    return f"{sign}₹{whole}.{frac}"


def _direction(difference: float) -> str:
    return '(Excess)' if difference > 0 else '(Short)'


def render_subject(record: MismatchRecord) -> str:
    return f"GST Reconciliation Discrepancy - {record.display_name} ({record.tax_id})"


def render_text(record: MismatchRecord, settings: MailSettings) -> str:
    lines = [
        "GST Reconciliation Mismatch Notice",
        "",
        f"Dear {record.display_name},",
        "",
        f"We have identified discrepancies in GST reconciliation for your GSTIN: {record.tax_id}",
        "",
        "Mismatched Invoices:",
    ]
    for entry in record.entries:
        lines.extend([
            f"  Invoice: {entry.invoice_id}" + (f" dated {entry.invoice_date}" if entry.invoice_date else ''),
            f"  Status: {entry.kind.value}",
            f"  Book Value: {format_inr(entry.book.taxable)}",
            f"  GSTR-2B Value: {format_inr(entry.statement.taxable)}",
            f"  Difference: {format_inr(abs(entry.difference))} {_direction(entry.difference)}",
            "",
        ])
    lines.extend([
        f"Total Difference: {format_inr(abs(record.total_difference))} {_direction(record.total_difference)}",
        "",
        f"Please review and respond within {RESPONSE_DAYS} days.",
        "",
        settings.sender_name,
    ])
    if settings.company_name:
        lines.append(settings.company_name)
    if settings.reply_to:
        lines.append(settings.reply_to)
    return "\n".join(lines) + "\n"


def _html_row(entry: MismatchEntry) -> str:
    color = '#d63031' if entry.difference > 0 else '#00b894'
    cell = 'style="padding: 8px; border: 1px solid #ddd;"'
    return (
        "<tr>"
        f"<td {cell}>{html.escape(entry.invoice_id)}</td>"
        f"<td {cell}>{html.escape(entry.invoice_date)}</td>"
        f"<td {cell}>{html.escape(entry.kind.value)}</td>"
        f"<td {cell}>{format_inr(entry.book.taxable)}</td>"
        f"<td {cell}>{format_inr(entry.statement.taxable)}</td>"
        f'<td style="padding: 8px; border: 1px solid #ddd; color: {color}">'
        f"{format_inr(abs(entry.difference))} {_direction(entry.difference)}</td>"
        "</tr>"
    )


def render_html(record: MismatchRecord, settings: MailSettings) -> str:
    name = html.escape(record.display_name)
    company = html.escape(settings.company_name)
    total = record.total_difference
    total_color = '#d63031' if total > 0 else '#00b894'
    rows = "\n".join(_html_row(entry) for entry in record.entries)
    contact_line = ''
    if settings.reply_to:
        contact_line = (
            "<p>If you have already resolved these discrepancies or have any questions, "
            f"please contact us at {html.escape(settings.reply_to)}.</p>"
        )
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>GST Reconciliation Mismatch - {name}</title></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
<div style="max-width: 800px; margin: 0 auto; padding: 20px;">
<h2>GST Reconciliation Notice</h2>
<p>Dear {name},</p>
<p>During our monthly GST reconciliation we identified discrepancies between your invoices
and our GSTR-2B records for GSTIN: <strong>{html.escape(record.tax_id)}</strong>.</p>
<table style="width: 100%; border-collapse: collapse;">
<thead><tr>
<th>Invoice Number</th><th>Invoice Date</th><th>Status</th>
<th>Book Value</th><th>GSTR-2B Value</th><th>Difference</th>
</tr></thead>
<tbody>
{rows}
</tbody>
<tfoot><tr>
<td colspan="5" style="text-align: right; font-weight: bold;">Total Difference:</td>
<td style="font-weight: bold; color: {total_color}">{format_inr(abs(total))} {_direction(total)}</td>
</tr></tfoot>
</table>
<p><strong>Required Action:</strong></p>
<ol>
<li>Please verify the invoice details mentioned above</li>
<li>Check your GSTR-1 filing for the corresponding period</li>
<li>Provide clarification or corrected documents if needed</li>
</ol>
<p><strong>Response Deadline:</strong> {RESPONSE_DAYS} days from the date of this email</p>
{contact_line}
<p>Best regards,<br><strong>{html.escape(settings.sender_name)}</strong><br>{company}</p>
</div>
</body>
</html>
"""


def build_message(record: MismatchRecord, settings: MailSettings) -> EmailMessage:
    """Assemble the multipart (text + HTML) notice for one supplier."""
    msg = EmailMessage()
    msg['Subject'] = render_subject(record)
    msg['From'] = formataddr((settings.sender_name, settings.sender_address))
    msg['To'] = record.contact_address
    if settings.cc:
        msg['Cc'] = ', '.join(settings.cc)
    if settings.reply_to:
        msg['Reply-To'] = settings.reply_to
    msg['X-Priority'] = '1'
    msg['Message-ID'] = make_msgid()
    msg.set_content(render_text(record, settings))
    msg.add_alternative(render_html(record, settings), subtype='html')
    return msg


@dataclass
class DispatchResult:
    tax_id: str
    display_name: str
    address: str
    invoices: int
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tax_id': self.tax_id,
            'display_name': self.display_name,
            'address': self.address,
            'invoices': self.invoices,
            'success': self.success,
            'error': self.error,
        }


@dataclass
class DispatchReport:
    results: List[DispatchResult] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_suppliers': len(self.results),
            'emails_sent': self.sent,
            'emails_failed': self.failed,
            'details': [r.to_dict() for r in self.results],
        }


def check_settings(settings: MailSettings) -> None:
    missing = [name for name in ('host', 'sender_address') if not getattr(settings, name)]
    if missing:
        raise NotificationError(f"Mail settings incomplete, missing: {', '.join(missing)}")


def open_smtp(settings: MailSettings) -> smtplib.SMTP:
    """Connect and authenticate against the configured relay."""
    server = smtplib.SMTP(settings.host, settings.port, timeout=settings.timeout)
    if settings.use_tls:
        server.starttls()
    if settings.username:
        server.login(settings.username, settings.password)
    return server


def send_mismatch_notices(
    records: Sequence[MismatchRecord],
    settings: MailSettings,
    transport: Optional[Any] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> DispatchReport:
    """
    Send one notice per record, sequentially.

    Args:
        records: Mismatch records to notify.
        settings: SMTP and sender settings.
        transport: Object with `send_message(msg, to_addrs=...)`; an SMTP
            connection is opened from `settings` when omitted.
        sleep: Called with `settings.delay_seconds` between two messages.

    Returns:
        DispatchReport with one result per record.

    Raises:
        NotificationError: if settings lack a host or sender address.
    """
    check_settings(settings)
    report = DispatchReport()
    if not records:
        return report

    owns_transport = transport is None
    if owns_transport:
        try:
            transport = open_smtp(settings)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Could not connect to {settings.host}:{settings.port}: {e}") from e

    try:
        for idx, record in enumerate(records):
            if idx and settings.delay_seconds > 0:
                sleep(settings.delay_seconds)
            result = DispatchResult(
                tax_id=record.tax_id,
                display_name=record.display_name,
                address=record.contact_address,
                invoices=len(record.entries),
                success=False,
            )
            recipients = [record.contact_address] + list(settings.cc) + list(settings.bcc)
            try:
                transport.send_message(build_message(record, settings), to_addrs=recipients)
                result.success = True
                logger.info("Email sent to %s for GSTIN %s", record.contact_address, record.tax_id)
            except (smtplib.SMTPException, OSError) as e:
                result.error = str(e)
                logger.error("Failed to send email to %s: %s", record.contact_address, e)
            report.results.append(result)
    finally:
        if owns_transport:
            try:
                transport.quit()
            except (smtplib.SMTPException, OSError) as e:
                logger.debug("SMTP quit failed: %s", e)

    logger.info("Dispatched %d notice(s): %d sent, %d failed", len(report.results), report.sent, report.failed)
    return report
