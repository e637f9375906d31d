"""
Command-line interface for GST reconciliation and supplier notification.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

import typer

from gst_recon.config import EPS_DEFAULT, MailSettings, ReconConfig
from gst_recon.errors import ReconciliationError
from gst_recon.narration import annotate_statement, build_cashflow_summary
from gst_recon.notify import render_subject, render_text, send_mismatch_notices
from gst_recon.reconciler import ReconResult, reconcile
from gst_recon.workbook import read_rows, read_sheet_matrix, write_views

app = typer.Typer()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    """
    Reconcile a purchase book against GSTR-2B.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _print_summary(summary: Dict[str, object], status_counts: Dict[str, int]):
    """Print human-readable summary to stdout."""
    print(f"\n{'='*60}")
    print("Summary")
    print(f"{'='*60}")
    print(f"Book invoices: {summary['book_invoices']} ({summary['book_rows']} rows)")
    print(f"GSTR-2B invoices: {summary['statement_invoices']} ({summary['statement_rows']} rows)")
    for status, count in sorted(status_counts.items(), key=lambda x: x[1], reverse=True):
        print(f"  {status}: {count}")
    print(f"Suppliers with mismatches: {summary['suppliers_with_mismatches']}")
    print(f"Tolerable anomalies corrected: {summary['anomalies_corrected']}")
    skipped = summary['skipped_without_contact']
    if skipped:
        print(f"Suppliers skipped for missing email: {len(skipped)}")
    suspicious = summary['suspicious_tax_ids']
    if suspicious:
        print(f"GSTINs failing checksum: {len(suspicious)}")
    print(f"{'='*60}\n")


def _load_sides(book: str, statement: Optional[str], config: ReconConfig) -> Tuple[list, list]:
    book_path = Path(book)
    statement_path = Path(statement) if statement else book_path

    for path in {book_path, statement_path}:
        if not path.exists():
            typer.echo(f"Error: File '{path}' does not exist", err=True)
            raise typer.Exit(code=1)

    try:
        book_rows = read_rows(book_path, config.book_sheet)
        statement_rows = read_rows(statement_path, config.statement_sheet)
    except ReconciliationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    return book_rows, statement_rows


def _run(book: str, statement: Optional[str], eps: float, book_sheet: str, statement_sheet: str) -> ReconResult:
    if eps < 0:
        typer.echo("Error: --eps must be non-negative", err=True)
        raise typer.Exit(code=1)
    config = ReconConfig(eps=eps, book_sheet=book_sheet, statement_sheet=statement_sheet)
    book_rows, statement_rows = _load_sides(book, statement, config)
    try:
        return reconcile(book_rows, statement_rows, config)
    except ReconciliationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


@app.command("reconcile")
def reconcile_cmd(
    book: str = typer.Option(..., "--book", help="Workbook holding the purchase book sheet"),
    statement: Optional[str] = typer.Option(None, "--statement", help="Workbook holding the GSTR-2B sheet (defaults to --book)"),
    output: str = typer.Option("reconciliation_output.xlsx", "--output", help="Output workbook path"),
    report: Optional[str] = typer.Option(None, "--report", help="Optional JSON file for summary and mismatches"),
    eps: float = typer.Option(EPS_DEFAULT, "--eps", help="Tolerance in rupees"),
    book_sheet: str = typer.Option("Zoho Data", "--book-sheet", help="Purchase book sheet name"),
    statement_sheet: str = typer.Option("GSTR-2B", "--statement-sheet", help="GSTR-2B sheet name"),
):
    """
    Build the reconciliation workbook.
    """
    result = _run(book, statement, eps, book_sheet, statement_sheet)

    output_path = Path(output)
    write_views(result.views, output_path)
    typer.echo(f"Reconciliation workbook written to: {output_path}")

    if report:
        report_path = Path(report)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with open(report_path, 'w', encoding='utf-8') as f:
            json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
        typer.echo(f"JSON report written to: {report_path}")

    summary = result.summary.to_dict()
    _print_summary(summary, summary['status_counts'])


@app.command()
def notify(
    book: str = typer.Option(..., "--book", help="Workbook holding the purchase book sheet"),
    statement: Optional[str] = typer.Option(None, "--statement", help="Workbook holding the GSTR-2B sheet (defaults to --book)"),
    eps: float = typer.Option(EPS_DEFAULT, "--eps", help="Tolerance in rupees"),
    book_sheet: str = typer.Option("Zoho Data", "--book-sheet", help="Purchase book sheet name"),
    statement_sheet: str = typer.Option("GSTR-2B", "--statement-sheet", help="GSTR-2B sheet name"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the notices instead of sending them"),
):
    """
    E-mail every supplier with mismatched invoices.

    SMTP settings are read from EMAIL_* environment variables.
    """
    result = _run(book, statement, eps, book_sheet, statement_sheet)
    records = result.mismatches

    if not records:
        typer.echo("No mismatches found. All invoices match within tolerance.")
        return

    settings = MailSettings.from_env()
    if dry_run:
        for record in records:
            typer.echo(f"To: {record.contact_address}")
            typer.echo(f"Subject: {render_subject(record)}")
            typer.echo(render_text(record, settings))
        typer.echo(f"{len(records)} notice(s) prepared, nothing sent (dry run)")
        return

    try:
        dispatch = send_mismatch_notices(records, settings)
    except ReconciliationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Emails sent: {dispatch.sent}, failed: {dispatch.failed}")
    if dispatch.failed:
        failed = ', '.join(r.address for r in dispatch.results if not r.success)
        typer.echo(f"Some emails failed to send: {failed}", err=True)
        raise typer.Exit(code=1)


@app.command("classify-bank")
def classify_bank(
    input: str = typer.Option(..., "--input", help="Bank statement workbook"),
    output: str = typer.Option(..., "--output", help="Output workbook path"),
    sheet: Optional[str] = typer.Option(None, "--sheet", help="Statement sheet (defaults to the first)"),
):
    """
    Tag bank narrations with division and remark, and add a cash-flow summary.
    """
    input_path = Path(input)
    if not input_path.exists():
        typer.echo(f"Error: Input file '{input}' does not exist", err=True)
        raise typer.Exit(code=1)

    try:
        matrix = read_sheet_matrix(input_path, sheet)
        annotated = annotate_statement(matrix)
        summary = build_cashflow_summary(annotated)
    except (ReconciliationError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    write_views({'Statement': annotated, 'Summary': summary}, Path(output), bold_header=False)
    typer.echo(f"Annotated statement written to: {output}")


if __name__ == "__main__":
    app()
