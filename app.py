import streamlit as st
import json
import os
from typing import List, Dict, Any, Optional

from gst_recon.config import EPS_DEFAULT, MailSettings, ReconConfig
from gst_recon.errors import ReconciliationError
from gst_recon.mismatches import MismatchRecord
from gst_recon.narration import annotate_statement, build_cashflow_summary
from gst_recon.notify import send_mismatch_notices
from gst_recon.reconciler import ReconResult, reconcile
from gst_recon.workbook import read_rows, read_sheet_matrix, workbook_bytes

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Sheet names can be overridden per deployment
DEFAULT_BOOK_SHEET = os.getenv("BOOK_SHEET", "Zoho Data")
DEFAULT_STATEMENT_SHEET = os.getenv("STATEMENT_SHEET", "GSTR-2B")


def reconcile_locally(book_file, statement_file, config: ReconConfig) -> ReconResult:
    """Read the uploaded workbooks and run the reconciliation in-process."""
    book_bytes = book_file.getvalue()
    statement_bytes = statement_file.getvalue() if statement_file is not None else book_bytes
    book_rows = read_rows(book_bytes, config.book_sheet)
    statement_rows = read_rows(statement_bytes, config.statement_sheet)
    return reconcile(book_rows, statement_rows, config)


def render_summary(summary: Dict[str, Any]):
    """
    Render a compact summary box with totals.
    Expects the keys produced by RunSummary.to_dict().
    """
    status_counts = summary.get("status_counts") or {}
    total = sum(status_counts.values())
    matched = status_counts.get("Match", 0)
    mismatched = total - matched

    c1, c2, c3 = st.columns(3)
    c1.metric("Invoices compared", total)
    c2.metric("Matched", matched, delta=f"{int((matched/total*100) if total else 0)}%")
    c3.metric("Not matched", mismatched, delta=f"{int((mismatched/total*100) if total else 0)}%")

    if status_counts:
        with st.expander("Status breakdown"):
            for status, cnt in sorted(status_counts.items(), key=lambda x: x[1], reverse=True):
                st.write(f"- {status}: {cnt}")

    if summary.get("anomalies_corrected"):
        st.info(f"{summary['anomalies_corrected']} unreadable cell(s) were treated as blank or zero.")
    skipped = summary.get("skipped_without_contact") or []
    if skipped:
        st.warning(f"{len(skipped)} supplier(s) have mismatches but no email: {', '.join(skipped)}")
    suspicious = summary.get("suspicious_tax_ids") or []
    if suspicious:
        with st.expander(f"{len(suspicious)} GSTIN(s) fail the checksum"):
            for tax_id in suspicious:
                st.write(f"- {tax_id}")


def render_mismatch_table(records: List[MismatchRecord], only_amount_mismatch: bool = False):
    """
    Render one row per mismatched invoice, followed by a per-supplier expander.
    """
    if not records:
        st.success("No mismatches found. All invoices match within tolerance.")
        return

    table_data = []
    for record in records:
        for entry in record.entries:
            if only_amount_mismatch and entry.kind.name != "AMOUNT_MISMATCH":
                continue
            table_data.append({
                "GSTIN": record.tax_id,
                "Trade Name": record.display_name,
                "Invoice": entry.invoice_id,
                "Status": entry.kind.value,
                "Book Taxable": entry.book.taxable,
                "2B Taxable": entry.statement.taxable,
                "Difference": entry.difference,
            })

    if table_data:
        st.dataframe(table_data, use_container_width=True, hide_index=True)
    else:
        st.info("No invoices to display.")

    for record in records:
        with st.expander(f"{record.display_name} ({record.tax_id})"):
            st.write("Email:", record.contact_address)
            st.write("Mismatched invoices:", len(record.entries))
            st.write("Total difference:", round(record.total_difference, 2))


def main():
    st.set_page_config(page_title="GST Reconciliation Console", layout="wide")
    st.title("GST Reconciliation Console")

    result: Optional[ReconResult] = st.session_state.get("result")

    st.sidebar.header("Configuration")
    eps = st.sidebar.number_input("Tolerance (₹)", min_value=0.0, value=EPS_DEFAULT, step=1.0)
    book_sheet = st.sidebar.text_input("Purchase book sheet", DEFAULT_BOOK_SHEET)
    statement_sheet = st.sidebar.text_input("GSTR-2B sheet", DEFAULT_STATEMENT_SHEET)
    st.sidebar.markdown("---")
    st.sidebar.write("Usage:")
    st.sidebar.markdown("1. Upload the workbook(s)\n2. Click **Reconcile**\n3. Download the report or email suppliers")

    tab1, tab2 = st.tabs(["GST Reconciliation", "Bank Statement"])

    with tab1:
        book_file = st.file_uploader("Purchase book workbook (may also hold the GSTR-2B sheet)", type=["xlsx"])
        statement_file = st.file_uploader("GSTR-2B workbook (optional)", type=["xlsx"])

        btn_col1, btn_col2 = st.columns([1, 3])
        with btn_col1:
            reconcile_btn = st.button("Reconcile")
        with btn_col2:
            only_amount = st.checkbox("Show only amount mismatches", value=False)

        if reconcile_btn:
            if not book_file:
                st.warning("Please upload the purchase book workbook before clicking Reconcile.")
            else:
                try:
                    config = ReconConfig(eps=eps, book_sheet=book_sheet, statement_sheet=statement_sheet)
                    with st.spinner("Reconciling..."):
                        result = reconcile_locally(book_file, statement_file, config)
                    st.session_state["result"] = result
                except ReconciliationError as e:
                    st.error(f"Error: {str(e)}")

        if result:
            st.subheader("Summary")
            render_summary(result.summary.to_dict())

            st.subheader("Mismatches")
            render_mismatch_table(result.mismatches, only_amount_mismatch=only_amount)

            dl1, dl2 = st.columns(2)
            with dl1:
                st.download_button(
                    label="Download Reconciliation Workbook",
                    data=workbook_bytes(result.views),
                    file_name="reconciliation_output.xlsx",
                    mime=XLSX_MIME,
                )
            with dl2:
                st.download_button(
                    label="Download Mismatch Report (JSON)",
                    data=json.dumps(result.to_dict(), indent=2),
                    file_name="mismatch_report.json",
                    mime="application/json",
                )

            if result.mismatches and st.button(f"Email {len(result.mismatches)} supplier(s)"):
                try:
                    with st.spinner("Sending emails..."):
                        dispatch = send_mismatch_notices(result.mismatches, MailSettings.from_env())
                    st.write(f"Emails sent: {dispatch.sent}, failed: {dispatch.failed}")
                    failed = [r.to_dict() for r in dispatch.results if not r.success]
                    if failed:
                        st.dataframe(failed, use_container_width=True, hide_index=True)
                except ReconciliationError as e:
                    st.error(f"Error: {str(e)}")

    with tab2:
        bank_file = st.file_uploader("Bank statement workbook", type=["xlsx"], key="bank_file")
        if st.button("Classify narrations"):
            if not bank_file:
                st.warning("Please upload a bank statement.")
            else:
                try:
                    annotated = annotate_statement(read_sheet_matrix(bank_file.getvalue()))
                    summary = build_cashflow_summary(annotated)
                    st.download_button(
                        label="Download Classified Statement",
                        data=workbook_bytes({"Statement": annotated, "Summary": summary}, bold_header=False),
                        file_name="bank_classified.xlsx",
                        mime=XLSX_MIME,
                    )
                except (ReconciliationError, ValueError) as e:
                    st.error(f"Error: {str(e)}")

    st.markdown("---")
    st.markdown("If you encounter issues, check the application logs.")


if __name__ == "__main__":
    main()
