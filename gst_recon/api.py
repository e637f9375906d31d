"""
FastAPI endpoints for reconciliation, mismatch listing and supplier e-mails.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from gst_recon.config import EPS_DEFAULT, MailSettings, ReconConfig
from gst_recon.errors import InputStructureError, NotificationError, WorkbookError
from gst_recon.narration import annotate_statement, build_cashflow_summary
from gst_recon.notify import send_mismatch_notices
from gst_recon.reconciler import ReconResult, reconcile
from gst_recon.workbook import read_rows, read_sheet_matrix, workbook_bytes

logger = logging.getLogger(__name__)

# Maximum upload size per file (bytes). Set to 10 MB by default.
MAX_UPLOAD_SIZE = 10 * 1024 * 1024

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

app = FastAPI(title="GST Reconciliation API", version="1.0.0")

# Allow cross-origin requests so the deployed Streamlit frontend can call this API
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten to your Streamlit domain in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _read_upload(file: UploadFile) -> bytes:
    if not (file.filename or '').lower().endswith(('.xlsx', '.xlsm')):
        raise HTTPException(status_code=400, detail=f"File '{file.filename}' is not an Excel workbook")
    content = await file.read()
    if len(content) > MAX_UPLOAD_SIZE:
        raise HTTPException(status_code=413, detail=f"File '{file.filename}' exceeds maximum size of {MAX_UPLOAD_SIZE} bytes")
    return content


async def _reconcile_uploads(book_file: UploadFile, statement_file: Optional[UploadFile],
                             eps: float, book_sheet: str, statement_sheet: str) -> ReconResult:
    try:
        config = ReconConfig(eps=eps, book_sheet=book_sheet, statement_sheet=statement_sheet)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    book_bytes = await _read_upload(book_file)
    statement_bytes = await _read_upload(statement_file) if statement_file is not None else book_bytes

    try:
        book_rows = read_rows(book_bytes, config.book_sheet)
        statement_rows = read_rows(statement_bytes, config.statement_sheet)
        return reconcile(book_rows, statement_rows, config)
    except (InputStructureError, WorkbookError) as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/health")
async def health() -> Dict[str, str]:
    """
    Health check endpoint.

    Returns:
        Dictionary with status "ok"
    """
    return {"status": "ok"}


@app.post("/reconcile")
async def reconcile_workbook(
    book_file: UploadFile = File(...),
    statement_file: Optional[UploadFile] = File(None),
    eps: float = Form(EPS_DEFAULT),
    book_sheet: str = Form("Zoho Data"),
    statement_sheet: str = Form("GSTR-2B"),
) -> Response:
    """
    Reconcile uploaded workbooks and return the report workbook.

    When only `book_file` is given it must hold both sheets.
    """
    result = await _reconcile_uploads(book_file, statement_file, eps, book_sheet, statement_sheet)
    return Response(
        content=workbook_bytes(result.views),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="reconciliation_output.xlsx"'},
    )


@app.post("/mismatches")
async def list_mismatches(
    book_file: UploadFile = File(...),
    statement_file: Optional[UploadFile] = File(None),
    eps: float = Form(EPS_DEFAULT),
    book_sheet: str = Form("Zoho Data"),
    statement_sheet: str = Form("GSTR-2B"),
) -> Dict[str, Any]:
    """
    Return the run summary and the per-supplier mismatch records as JSON.
    """
    result = await _reconcile_uploads(book_file, statement_file, eps, book_sheet, statement_sheet)
    return result.to_dict()


@app.post("/send-gst-emails")
async def send_gst_emails(
    book_file: UploadFile = File(...),
    statement_file: Optional[UploadFile] = File(None),
    eps: float = Form(EPS_DEFAULT),
    book_sheet: str = Form("Zoho Data"),
    statement_sheet: str = Form("GSTR-2B"),
) -> Dict[str, Any]:
    """
    Reconcile and e-mail each supplier its mismatched invoices.

    Returns:
        Dictionary with the run summary and one dispatch result per supplier.
    """
    result = await _reconcile_uploads(book_file, statement_file, eps, book_sheet, statement_sheet)
    if not result.mismatches:
        return {
            "success": True,
            "summary": result.summary.to_dict(),
            "dispatch": {"total_suppliers": 0, "emails_sent": 0, "emails_failed": 0, "details": []},
            "message": "No mismatches found. All invoices match within tolerance.",
        }

    try:
        # smtplib and the inter-message delay block, keep them off the event loop
        dispatch = await run_in_threadpool(send_mismatch_notices, result.mismatches, MailSettings.from_env())
    except NotificationError as e:
        logger.error("Notification setup failed: %s", e)
        raise HTTPException(status_code=503, detail=str(e))

    failed = [r.address for r in dispatch.results if not r.success]
    return {
        "success": True,
        "summary": result.summary.to_dict(),
        "dispatch": dispatch.to_dict(),
        "message": f"Some emails failed to send: {', '.join(failed)}" if failed else "All emails sent successfully.",
    }


@app.post("/bank/classify")
async def classify_bank_statement(
    file: UploadFile = File(...),
    sheet: Optional[str] = Form(None),
) -> Response:
    """
    Tag bank narrations and append a cash-flow summary sheet.
    """
    content = await _read_upload(file)
    try:
        annotated = annotate_statement(read_sheet_matrix(content, sheet))
        summary = build_cashflow_summary(annotated)
    except (WorkbookError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    return Response(
        content=workbook_bytes({'Statement': annotated, 'Summary': summary}, bold_header=False),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="bank_classified.xlsx"'},
    )
