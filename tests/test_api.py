import asyncio

from fastapi.testclient import TestClient

from gst_recon import api
from gst_recon.api import XLSX_MEDIA_TYPE, app
from gst_recon.notify import DispatchReport
from gst_recon.workbook import read_sheet_matrix, workbook_bytes

client = TestClient(app)

HEADER = ["GSTIN of Supplier", "Trade Name", "Email", "Invoice Number", "Taxable Value"]

WORKBOOK = workbook_bytes({
    "Zoho Data": [HEADER, ["X1", "Acme", "ap@acme.in", "A-01", 1000], ["X1", "Acme", "", "A-02", 300]],
    "GSTR-2B": [HEADER, ["X1", "ACME", "", "A01", 980]],
})


def _files(content=WORKBOOK, name="recon.xlsx"):
    return {"book_file": (name, content, XLSX_MEDIA_TYPE)}


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_mismatches_endpoint():
    response = client.post("/mismatches", files=_files(), data={"eps": "10"})
    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["suppliers_with_mismatches"] == 1
    [record] = body["mismatches"]
    assert record["contact_address"] == "ap@acme.in"
    kinds = {e["invoice_id"]: e["kind"] for e in record["entries"]}
    assert kinds == {"A1": "Amount mismatch", "A2": "Missing in GSTR-2B"}


def test_reconcile_returns_workbook():
    response = client.post("/reconcile", files=_files())
    assert response.status_code == 200
    assert response.headers["content-type"] == XLSX_MEDIA_TYPE
    assert read_sheet_matrix(response.content, "Sum Function")[1][0] == "GST as Per Book Data"


def test_rejects_non_excel_upload():
    response = client.post("/mismatches", files=_files(b"a,b\n", name="data.csv"))
    assert response.status_code == 400


def test_missing_sheet_is_a_client_error():
    response = client.post("/mismatches", files=_files(), data={"book_sheet": "Tally"})
    assert response.status_code == 400
    assert "Tally" in response.json()["detail"]


def test_negative_tolerance_is_a_client_error():
    response = client.post("/mismatches", files=_files(), data={"eps": "-5"})
    assert response.status_code == 400


def test_send_emails_without_smtp_config(monkeypatch):
    monkeypatch.delenv("EMAIL_HOST", raising=False)
    monkeypatch.delenv("EMAIL_USER", raising=False)
    monkeypatch.delenv("EMAIL_FROM_ADDRESS", raising=False)
    response = client.post("/send-gst-emails", files=_files())
    assert response.status_code == 503


def test_send_emails_dispatches_off_the_event_loop(monkeypatch):
    calls = []

    def fake_send(records, settings):
        try:
            asyncio.get_running_loop()
            calls.append("event loop")
        except RuntimeError:
            calls.append("worker thread")
        return DispatchReport()

    monkeypatch.setattr(api, "send_mismatch_notices", fake_send)
    response = client.post("/send-gst-emails", files=_files())
    assert response.status_code == 200
    assert calls == ["worker thread"]
    assert response.json()["success"] is True
