import csv
import io

import pytest
from openpyxl import load_workbook

from yatrasathi.reports import Report, export_report, render_csv


@pytest.fixture
def seeded(client, admin, customer, issue_pnr) -> None:
    issue_pnr(customer["id"], "2020000001", 1500, service_amount=100)
    client.post(
        "/api/payments",
        json={"customer_id": customer["id"], "amount": 1000, "mode": "Cash"},
        headers=admin["headers"],
    )


def test_json_report(client, admin, customer, seeded) -> None:
    resp = client.get("/api/reports/bookings", headers=admin["headers"])
    assert resp.status_code == 200
    report = resp.json()["data"]
    assert report["report"] == "bookings"
    assert report["summary"]["Total Bookings"] == 1
    assert report["summary"]["Confirmed Bookings"] == 1
    assert report["rows"][0]["Customer"] == "Asha Verma"

    receivables = client.get("/api/reports/receivables", headers=admin["headers"]).json()["data"]
    assert receivables["rows"][0]["Outstanding"] == 600.0

    customers = client.get("/api/reports/customers", params={"customer_id": customer["id"]}, headers=admin["headers"]).json()["data"]
    assert len(customers["rows"]) == 1


def test_pdf_export(client, admin, seeded) -> None:
    resp = client.get("/api/reports/billing", params={"format": "pdf"}, headers=admin["headers"])
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert "attachment; filename=billing_report_" in resp.headers["content-disposition"]
    assert resp.content.startswith(b"%PDF")


def test_xlsx_export(client, admin, seeded) -> None:
    resp = client.get("/api/reports/payments", params={"format": "xlsx"}, headers=admin["headers"])
    assert resp.status_code == 200
    assert resp.content[:2] == b"PK"
    sheet = load_workbook(io.BytesIO(resp.content)).active
    values = [cell for row in sheet.iter_rows(values_only=True) for cell in row if cell is not None]
    assert "Total Payments" in values
    assert "Payment ID" in values


def test_csv_export(client, admin, seeded) -> None:
    resp = client.get("/api/reports/vouchers", params={"format": "csv"}, headers=admin["headers"])
    assert resp.status_code == 200
    rows = list(csv.reader(io.StringIO(resp.content.decode("utf-8"))))
    assert rows[0] == ["Voucher Register"]
    assert ["Total Vouchers", "0"] in rows


def test_report_errors_and_rbac(client, admin, customer, accountant) -> None:
    unknown = client.get("/api/reports/salaries", headers=admin["headers"])
    assert unknown.status_code == 400
    assert unknown.json()["error"] == "validation_error"

    bad_format = client.get("/api/reports/bookings", params={"format": "doc"}, headers=admin["headers"])
    assert bad_format.status_code == 400

    assert client.get("/api/reports/bookings", headers=customer["headers"]).status_code == 403
    assert client.get("/api/reports/bookings", headers=accountant["headers"]).status_code == 200

    listing = client.get("/api/reports", headers=accountant["headers"]).json()["data"]
    assert "receivables" in listing["reports"]


def test_empty_report_renders_every_format() -> None:
    report = Report("bookings", "Booking Report", ["Booking No", "Status"], summary=[("Total Bookings", 0)])
    for fmt, media_type in (("pdf", "application/pdf"), ("csv", "text/csv")):
        content, returned_type, filename = export_report(report, fmt)
        assert returned_type == media_type
        assert filename.endswith(f".{fmt}")
        assert content
    assert render_csv(report).decode("utf-8").splitlines()[-1] == "Booking No,Status"
