"""Tabular reports and their PDF / XLSX / CSV renderings."""
import csv
import io
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from yatrasathi.allocation import outstanding_receivables
from yatrasathi.config import settings
from yatrasathi.errors import ValidationFailed
from yatrasathi.finance import format_currency, round_money, to_decimal
from yatrasathi.ledger import customer_billing_summary
from yatrasathi.models import Bill, Booking, LedgerMaster, Payment, User, Voucher

REPORT_TYPES = ("bookings", "billing", "payments", "customers", "vouchers", "receivables")
EXPORT_FORMATS = {
    "pdf": "application/pdf",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
}


@dataclass
class ReportFilters:
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    status: Optional[str] = None
    customer_id: Optional[int] = None


@dataclass
class Report:
    name: str
    title: str
    columns: list[str]
    rows: list[list[Any]] = field(default_factory=list)
    summary: list[tuple[str, Any]] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.now)

    def as_dict(self) -> dict:
        return {
            "report": self.name,
            "title": self.title,
            "generated_at": self.generated_at.isoformat(),
            "summary": {label: value for label, value in self.summary},
            "columns": self.columns,
            "rows": [dict(zip(self.columns, row)) for row in self.rows],
        }


def _in_range(query, column, filters: ReportFilters):
    if filters.date_from:
        query = query.where(column >= filters.date_from)
    if filters.date_to:
        query = query.where(column <= filters.date_to)
    return query


def _bookings(db: Session, filters: ReportFilters) -> Report:
    agent = aliased(User)
    query = (
        select(Booking, User.name, agent.name)
        .join(User, User.id == Booking.customer_id)
        .outerjoin(agent, agent.id == Booking.agent_id)
    )
    query = _in_range(query, Booking.travel_date, filters)
    if filters.status:
        query = query.where(Booking.status == filters.status)
    if filters.customer_id:
        query = query.where(Booking.customer_id == filters.customer_id)
    rows = db.execute(query.order_by(Booking.travel_date, Booking.id)).all()
    report = Report(
        "bookings",
        "Booking Report",
        ["Booking No", "Customer", "From", "To", "Travel Date", "Class", "Quota", "Passengers", "Status", "Agent"],
    )
    for booking, customer_name, agent_name in rows:
        report.rows.append([
            booking.booking_no,
            customer_name,
            booking.from_station,
            booking.to_station,
            booking.travel_date.isoformat(),
            booking.travel_class,
            booking.quota,
            booking.total_passengers,
            booking.status,
            agent_name or "",
        ])
    report.summary.append(("Total Bookings", len(rows)))
    report.summary.append(("Total Passengers", sum(booking.total_passengers for booking, _, _ in rows)))
    for status, count in sorted(Counter(booking.status for booking, _, _ in rows).items()):
        report.summary.append((f"{status.title()} Bookings", count))
    return report


def _billing(db: Session, filters: ReportFilters) -> Report:
    query = _in_range(select(Bill), Bill.billing_date, filters)
    if filters.status:
        query = query.where(Bill.status == filters.status)
    if filters.customer_id:
        query = query.where(Bill.customer_id == filters.customer_id)
    bills = db.execute(query.order_by(Bill.billing_date, Bill.id)).scalars().all()
    report = Report(
        "billing",
        "Billing Report",
        ["Bill No", "Billing Date", "Customer", "Route", "PNR", "Railway Fare", "Discount", "Total", "Status"],
    )
    for bill in bills:
        report.rows.append([
            bill.bill_no,
            bill.billing_date.isoformat(),
            bill.customer_name or "",
            f"{bill.from_station or ''}-{bill.to_station or ''}",
            bill.pnr_number or "",
            float(round_money(bill.railway_fare)),
            float(round_money(bill.discount)),
            float(round_money(bill.total_amount)),
            bill.status,
        ])
    total = sum((to_decimal(bill.total_amount) for bill in bills), to_decimal(0))
    report.summary.extend([
        ("Total Bills", len(bills)),
        ("Total Billed", format_currency(total)),
        ("Final/Paid Bills", sum(1 for bill in bills if bill.status in ("FINAL", "PAID"))),
    ])
    return report


def _payments(db: Session, filters: ReportFilters) -> Report:
    query = select(Payment, User.name).join(User, User.id == Payment.customer_id)
    query = _in_range(query, Payment.payment_date, filters)
    if filters.status:
        query = query.where(Payment.status == filters.status)
    if filters.customer_id:
        query = query.where(Payment.customer_id == filters.customer_id)
    rows = db.execute(query.order_by(Payment.payment_date, Payment.id)).all()
    report = Report(
        "payments",
        "Payment Report",
        ["Payment ID", "Date", "Customer", "Mode", "Reference", "Amount", "Refunded", "Status", "Verification", "FY"],
    )
    received = to_decimal(0)
    refunded = to_decimal(0)
    for payment, customer_name in rows:
        report.rows.append([
            payment.id,
            payment.payment_date.isoformat(),
            customer_name,
            payment.mode,
            payment.reference_no or "",
            float(round_money(payment.amount)),
            float(round_money(payment.refunded_amount)),
            payment.status,
            payment.verification_status,
            payment.financial_year,
        ])
        if payment.status != "REJECTED":
            received += to_decimal(payment.amount)
            refunded += to_decimal(payment.refunded_amount)
    report.summary.extend([
        ("Total Payments", len(rows)),
        ("Total Received", format_currency(received)),
        ("Total Refunded", format_currency(refunded)),
        ("Net Received", format_currency(received - refunded)),
    ])
    return report


def _customers(db: Session, filters: ReportFilters) -> Report:
    query = select(User).where(User.user_type == "customer")
    if filters.customer_id:
        query = query.where(User.id == filters.customer_id)
    customers = db.execute(query.order_by(User.name)).scalars().all()
    report = Report(
        "customers",
        "Customer Balance Report",
        ["Customer ID", "Name", "Email", "Phone", "Billed", "Received", "Net Due", "Net Advance"],
    )
    total_due = to_decimal(0)
    for customer in customers:
        balance = customer_billing_summary(db, customer.id)
        total_due += to_decimal(balance["net_due"])
        report.rows.append([
            customer.id,
            customer.name,
            customer.email,
            customer.phone or "",
            balance["total_billed"],
            balance["total_received"],
            balance["net_due"],
            balance["net_advance"],
        ])
    report.summary.extend([
        ("Customers", len(customers)),
        ("Total Due", format_currency(total_due)),
    ])
    return report


def _vouchers(db: Session, filters: ReportFilters) -> Report:
    account = aliased(LedgerMaster)
    counter = aliased(LedgerMaster)
    query = (
        select(Voucher, account.name, counter.name)
        .join(account, account.id == Voucher.account_id)
        .join(counter, counter.id == Voucher.counter_account_id)
    )
    query = _in_range(query, Voucher.entry_date, filters)
    query = query.where(Voucher.status == (filters.status or "Active"))
    rows = db.execute(query.order_by(Voucher.entry_date, Voucher.id)).all()
    report = Report(
        "vouchers",
        "Voucher Register",
        ["Voucher No", "Type", "Date", "Account", "Counter Account", "Dr/Cr", "Amount", "Mode", "Narration"],
    )
    totals: Counter = Counter()
    for voucher, account_name, counter_name in rows:
        report.rows.append([
            voucher.voucher_no,
            voucher.voucher_type,
            voucher.entry_date.isoformat(),
            account_name,
            counter_name,
            voucher.entry_type,
            float(round_money(voucher.amount)),
            voucher.mode or "",
            voucher.narration or "",
        ])
        totals[voucher.voucher_type] += to_decimal(voucher.amount)
    report.summary.append(("Total Vouchers", len(rows)))
    for voucher_type in sorted(totals):
        report.summary.append((f"{voucher_type.title()} Total", format_currency(totals[voucher_type])))
    return report


def _receivables(db: Session, filters: ReportFilters) -> Report:
    report = Report(
        "receivables",
        "Outstanding Receivables",
        ["Customer ID", "Customer", "Open PNRs", "Outstanding", "Oldest Travel Date"],
    )
    rows = outstanding_receivables(db)
    if filters.customer_id:
        rows = [row for row in rows if row["customer_id"] == filters.customer_id]
    for row in rows:
        report.rows.append([
            row["customer_id"],
            row["customer_name"],
            row["pnr_count"],
            row["outstanding"],
            row["oldest_travel_date"],
        ])
    report.summary.extend([
        ("Customers With Dues", len(rows)),
        ("Total Outstanding", format_currency(sum(row["outstanding"] for row in rows))),
    ])
    return report


BUILDERS = {
    "bookings": _bookings,
    "billing": _billing,
    "payments": _payments,
    "customers": _customers,
    "vouchers": _vouchers,
    "receivables": _receivables,
}


def build_report(db: Session, name: str, filters: Optional[ReportFilters] = None) -> Report:
    builder = BUILDERS.get(name)
    if builder is None:
        raise ValidationFailed(f"unknown report '{name}', expected one of {', '.join(REPORT_TYPES)}")
    return builder(db, filters or ReportFilters())


def render_pdf(report: Report) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(A4), title=report.title)
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ReportTitle",
        parent=styles["Heading1"],
        fontSize=16,
        spaceAfter=12,
        alignment=1,
    )
    header_style = [
        ("BACKGROUND", (0, 0), (-1, 0), colors.grey),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]

    elements = [
        Paragraph(f"{settings.company_name} - {report.title}", title_style),
        Paragraph(f"Generated on: {report.generated_at:%d %b %Y %H:%M}", styles["Normal"]),
        Spacer(1, 12),
        Paragraph("Summary", styles["Heading2"]),
    ]
    summary_table = Table([["Item", "Value"]] + [[label, str(value)] for label, value in report.summary])
    summary_table.setStyle(TableStyle(header_style + [("BACKGROUND", (0, 1), (-1, -1), colors.beige)]))
    elements.extend([summary_table, Spacer(1, 16), Paragraph("Details", styles["Heading2"])])

    if report.rows:
        data_table = Table(
            [report.columns] + [["" if value is None else str(value) for value in row] for row in report.rows],
            repeatRows=1,
        )
        data_table.setStyle(TableStyle(header_style + [("FONTSIZE", (0, 0), (-1, -1), 8)]))
        elements.append(data_table)
    else:
        elements.append(Paragraph("No records found for the selected criteria.", styles["Normal"]))

    doc.build(elements)
    return buffer.getvalue()


def render_xlsx(report: Report) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = report.name.title()

    ws.cell(row=1, column=1, value=f"{settings.company_name} - {report.title}").font = Font(bold=True, size=14)
    ws.cell(row=2, column=1, value=f"Generated on: {report.generated_at:%d %b %Y %H:%M}")

    row_no = 4
    ws.cell(row=row_no, column=1, value="Summary").font = Font(bold=True)
    for label, value in report.summary:
        row_no += 1
        ws.cell(row=row_no, column=1, value=label)
        ws.cell(row=row_no, column=2, value=value)

    row_no += 2
    for col, header in enumerate(report.columns, 1):
        cell = ws.cell(row=row_no, column=col, value=header)
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        cell.alignment = Alignment(horizontal="center")
    for values in report.rows:
        row_no += 1
        for col, value in enumerate(values, 1):
            ws.cell(row=row_no, column=col, value=value)

    for column in ws.columns:
        lengths = [len(str(cell.value)) for cell in column if cell.value is not None]
        ws.column_dimensions[column[0].column_letter].width = min(max(lengths, default=6) + 2, 40)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def render_csv(report: Report) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([report.title])
    for label, value in report.summary:
        writer.writerow([label, value])
    writer.writerow([])
    writer.writerow(report.columns)
    writer.writerows(report.rows)
    return buffer.getvalue().encode("utf-8")


RENDERERS = {
    "pdf": render_pdf,
    "xlsx": render_xlsx,
    "csv": render_csv,
}


def export_report(report: Report, fmt: str) -> tuple[bytes, str, str]:
    """Return ``(content, media_type, filename)`` for an export format."""
    renderer = RENDERERS.get(fmt)
    if renderer is None:
        raise ValidationFailed(f"unsupported format '{fmt}', expected one of {', '.join(EXPORT_FORMATS)}")
    filename = f"{report.name}_report_{report.generated_at:%Y%m%d}.{fmt}"
    return renderer(report), EXPORT_FORMATS[fmt], filename
