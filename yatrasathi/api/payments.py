from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from yatrasathi.allocation import (
    allocate,
    auto_allocate,
    outstanding_receivables,
    payment_allocated,
    payment_unallocated,
    pending_pnrs,
    pnr_paid,
    pnr_summary,
    refresh_advance,
    refund,
    split_allocate,
)
from yatrasathi.api.bookings import pnr_out
from yatrasathi.db import get_db
from yatrasathi.finance import ZERO, accounting_period, financial_year, financial_year_bounds, round_money, to_decimal
from yatrasathi.ledger import customer_balance, ensure_year_open, post_customer_entry
from yatrasathi.logger import logger
from yatrasathi.models import (
    Booking,
    CustomerAdvance,
    CustomerLedgerEntry,
    Payment,
    PaymentAllocation,
    Pnr,
    User,
    Voucher,
    YearEndClosing,
)
from yatrasathi.rbac import is_customer, require_admin, require_permission, require_roles
from yatrasathi.responses import iso, list_meta, money, now, ok, paginate, today

router = APIRouter(prefix="/api/payments", tags=["Payments"])

PAYMENT_MODES = ("Cash", "Bank", "Cheque", "Draft", "UPI", "Card")
REFERENCE_REQUIRED_MODES = ("Cheque", "Draft", "Bank", "UPI")


def allocation_out(allocation: PaymentAllocation) -> dict:
    return {
        "allocation_id": allocation.id,
        "payment_id": allocation.payment_id,
        "pnr_id": allocation.pnr_id,
        "amount": money(allocation.amount),
        "allocated_on": iso(allocation.allocated_on),
        "remarks": allocation.remarks,
    }


def payment_out(db: Session, payment: Payment, with_allocations: bool = False) -> dict:
    data = {
        "payment_id": payment.id,
        "customer_id": payment.customer_id,
        "booking_id": payment.booking_id,
        "amount": money(payment.amount),
        "refunded_amount": money(payment.refunded_amount),
        "allocated_amount": float(payment_allocated(db, payment.id)),
        "unallocated_amount": float(payment_unallocated(db, payment)),
        "mode": payment.mode,
        "reference_no": payment.reference_no,
        "payment_date": iso(payment.payment_date),
        "status": payment.status,
        "verification_status": payment.verification_status,
        "verified_by": payment.verified_by,
        "verified_on": iso(payment.verified_on),
        "financial_year": payment.financial_year,
        "accounting_period": payment.accounting_period,
        "remarks": payment.remarks,
        "entered_by": payment.entered_by,
        "entered_on": iso(payment.entered_on),
    }
    if with_allocations:
        rows = (
            db.query(PaymentAllocation)
            .filter(PaymentAllocation.payment_id == payment.id)
            .order_by(PaymentAllocation.id)
            .all()
        )
        data["allocations"] = [allocation_out(row) for row in rows]
    return data


class AllocationIn(BaseModel):
    pnr_id: int
    amount: float = Field(gt=0)
    remarks: Optional[str] = None


class SplitAllocationIn(BaseModel):
    model_config = {"json_schema_extra": {"example": {"pnr_ids": [11, 12, 13], "amount": 900.0}}}
    pnr_ids: list[int] = Field(default_factory=list)
    amount: Optional[float] = Field(None, gt=0)


class PaymentCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'customer_id': 3, 'amount': 2600.0, 'mode': 'UPI', 'reference_no': 'UPI-88213', 'payment_date': '2026-10-15', 'auto_allocate': True}}}
    customer_id: int
    amount: float = Field(gt=0)
    mode: str
    reference_no: Optional[str] = None
    payment_date: Optional[date] = None
    booking_id: Optional[int] = None
    remarks: Optional[str] = None
    auto_allocate: bool = True
    allocations: list[AllocationIn] = Field(default_factory=list)


class RefundRequest(BaseModel):
    amount: float = Field(gt=0)
    pnr_id: Optional[int] = None
    reason: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class YearEndClosingRequest(BaseModel):
    model_config = {"json_schema_extra": {"example": {'financial_year': '2025-26', 'remarks': 'FY close'}}}
    financial_year: str
    remarks: Optional[str] = None


def _get_payment(db: Session, payment_id: int) -> Payment:
    payment = db.get(Payment, payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="payment not found")
    return payment


def _get_pnr(db: Session, pnr_id: int) -> Pnr:
    pnr = db.get(Pnr, pnr_id)
    if not pnr:
        raise HTTPException(status_code=404, detail="PNR not found")
    return pnr


def _own_customer(user: User, customer_id: int) -> None:
    if is_customer(user) and user.id != customer_id:
        raise HTTPException(status_code=403, detail="not authorized for this customer")


@router.post("", status_code=201)
def create_payment(
    payload: PaymentCreate,
    user: User = Depends(require_permission("canProcessPayments")),
    db: Session = Depends(get_db),
) -> dict:
    if payload.mode not in PAYMENT_MODES:
        raise HTTPException(status_code=400, detail=f"mode must be one of {', '.join(PAYMENT_MODES)}")
    if payload.mode in REFERENCE_REQUIRED_MODES and not payload.reference_no:
        raise HTTPException(status_code=400, detail=f"reference_no is required for {payload.mode} payments")
    customer = db.get(User, payload.customer_id)
    if not customer or customer.user_type != "customer":
        raise HTTPException(status_code=400, detail="invalid customer_id")
    if payload.booking_id is not None:
        booking = db.get(Booking, payload.booking_id)
        if not booking or booking.customer_id != customer.id:
            raise HTTPException(status_code=400, detail="booking does not belong to this customer")

    paid_on = payload.payment_date or today()
    fyear = financial_year(paid_on)
    ensure_year_open(db, fyear)
    payment = Payment(
        customer_id=customer.id,
        booking_id=payload.booking_id,
        amount=round_money(payload.amount),
        refunded_amount=ZERO,
        mode=payload.mode,
        reference_no=payload.reference_no,
        payment_date=paid_on,
        status="RECEIVED",
        verification_status="PENDING",
        financial_year=fyear,
        accounting_period=accounting_period(paid_on),
        remarks=payload.remarks,
    )
    db.add(payment)
    db.flush()
    post_customer_entry(
        db,
        customer.id,
        "CREDIT",
        payment.amount,
        "PAYMENT",
        payment.id,
        narration=f"{payment.mode} payment {payment.reference_no or payment.id}",
        on=paid_on,
    )
    if payload.allocations:
        for item in payload.allocations:
            allocate(db, payment, _get_pnr(db, item.pnr_id), item.amount, item.remarks)
    elif payload.auto_allocate:
        auto_allocate(db, payment)
    refresh_advance(db, customer.id, fyear)
    db.commit()
    db.refresh(payment)
    logger.info("payment {} of {} recorded for customer {}", payment.id, payment.amount, customer.id)
    return ok(payment_out(db, payment, with_allocations=True), "payment recorded")


@router.get("")
def list_payments(
    customer_id: Optional[int] = None,
    status: Optional[str] = None,
    verification_status: Optional[str] = None,
    financial_year: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(50, ge=1, le=200),
    cursor: Optional[int] = Query(None, ge=0),
    user: User = Depends(require_permission("canViewPayments")),
    db: Session = Depends(get_db),
) -> dict:
    query = db.query(Payment)
    if is_customer(user):
        query = query.filter(Payment.customer_id == user.id)
    elif customer_id is not None:
        query = query.filter(Payment.customer_id == customer_id)
    if status:
        query = query.filter(Payment.status == status.upper())
    if verification_status:
        query = query.filter(Payment.verification_status == verification_status.upper())
    if financial_year:
        query = query.filter(Payment.financial_year == financial_year)
    if date_from:
        query = query.filter(Payment.payment_date >= date_from)
    if date_to:
        query = query.filter(Payment.payment_date <= date_to)
    total = query.count()
    rows, next_cursor = paginate(query.order_by(Payment.id.desc()), limit, cursor)
    return ok([payment_out(db, row) for row in rows], meta_=list_meta(limit, cursor, next_cursor, total))


@router.get("/customer/{customer_id}/pending-pnrs")
def customer_pending_pnrs(
    customer_id: int,
    user: User = Depends(require_permission("canViewPayments")),
    db: Session = Depends(get_db),
) -> dict:
    _own_customer(user, customer_id)
    rows = pending_pnrs(db, customer_id)
    return ok({
        "customer_id": customer_id,
        "pnrs": [pnr_out(db, pnr) for pnr, _ in rows],
        "total_pending": float(sum((due for _, due in rows), ZERO)),
    })


@router.get("/customer/{customer_id}/advance")
def customer_advance(
    customer_id: int,
    user: User = Depends(require_permission("canViewPayments")),
    db: Session = Depends(get_db),
) -> dict:
    _own_customer(user, customer_id)
    advances = (
        db.query(CustomerAdvance)
        .filter(CustomerAdvance.customer_id == customer_id)
        .order_by(CustomerAdvance.financial_year)
        .all()
    )
    return ok({
        "customer_id": customer_id,
        "by_financial_year": [
            {"financial_year": row.financial_year, "amount": money(row.amount)} for row in advances
        ],
        "total_advance": float(sum((to_decimal(row.amount) for row in advances), ZERO)),
    })


@router.get("/customer/{customer_id}/ledger")
def customer_ledger_entries(
    customer_id: int,
    limit: int = Query(100, ge=1, le=500),
    cursor: Optional[int] = Query(None, ge=0),
    user: User = Depends(require_permission("canViewPayments")),
    db: Session = Depends(get_db),
) -> dict:
    _own_customer(user, customer_id)
    query = (
        db.query(CustomerLedgerEntry)
        .filter(CustomerLedgerEntry.customer_id == customer_id)
        .order_by(CustomerLedgerEntry.id)
    )
    rows, next_cursor = paginate(query, limit, cursor)
    entries = [
        {
            "entry_id": row.id,
            "entry_type": row.entry_type,
            "amount": money(row.amount),
            "opening_balance": money(row.opening_balance),
            "closing_balance": money(row.closing_balance),
            "reference_type": row.reference_type,
            "reference_id": row.reference_id,
            "narration": row.narration,
            "financial_year": row.financial_year,
            "entered_on": iso(row.entered_on),
        }
        for row in rows
    ]
    data = {"customer_id": customer_id, "entries": entries, "balance": float(customer_balance(db, customer_id))}
    return ok(data, meta_=list_meta(limit, cursor, next_cursor))


@router.get("/reports/outstanding", tags=["Reports"])
def outstanding_report(
    _: User = Depends(require_permission("canViewReports", "canProcessPayments")),
    db: Session = Depends(get_db),
) -> dict:
    rows = outstanding_receivables(db)
    return ok({
        "customers": rows,
        "total_outstanding": sum(row["outstanding"] for row in rows),
    })


@router.get("/pnrs/{pnr_id}/status", tags=["PNRs"])
def pnr_status(
    pnr_id: int,
    user: User = Depends(require_permission("canViewPayments")),
    db: Session = Depends(get_db),
) -> dict:
    pnr = _get_pnr(db, pnr_id)
    _own_customer(user, pnr.customer_id)
    allocations = (
        db.query(PaymentAllocation)
        .filter(PaymentAllocation.pnr_id == pnr.id)
        .order_by(PaymentAllocation.id)
        .all()
    )
    data = {"pnr_id": pnr.id, "pnr_number": pnr.pnr_number}
    data.update(pnr_summary(db, pnr))
    data["allocations"] = [allocation_out(row) for row in allocations]
    return ok(data)


@router.get("/year-end-closing", tags=["Year End"])
def list_year_end_closings(_: User = Depends(require_admin), db: Session = Depends(get_db)) -> dict:
    rows = db.query(YearEndClosing).order_by(YearEndClosing.financial_year).all()
    return ok([_closing_out(row) for row in rows])


def _closing_out(closing: YearEndClosing) -> dict:
    return {
        "closing_id": closing.id,
        "financial_year": closing.financial_year,
        "total_receivables": money(closing.total_receivables),
        "total_advances": money(closing.total_advances),
        "pnrs_closed": closing.pnrs_closed,
        "vouchers_locked": closing.vouchers_locked,
        "remarks": closing.remarks,
        "closed_by": closing.closed_by,
        "closed_on": iso(closing.closed_on),
    }


@router.post("/year-end-closing", status_code=201, tags=["Year End"])
def close_financial_year(
    payload: YearEndClosingRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict:
    _, year_end = financial_year_bounds(payload.financial_year)
    if db.query(YearEndClosing).filter(YearEndClosing.financial_year == payload.financial_year).first():
        raise HTTPException(status_code=409, detail=f"financial year {payload.financial_year} is already closed")

    closed_at = now()
    receivables = ZERO
    pnrs = (
        db.query(Pnr)
        .filter(Pnr.closed_on.is_(None), Pnr.travel_date <= year_end)
        .order_by(Pnr.id)
        .all()
    )
    for pnr in pnrs:
        receivables += max(ZERO, round_money(to_decimal(pnr.total_amount) - pnr_paid(db, pnr.id)))
        pnr.closed_by = admin.id
        pnr.closed_on = closed_at

    customer_ids = db.execute(
        select(Payment.customer_id)
        .where(Payment.financial_year == payload.financial_year)
        .distinct()
    ).scalars().all()
    advances = sum(
        (to_decimal(refresh_advance(db, customer_id, payload.financial_year).amount) for customer_id in customer_ids),
        ZERO,
    )

    vouchers = (
        db.query(Voucher)
        .filter(Voucher.financial_year == payload.financial_year, Voucher.locked.is_(False))
        .all()
    )
    for voucher in vouchers:
        voucher.locked = True

    closing = YearEndClosing(
        financial_year=payload.financial_year,
        total_receivables=round_money(receivables),
        total_advances=round_money(advances),
        pnrs_closed=len(pnrs),
        vouchers_locked=len(vouchers),
        remarks=payload.remarks,
        closed_by=admin.id,
        closed_on=closed_at,
    )
    db.add(closing)
    db.commit()
    db.refresh(closing)
    logger.info(
        "financial year {} closed: {} PNRs, receivables {}, advances {}",
        closing.financial_year,
        closing.pnrs_closed,
        closing.total_receivables,
        closing.total_advances,
    )
    return ok(_closing_out(closing), "financial year closed")


@router.get("/{payment_id}")
def get_payment(
    payment_id: int,
    user: User = Depends(require_permission("canViewPayments")),
    db: Session = Depends(get_db),
) -> dict:
    payment = _get_payment(db, payment_id)
    _own_customer(user, payment.customer_id)
    return ok(payment_out(db, payment, with_allocations=True))


@router.post("/{payment_id}/allocate")
def allocate_payment(
    payment_id: int,
    payload: AllocationIn,
    _: User = Depends(require_permission("canProcessPayments")),
    db: Session = Depends(get_db),
) -> dict:
    payment = _get_payment(db, payment_id)
    allocation = allocate(db, payment, _get_pnr(db, payload.pnr_id), payload.amount, payload.remarks)
    refresh_advance(db, payment.customer_id, payment.financial_year)
    db.commit()
    db.refresh(payment)
    data = payment_out(db, payment, with_allocations=True)
    data["allocation"] = allocation_out(allocation)
    return ok(data, "payment allocated")


@router.post("/{payment_id}/auto-allocate")
def auto_allocate_payment(
    payment_id: int,
    _: User = Depends(require_permission("canProcessPayments")),
    db: Session = Depends(get_db),
) -> dict:
    payment = _get_payment(db, payment_id)
    allocations = auto_allocate(db, payment)
    refresh_advance(db, payment.customer_id, payment.financial_year)
    db.commit()
    db.refresh(payment)
    data = payment_out(db, payment, with_allocations=True)
    data["new_allocations"] = len(allocations)
    return ok(data, f"{len(allocations)} allocations created")


@router.post("/{payment_id}/split-allocate")
def split_allocate_payment(
    payment_id: int,
    payload: SplitAllocationIn,
    _: User = Depends(require_permission("canProcessPayments")),
    db: Session = Depends(get_db),
) -> dict:
    payment = _get_payment(db, payment_id)
    pnrs = [_get_pnr(db, pnr_id) for pnr_id in dict.fromkeys(payload.pnr_ids)]
    allocations = split_allocate(db, payment, pnrs, payload.amount)
    refresh_advance(db, payment.customer_id, payment.financial_year)
    db.commit()
    db.refresh(payment)
    data = payment_out(db, payment, with_allocations=True)
    data["new_allocations"] = len(allocations)
    return ok(data, f"{len(allocations)} allocations created")


@router.post("/{payment_id}/refund")
def refund_payment(
    payment_id: int,
    payload: RefundRequest,
    _: User = Depends(require_permission("canProcessPayments")),
    db: Session = Depends(get_db),
) -> dict:
    payment = _get_payment(db, payment_id)
    pnr = _get_pnr(db, payload.pnr_id) if payload.pnr_id is not None else None
    refund(db, payment, payload.amount, pnr, payload.reason)
    db.commit()
    db.refresh(payment)
    return ok(payment_out(db, payment, with_allocations=True), "refund processed")


@router.post("/{payment_id}/verify")
def verify_payment(
    payment_id: int,
    user: User = Depends(require_roles("ACC")),
    db: Session = Depends(get_db),
) -> dict:
    payment = _get_payment(db, payment_id)
    if payment.verification_status != "PENDING":
        raise HTTPException(status_code=400, detail=f"payment is already {payment.verification_status}")
    payment.verification_status = "VERIFIED"
    payment.verified_by = user.id
    payment.verified_on = now()
    db.commit()
    db.refresh(payment)
    return ok(payment_out(db, payment), "payment verified")


@router.post("/{payment_id}/reject")
def reject_payment(
    payment_id: int,
    payload: RejectRequest,
    user: User = Depends(require_roles("ACC")),
    db: Session = Depends(get_db),
) -> dict:
    payment = _get_payment(db, payment_id)
    if payment.verification_status == "REJECTED":
        raise HTTPException(status_code=400, detail="payment is already REJECTED")
    if db.query(PaymentAllocation).filter(PaymentAllocation.payment_id == payment.id).first():
        raise HTTPException(status_code=409, detail="payment has allocations, remove them before rejecting")
    reversal = round_money(to_decimal(payment.amount) - to_decimal(payment.refunded_amount))
    payment.verification_status = "REJECTED"
    payment.status = "REJECTED"
    payment.verified_by = user.id
    payment.verified_on = now()
    if payload.reason:
        payment.remarks = f"{payment.remarks}\n{payload.reason}" if payment.remarks else payload.reason
    if reversal > 0:
        post_customer_entry(
            db,
            payment.customer_id,
            "DEBIT",
            reversal,
            "PAYMENT",
            payment.id,
            narration=f"Payment {payment.id} rejected",
        )
    refresh_advance(db, payment.customer_id, payment.financial_year)
    db.commit()
    db.refresh(payment)
    return ok(payment_out(db, payment), "payment rejected")


@router.delete("/{payment_id}")
def delete_payment(
    payment_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict:
    payment = _get_payment(db, payment_id)
    allocation_count = db.execute(
        select(func.count(PaymentAllocation.id)).where(PaymentAllocation.payment_id == payment.id)
    ).scalar()
    if allocation_count:
        raise HTTPException(status_code=400, detail="cannot delete a payment with allocations")
    customer_id, fyear = payment.customer_id, payment.financial_year
    reversal = round_money(to_decimal(payment.amount) - to_decimal(payment.refunded_amount))
    if payment.status != "REJECTED" and reversal > 0:
        post_customer_entry(
            db,
            customer_id,
            "DEBIT",
            reversal,
            "PAYMENT",
            payment.id,
            narration=f"Payment {payment.id} deleted",
        )
    db.delete(payment)
    db.flush()
    refresh_advance(db, customer_id, fyear)
    db.commit()
    logger.info("payment {} deleted by admin {}", payment_id, admin.id)
    return ok({"payment_id": payment_id}, "payment deleted")
