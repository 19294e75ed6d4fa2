from datetime import date
from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from yatrasathi.allocation import pnr_paid
from yatrasathi.db import get_db
from yatrasathi.finance import ZERO, BILL_CHARGE_FIELDS, calculate_bill_total, format_currency, pnr_payment_status, round_money, to_decimal
from yatrasathi.ledger import customer_billing_summary
from yatrasathi.logger import logger
from yatrasathi.models import Bill, Booking, Payment, Pnr, User
from yatrasathi.notifications import notify_bill_generated
from yatrasathi.numbering import next_bill_no
from yatrasathi.rbac import has_permission, is_customer, require_admin, require_permission
from yatrasathi.responses import iso, list_meta, money, ok, paginate, today
from yatrasathi.schemas import PatchModel
from yatrasathi.workflow import BILL_TRANSITIONS, LOCKED_BILL_STATUSES, ensure_billable, transition

router = APIRouter(prefix="/api/billing", tags=["Billing"])


def _bill_paid(db: Session, bill: Bill) -> Decimal:
    pnr_ids = [pnr_id for (pnr_id,) in db.query(Pnr.id).filter(Pnr.booking_id == bill.booking_id).all()]
    return sum((pnr_paid(db, pnr_id) for pnr_id in pnr_ids), ZERO)


def bill_out(db: Session, bill: Bill) -> dict:
    paid = _bill_paid(db, bill)
    data = {
        "bill_id": bill.id,
        "bill_no": bill.bill_no,
        "booking_id": bill.booking_id,
        "customer_id": bill.customer_id,
        "billing_date": iso(bill.billing_date),
        "journey_date": iso(bill.journey_date),
        "customer_name": bill.customer_name,
        "customer_phone": bill.customer_phone,
        "station_boy": bill.station_boy,
        "from_station": bill.from_station,
        "to_station": bill.to_station,
        "train_no": bill.train_no,
        "travel_class": bill.travel_class,
        "pnr_number": bill.pnr_number,
        "seats_reserved": bill.seats_reserved,
        "gst_type": bill.gst_type,
        "discount": money(bill.discount),
        "total_amount": money(bill.total_amount),
        "paid_amount": float(paid),
        "payment_status": pnr_payment_status(bill.total_amount, paid),
        "status": bill.status,
        "remarks": bill.remarks,
        "entered_by": bill.entered_by,
        "entered_on": iso(bill.entered_on),
        "modified_by": bill.modified_by,
        "modified_on": iso(bill.modified_on),
    }
    for field in BILL_CHARGE_FIELDS:
        data[field] = money(getattr(bill, field))
    return data


class BillCharges(BaseModel):
    railway_fare: float = Field(0, ge=0)
    sb_incentive: float = Field(0, ge=0)
    gst: float = Field(0, ge=0)
    misc_charges: float = Field(0, ge=0)
    platform_fee: float = Field(0, ge=0)
    service_charge: float = Field(0, ge=0)
    delivery_charge: float = Field(0, ge=0)
    cancellation_charge: float = Field(0, ge=0)
    surcharge: float = Field(0, ge=0)
    discount: float = Field(0, ge=0)
    gst_type: Literal["INCLUSIVE", "EXCLUSIVE"] = "EXCLUSIVE"


class BillCreate(BillCharges):
    model_config = {"json_schema_extra": {"example": {'booking_id': 1, 'train_no': '12952', 'pnr_number': '2456789012', 'station_boy': 'Ramesh', 'railway_fare': 2450.0, 'service_charge': 150.0, 'gst': 27.0, 'discount': 50.0}}}
    booking_id: int
    billing_date: Optional[date] = None
    journey_date: Optional[date] = None
    station_boy: Optional[str] = None
    train_no: Optional[str] = None
    pnr_number: Optional[str] = None
    seats_reserved: Optional[str] = None
    remarks: Optional[str] = None


class BillUpdate(PatchModel):
    not_null = BILL_CHARGE_FIELDS + ("discount", "gst_type")

    railway_fare: Optional[float] = Field(None, ge=0)
    sb_incentive: Optional[float] = Field(None, ge=0)
    gst: Optional[float] = Field(None, ge=0)
    misc_charges: Optional[float] = Field(None, ge=0)
    platform_fee: Optional[float] = Field(None, ge=0)
    service_charge: Optional[float] = Field(None, ge=0)
    delivery_charge: Optional[float] = Field(None, ge=0)
    cancellation_charge: Optional[float] = Field(None, ge=0)
    surcharge: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = Field(None, ge=0)
    gst_type: Optional[Literal["INCLUSIVE", "EXCLUSIVE"]] = None
    journey_date: Optional[date] = None
    station_boy: Optional[str] = None
    train_no: Optional[str] = None
    pnr_number: Optional[str] = None
    seats_reserved: Optional[str] = None
    remarks: Optional[str] = None


def _total_of(bill: Bill) -> Decimal:
    charges = {field: getattr(bill, field) for field in BILL_CHARGE_FIELDS}
    return calculate_bill_total(charges, bill.discount, bill.gst_type)


def _get_bill_for(db: Session, bill_id: int, user: User) -> Bill:
    bill = db.get(Bill, bill_id)
    if not bill:
        raise HTTPException(status_code=404, detail="bill not found")
    if is_customer(user) and bill.customer_id != user.id:
        raise HTTPException(status_code=403, detail="not authorized for this bill")
    return bill


@router.post("", status_code=201)
def create_bill(
    payload: BillCreate,
    user: User = Depends(require_permission("canGenerateBills")),
    db: Session = Depends(get_db),
) -> dict:
    booking = db.query(Booking).filter(Booking.id == payload.booking_id).with_for_update().first()
    if not booking:
        raise HTTPException(status_code=404, detail="booking not found")
    ensure_billable(booking)
    if db.query(Bill).filter(Bill.booking_id == booking.id).first():
        raise HTTPException(status_code=409, detail="billing already exists for this booking")
    customer = db.get(User, booking.customer_id)
    billing_date = payload.billing_date or today()
    charges = payload.model_dump(include=set(BILL_CHARGE_FIELDS))
    bill = Bill(
        bill_no=next_bill_no(db, billing_date),
        booking_id=booking.id,
        customer_id=booking.customer_id,
        billing_date=billing_date,
        journey_date=payload.journey_date or booking.travel_date,
        customer_name=customer.name if customer else None,
        customer_phone=customer.phone if customer else None,
        station_boy=payload.station_boy,
        from_station=booking.from_station,
        to_station=booking.to_station,
        train_no=payload.train_no,
        travel_class=booking.travel_class,
        pnr_number=payload.pnr_number,
        seats_reserved=payload.seats_reserved,
        discount=round_money(payload.discount),
        gst_type=payload.gst_type,
        total_amount=calculate_bill_total(charges, payload.discount, payload.gst_type),
        status="DRAFT",
        remarks=payload.remarks,
        **{field: round_money(value) for field, value in charges.items()},
    )
    db.add(bill)
    transition(booking, "CONFIRMED")
    db.commit()
    db.refresh(bill)
    logger.info("bill {} generated for booking {}, total {}", bill.bill_no, booking.booking_no, bill.total_amount)
    notify_bill_generated(customer.email if customer else None, bill.bill_no, format_currency(bill.total_amount))
    return ok(bill_out(db, bill), "bill generated, booking confirmed")


@router.get("")
def list_bills(
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
    booking_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(50, ge=1, le=200),
    cursor: Optional[int] = Query(None, ge=0),
    user: User = Depends(require_permission("canViewBilling")),
    db: Session = Depends(get_db),
) -> dict:
    query = db.query(Bill)
    if is_customer(user):
        query = query.filter(Bill.customer_id == user.id)
    elif customer_id is not None:
        query = query.filter(Bill.customer_id == customer_id)
    if status:
        query = query.filter(Bill.status == status.upper())
    if booking_id is not None:
        query = query.filter(Bill.booking_id == booking_id)
    if date_from:
        query = query.filter(Bill.billing_date >= date_from)
    if date_to:
        query = query.filter(Bill.billing_date <= date_to)
    total = query.count()
    rows, next_cursor = paginate(query.order_by(Bill.id.desc()), limit, cursor)
    return ok([bill_out(db, row) for row in rows], meta_=list_meta(limit, cursor, next_cursor, total))


@router.get("/customer/{customer_id}/ledger")
def customer_ledger(
    customer_id: int,
    user: User = Depends(require_permission("canViewBilling")),
    db: Session = Depends(get_db),
) -> dict:
    if is_customer(user) and user.id != customer_id:
        raise HTTPException(status_code=403, detail="not authorized for this customer")
    bills = (
        db.query(Bill)
        .filter(Bill.customer_id == customer_id, Bill.status.in_(LOCKED_BILL_STATUSES))
        .all()
    )
    payments = (
        db.query(Payment)
        .filter(Payment.customer_id == customer_id, Payment.status != "REJECTED")
        .all()
    )
    lines = [
        (bill.billing_date, 0, bill.id, {
            "date": iso(bill.billing_date),
            "type": "BILL",
            "reference": bill.bill_no,
            "debit": money(bill.total_amount),
            "credit": 0.0,
        })
        for bill in bills
    ]
    lines.extend(
        (payment.payment_date, 1, payment.id, {
            "date": iso(payment.payment_date),
            "type": "PAYMENT",
            "reference": payment.reference_no or f"PAYMENT-{payment.id}",
            "debit": 0.0,
            "credit": float(round_money(to_decimal(payment.amount) - to_decimal(payment.refunded_amount))),
        })
        for payment in payments
    )
    lines.sort(key=lambda line: line[:3])

    balance = ZERO
    entries = []
    for _, _, _, entry in lines:
        balance += to_decimal(entry["debit"]) - to_decimal(entry["credit"])
        entry["balance"] = float(round_money(balance))
        entries.append(entry)
    return ok({
        "customer_id": customer_id,
        "entries": entries,
        "summary": customer_billing_summary(db, customer_id),
    })


@router.get("/customer/{customer_id}/balance")
def customer_balance(
    customer_id: int,
    user: User = Depends(require_permission("canViewBilling")),
    db: Session = Depends(get_db),
) -> dict:
    if is_customer(user) and user.id != customer_id:
        raise HTTPException(status_code=403, detail="not authorized for this customer")
    return ok(customer_billing_summary(db, customer_id))


@router.get("/{bill_id}")
def get_bill(
    bill_id: int,
    user: User = Depends(require_permission("canViewBilling")),
    db: Session = Depends(get_db),
) -> dict:
    return ok(bill_out(db, _get_bill_for(db, bill_id, user)))


@router.patch("/{bill_id}")
def update_bill(
    bill_id: int,
    payload: BillUpdate,
    user: User = Depends(require_permission("canGenerateBills", "canModifyFinancialValues")),
    db: Session = Depends(get_db),
) -> dict:
    bill = _get_bill_for(db, bill_id, user)
    if bill.status in LOCKED_BILL_STATUSES:
        raise HTTPException(status_code=400, detail=f"cannot modify a {bill.status} bill")
    changes = payload.model_dump(exclude_unset=True)
    financial = set(BILL_CHARGE_FIELDS) | {"discount", "gst_type"}
    if financial & set(changes) and not has_permission(user, "canModifyFinancialValues"):
        raise HTTPException(status_code=403, detail="not authorized to modify financial values")
    for key, value in changes.items():
        if key in BILL_CHARGE_FIELDS or key == "discount":
            value = round_money(value)
        setattr(bill, key, value)
    bill.total_amount = _total_of(bill)
    db.commit()
    db.refresh(bill)
    return ok(bill_out(db, bill), "bill updated")


@router.post("/{bill_id}/finalize")
def finalize_bill(
    bill_id: int,
    user: User = Depends(require_permission("canGenerateBills")),
    db: Session = Depends(get_db),
) -> dict:
    bill = _get_bill_for(db, bill_id, user)
    transition(bill, "FINAL", BILL_TRANSITIONS)
    db.commit()
    db.refresh(bill)
    return ok(bill_out(db, bill), "bill finalized")


@router.post("/{bill_id}/mark-paid")
def mark_bill_paid(
    bill_id: int,
    user: User = Depends(require_permission("canProcessPayments")),
    db: Session = Depends(get_db),
) -> dict:
    bill = _get_bill_for(db, bill_id, user)
    if pnr_payment_status(bill.total_amount, _bill_paid(db, bill)) != "PAID":
        raise HTTPException(status_code=400, detail="bill is not fully paid")
    transition(bill, "PAID", BILL_TRANSITIONS)
    db.commit()
    db.refresh(bill)
    return ok(bill_out(db, bill), "bill marked paid")


@router.delete("/{bill_id}")
def delete_bill(
    bill_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict:
    bill = db.get(Bill, bill_id)
    if not bill:
        raise HTTPException(status_code=404, detail="bill not found")
    if bill.status in LOCKED_BILL_STATUSES:
        raise HTTPException(status_code=400, detail=f"cannot delete a {bill.status} bill")
    booking = db.get(Booking, bill.booking_id)
    if booking and booking.status == "CONFIRMED":
        # undo the confirmation done when the bill was generated
        booking.status = "PENDING"
    db.delete(bill)
    db.commit()
    logger.info("bill {} deleted by admin {}", bill_id, admin.id)
    return ok({"bill_id": bill_id, "booking_status": booking.status if booking else None}, "bill deleted")
