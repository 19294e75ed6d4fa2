from collections import Counter

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from yatrasathi.allocation import pending_pnrs
from yatrasathi.api.billing import bill_out
from yatrasathi.api.bookings import booking_out
from yatrasathi.api.payments import payment_out
from yatrasathi.db import get_db
from yatrasathi.finance import ZERO, round_money, to_decimal
from yatrasathi.ledger import customer_billing_summary
from yatrasathi.models import Bill, Booking, Payment, User
from yatrasathi.rbac import has_permission, is_customer, permissions_for, require_admin, require_permission
from yatrasathi.responses import ok

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


def _status_counts(db: Session, *criteria) -> dict:
    rows = db.execute(
        select(Booking.status, func.count(Booking.id)).where(*criteria).group_by(Booking.status)
    ).all()
    return {status: count for status, count in rows}


@router.get("/admin")
def admin_dashboard(_: User = Depends(require_admin), db: Session = Depends(get_db)) -> dict:
    user_counts = dict(
        db.execute(select(User.user_type, func.count(User.id)).group_by(User.user_type)).all()
    )
    billed = db.execute(
        select(func.coalesce(func.sum(Bill.total_amount), 0)).where(Bill.status.in_(("FINAL", "PAID")))
    ).scalar()
    received, refunded = db.execute(
        select(
            func.coalesce(func.sum(Payment.amount), 0),
            func.coalesce(func.sum(Payment.refunded_amount), 0),
        ).where(Payment.status != "REJECTED")
    ).one()
    top_agents = db.execute(
        select(User.id, User.name, func.count(Booking.id).label("bookings"))
        .join(Booking, Booking.agent_id == User.id)
        .group_by(User.id, User.name)
        .order_by(func.count(Booking.id).desc())
        .limit(5)
    ).all()
    return ok({
        "counts": {
            "users": sum(user_counts.values()),
            "customers": user_counts.get("customer", 0),
            "employees": user_counts.get("employee", 0) + user_counts.get("admin", 0),
            "bookings": db.execute(select(func.count(Booking.id))).scalar(),
            "bills": db.execute(select(func.count(Bill.id))).scalar(),
            "payments": db.execute(select(func.count(Payment.id))).scalar(),
            "pending_verification": db.execute(
                select(func.count(Payment.id)).where(Payment.verification_status == "PENDING")
            ).scalar(),
        },
        "revenue": {
            "total_billed": float(round_money(billed)),
            "total_received": float(round_money(to_decimal(received) - to_decimal(refunded))),
        },
        "booking_status": _status_counts(db),
        "top_agents": [
            {"agent_id": agent_id, "name": name, "bookings": count} for agent_id, name, count in top_agents
        ],
    })


@router.get("/employee")
def employee_dashboard(
    user: User = Depends(require_permission("canViewEmployeeDashboard", "canViewAdminPanel")),
    db: Session = Depends(get_db),
) -> dict:
    recent = (
        db.query(Booking)
        .filter(Booking.agent_id == user.id)
        .order_by(Booking.id.desc())
        .limit(10)
        .all()
    )
    data = {
        "role": user.role,
        "permissions": permissions_for(user),
        "assigned_bookings": _status_counts(db, Booking.agent_id == user.id),
        "recent_bookings": [booking_out(booking) for booking in recent],
    }
    if has_permission(user, "canApproveBookings"):
        data["awaiting_approval"] = db.execute(
            select(func.count(Booking.id)).where(Booking.status == "PENDING")
        ).scalar()
    if has_permission(user, "canProcessPayments"):
        data["pending_verification"] = db.execute(
            select(func.count(Payment.id)).where(Payment.verification_status == "PENDING")
        ).scalar()
        data["draft_bills"] = db.execute(select(func.count(Bill.id)).where(Bill.status == "DRAFT")).scalar()
    return ok(data)


@router.get("/customer")
def customer_dashboard(
    user: User = Depends(require_permission("canViewDashboard")),
    db: Session = Depends(get_db),
) -> dict:
    if not is_customer(user):
        raise HTTPException(status_code=403, detail="customer dashboard is available to customers only")
    bookings = db.query(Booking).filter(Booking.customer_id == user.id).order_by(Booking.id.desc()).all()
    bills = db.query(Bill).filter(Bill.customer_id == user.id).order_by(Bill.id.desc()).limit(5).all()
    payments = db.query(Payment).filter(Payment.customer_id == user.id).order_by(Payment.id.desc()).limit(5).all()
    pending = pending_pnrs(db, user.id)
    return ok({
        "booking_status": dict(Counter(booking.status for booking in bookings)),
        "recent_bookings": [booking_out(booking) for booking in bookings[:5]],
        "recent_bills": [bill_out(db, bill) for bill in bills],
        "recent_payments": [payment_out(db, payment) for payment in payments],
        "pending_pnrs": len(pending),
        "pending_amount": float(sum((due for _, due in pending), ZERO)),
        "balance": customer_billing_summary(db, user.id),
    })
