"""Applying customer payments to PNRs: allocation, refunds and advances."""
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from yatrasathi.errors import Conflict, ValidationFailed
from yatrasathi.finance import ZERO, calculate_payment_allocation, fifo_allocate, pnr_payment_status, round_money, to_decimal
from yatrasathi.ledger import post_customer_entry
from yatrasathi.logger import logger
from yatrasathi.models import CustomerAdvance, Payment, PaymentAllocation, Pnr, User
from yatrasathi.responses import now

CLOSED_PAYMENT_STATUSES = ("REJECTED", "REFUNDED")


def pnr_paid(db: Session, pnr_id: int) -> Decimal:
    paid = db.execute(
        select(func.coalesce(func.sum(PaymentAllocation.amount), 0)).where(
            PaymentAllocation.pnr_id == pnr_id
        )
    ).scalar()
    return round_money(paid)


def pnr_summary(db: Session, pnr: Pnr) -> dict:
    paid = pnr_paid(db, pnr.id)
    total = round_money(pnr.total_amount)
    return {
        "total_amount": float(total),
        "paid_amount": float(paid),
        "pending_amount": float(max(ZERO, total - paid)),
        "payment_status": pnr_payment_status(total, paid),
    }


def payment_allocated(db: Session, payment_id: int) -> Decimal:
    allocated = db.execute(
        select(func.coalesce(func.sum(PaymentAllocation.amount), 0)).where(
            PaymentAllocation.payment_id == payment_id
        )
    ).scalar()
    return round_money(allocated)


def payment_unallocated(db: Session, payment: Payment) -> Decimal:
    if payment.status == "REJECTED":
        return ZERO
    return round_money(
        to_decimal(payment.amount) - to_decimal(payment.refunded_amount) - payment_allocated(db, payment.id)
    )


def pending_pnrs(db: Session, customer_id: int) -> list[tuple[Pnr, Decimal]]:
    """Open PNRs of a customer with an unpaid balance, oldest travel first."""
    paid = (
        select(
            PaymentAllocation.pnr_id.label("pnr_id"),
            func.sum(PaymentAllocation.amount).label("paid"),
        )
        .group_by(PaymentAllocation.pnr_id)
        .subquery()
    )
    rows = db.execute(
        select(Pnr, func.coalesce(paid.c.paid, 0))
        .outerjoin(paid, paid.c.pnr_id == Pnr.id)
        .where(Pnr.customer_id == customer_id, Pnr.closed_on.is_(None))
        .order_by(Pnr.travel_date, Pnr.id)
    ).all()
    result = []
    for pnr, paid_amount in rows:
        pending = round_money(to_decimal(pnr.total_amount) - to_decimal(paid_amount))
        if pending > 0:
            result.append((pnr, pending))
    return result


def _ensure_open(payment: Payment) -> None:
    if payment.status in CLOSED_PAYMENT_STATUSES:
        raise Conflict(f"payment is {payment.status}")
    if payment.verification_status == "REJECTED":
        raise Conflict("payment was rejected at verification")


def allocate(
    db: Session, payment: Payment, pnr: Pnr, amount, remarks: Optional[str] = None
) -> PaymentAllocation:
    _ensure_open(payment)
    value = round_money(amount)
    if value <= 0:
        raise ValidationFailed("allocation amount must be positive")
    if pnr.customer_id != payment.customer_id:
        raise ValidationFailed("PNR belongs to a different customer")
    if pnr.closed_on is not None:
        raise Conflict(f"PNR {pnr.pnr_number} is closed")
    pending = round_money(to_decimal(pnr.total_amount) - pnr_paid(db, pnr.id))
    if value > pending:
        raise ValidationFailed(
            f"allocation {value} exceeds pending amount {pending} of PNR {pnr.pnr_number}"
        )
    available = payment_unallocated(db, payment)
    if value > available:
        raise ValidationFailed(f"allocation {value} exceeds unallocated amount {available}")
    allocation = PaymentAllocation(
        payment_id=payment.id,
        pnr_id=pnr.id,
        amount=value,
        allocated_on=now(),
        remarks=remarks,
    )
    db.add(allocation)
    db.flush()
    if payment.status == "RECEIVED" and payment_unallocated(db, payment) == ZERO:
        payment.status = "ADJUSTED"
    return allocation


def auto_allocate(db: Session, payment: Payment) -> list[PaymentAllocation]:
    _ensure_open(payment)
    available = payment_unallocated(db, payment)
    if available <= 0:
        return []
    pending = pending_pnrs(db, payment.customer_id)
    by_id = {pnr.id: pnr for pnr, _ in pending}
    plan = fifo_allocate(available, [(pnr.id, due) for pnr, due in pending])
    allocations = [
        allocate(db, payment, by_id[pnr_id], amount, remarks="auto allocation")
        for pnr_id, amount in plan
    ]
    logger.info(
        "payment {} auto-allocated to {} PNRs, {} left as advance",
        payment.id,
        len(allocations),
        payment_unallocated(db, payment),
    )
    return allocations


def split_allocate(db: Session, payment: Payment, pnrs: list[Pnr], amount=None) -> list[PaymentAllocation]:
    """Spread ``amount`` (default: everything unallocated) equally over ``pnrs``."""
    _ensure_open(payment)
    total = payment_unallocated(db, payment) if amount is None else round_money(amount)
    shares = calculate_payment_allocation(total, len(pnrs))
    allocations = [
        allocate(db, payment, pnr, share, remarks="split allocation")
        for pnr, share in zip(pnrs, shares)
        if share > 0
    ]
    logger.info("payment {} split {} across {} PNRs", payment.id, total, len(allocations))
    return allocations


def refund(
    db: Session,
    payment: Payment,
    amount,
    pnr: Optional[Pnr] = None,
    remarks: Optional[str] = None,
) -> Optional[PaymentAllocation]:
    _ensure_open(payment)
    value = round_money(amount)
    if value <= 0:
        raise ValidationFailed("refund amount must be positive")
    allocation = None
    if pnr is not None:
        applied = round_money(
            db.execute(
                select(func.coalesce(func.sum(PaymentAllocation.amount), 0)).where(
                    PaymentAllocation.payment_id == payment.id,
                    PaymentAllocation.pnr_id == pnr.id,
                )
            ).scalar()
        )
        if value > applied:
            raise ValidationFailed(f"refund {value} exceeds {applied} allocated to PNR {pnr.pnr_number}")
        allocation = PaymentAllocation(
            payment_id=payment.id,
            pnr_id=pnr.id,
            amount=-value,
            allocated_on=now(),
            remarks=remarks or "refund",
        )
        db.add(allocation)
    else:
        available = payment_unallocated(db, payment)
        if value > available:
            raise ValidationFailed(f"refund {value} exceeds unallocated amount {available}")
    payment.refunded_amount = round_money(to_decimal(payment.refunded_amount) + value)
    if payment.refunded_amount >= round_money(payment.amount):
        payment.status = "REFUNDED"
    db.flush()
    post_customer_entry(
        db,
        payment.customer_id,
        "DEBIT",
        value,
        "REFUND",
        payment.id,
        narration=remarks or f"Refund against payment {payment.id}",
    )
    refresh_advance(db, payment.customer_id, payment.financial_year)
    return allocation


def refresh_advance(db: Session, customer_id: int, fyear: str) -> CustomerAdvance:
    payments = db.execute(
        select(Payment).where(
            Payment.customer_id == customer_id,
            Payment.financial_year == fyear,
            Payment.status != "REJECTED",
        )
    ).scalars().all()
    total = sum((payment_unallocated(db, payment) for payment in payments), ZERO)
    advance = db.execute(
        select(CustomerAdvance).where(
            CustomerAdvance.customer_id == customer_id,
            CustomerAdvance.financial_year == fyear,
        )
    ).scalar_one_or_none()
    if advance is None:
        advance = CustomerAdvance(customer_id=customer_id, financial_year=fyear, amount=total)
        db.add(advance)
    elif round_money(advance.amount) != total:
        advance.amount = total
    db.flush()
    return advance


def outstanding_receivables(db: Session) -> list[dict]:
    customers: dict[int, dict] = {}
    pnr_customers = db.execute(
        select(Pnr.customer_id).where(Pnr.closed_on.is_(None)).distinct()
    ).scalars().all()
    for customer_id in pnr_customers:
        pending = pending_pnrs(db, customer_id)
        if not pending:
            continue
        user = db.get(User, customer_id)
        customers[customer_id] = {
            "customer_id": customer_id,
            "customer_name": user.name if user else None,
            "pnr_count": len(pending),
            "outstanding": float(sum((due for _, due in pending), ZERO)),
            "oldest_travel_date": pending[0][0].travel_date.isoformat(),
        }
    return sorted(customers.values(), key=lambda row: row["outstanding"], reverse=True)
