from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from yatrasathi.errors import Conflict, ValidationFailed
from yatrasathi.finance import ZERO, financial_year, round_money, to_decimal
from yatrasathi.models import Bill, CustomerLedgerEntry, LedgerMaster, Payment, Voucher, YearEndClosing
from yatrasathi.responses import today

ENTRY_TYPES = ("DEBIT", "CREDIT")


def customer_balance(db: Session, customer_id: int) -> Decimal:
    """Closing balance of the last posted entry; positive means the customer owes us."""
    last = db.execute(
        select(CustomerLedgerEntry.closing_balance)
        .where(CustomerLedgerEntry.customer_id == customer_id)
        .order_by(CustomerLedgerEntry.id.desc())
        .limit(1)
    ).scalar()
    return to_decimal(last)


def post_customer_entry(
    db: Session,
    customer_id: int,
    entry_type: str,
    amount,
    reference_type: str,
    reference_id: Optional[int] = None,
    narration: Optional[str] = None,
    on: Optional[date] = None,
) -> CustomerLedgerEntry:
    if entry_type not in ENTRY_TYPES:
        raise ValidationFailed(f"entry_type must be one of {', '.join(ENTRY_TYPES)}")
    value = round_money(amount)
    if value <= 0:
        raise ValidationFailed("ledger amount must be positive")
    opening = customer_balance(db, customer_id)
    closing = opening + value if entry_type == "DEBIT" else opening - value
    entry = CustomerLedgerEntry(
        customer_id=customer_id,
        entry_type=entry_type,
        amount=value,
        opening_balance=opening,
        closing_balance=closing,
        reference_type=reference_type,
        reference_id=reference_id,
        narration=narration,
        financial_year=financial_year(on or today()),
    )
    db.add(entry)
    db.flush()
    return entry


def _voucher_sides(ledger_id: int):
    debit = case(
        ((Voucher.account_id == ledger_id) & (Voucher.entry_type == "Dr"), Voucher.amount),
        ((Voucher.counter_account_id == ledger_id) & (Voucher.entry_type == "Cr"), Voucher.amount),
        else_=0,
    )
    credit = case(
        ((Voucher.account_id == ledger_id) & (Voucher.entry_type == "Cr"), Voucher.amount),
        ((Voucher.counter_account_id == ledger_id) & (Voucher.entry_type == "Dr"), Voucher.amount),
        else_=0,
    )
    return debit, credit


def ledger_balance(db: Session, ledger: LedgerMaster, upto: Optional[date] = None) -> dict:
    debit, credit = _voucher_sides(ledger.id)
    query = select(
        func.coalesce(func.sum(debit), 0),
        func.coalesce(func.sum(credit), 0),
        func.count(Voucher.id),
    ).where(
        Voucher.status == "Active",
        or_(Voucher.account_id == ledger.id, Voucher.counter_account_id == ledger.id),
    )
    if upto is not None:
        query = query.where(Voucher.entry_date <= upto)
    total_debit, total_credit, count = db.execute(query).one()
    opening = to_decimal(ledger.opening_balance)
    balance = round_money(opening + to_decimal(total_debit) - to_decimal(total_credit))
    return {
        "ledger": ledger.name,
        "ledger_type": ledger.ledger_type,
        "opening_balance": float(opening),
        "total_debit": float(round_money(total_debit)),
        "total_credit": float(round_money(total_credit)),
        "balance": float(abs(balance)),
        "side": "Dr" if balance >= ZERO else "Cr",
        "voucher_count": count,
    }


def customer_billing_summary(db: Session, customer_id: int) -> dict:
    """Billed (FINAL/PAID bills) against received (payments net of refunds)."""
    billed = db.execute(
        select(func.coalesce(func.sum(Bill.total_amount), 0)).where(
            Bill.customer_id == customer_id,
            Bill.status.in_(("FINAL", "PAID")),
        )
    ).scalar()
    received, refunded = db.execute(
        select(
            func.coalesce(func.sum(Payment.amount), 0),
            func.coalesce(func.sum(Payment.refunded_amount), 0),
        ).where(Payment.customer_id == customer_id, Payment.status != "REJECTED")
    ).one()
    total_billed = round_money(billed)
    total_received = round_money(to_decimal(received) - to_decimal(refunded))
    net = total_billed - total_received
    return {
        "customer_id": customer_id,
        "total_billed": float(total_billed),
        "total_received": float(total_received),
        "net_due": float(max(ZERO, net)),
        "net_advance": float(max(ZERO, -net)),
    }


def ensure_year_open(db: Session, fyear: str) -> None:
    closed = db.execute(
        select(YearEndClosing.id).where(YearEndClosing.financial_year == fyear)
    ).scalar()
    if closed:
        raise Conflict(f"financial year {fyear} is closed")
