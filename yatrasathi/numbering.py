from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from yatrasathi.finance import financial_year
from yatrasathi.models import Bill, Booking, VoucherSequence

VOUCHER_PREFIXES = {
    "CONTRA": "CT",
    "PAYMENT": "PY",
    "RECEIPT": "RC",
    "JOURNAL": "JN",
}


def _next_daily_number(db: Session, column, prefix: str, on: date) -> str:
    stem = f"{prefix}-{on:%y%m%d}-"
    last = db.execute(select(func.max(column)).where(column.like(f"{stem}%"))).scalar()
    number = int(last[len(stem):]) + 1 if last else 1
    return f"{stem}{number:04d}"


def next_bill_no(db: Session, on: date) -> str:
    return _next_daily_number(db, Bill.bill_no, "BL", on)


def next_booking_no(db: Session, on: date) -> str:
    return _next_daily_number(db, Booking.booking_no, "BK", on)


def _format_voucher_no(prefix: str, fyear: str, number: int) -> str:
    return f"{prefix}/{fyear}/{number:04d}"


def peek_voucher_no(db: Session, voucher_type: str, on: date) -> str:
    prefix = VOUCHER_PREFIXES[voucher_type]
    fyear = financial_year(on)
    sequence = _get_sequence(db, prefix, fyear)
    last = sequence.last_number if sequence else 0
    return _format_voucher_no(prefix, fyear, last + 1)


def next_voucher_no(db: Session, voucher_type: str, on: date) -> str:
    """Consume the next number of the voucher type's sequence for the year of ``on``."""
    prefix = VOUCHER_PREFIXES[voucher_type]
    fyear = financial_year(on)
    sequence = _get_sequence(db, prefix, fyear, for_update=True)
    if sequence is None:
        sequence = VoucherSequence(prefix=prefix, financial_year=fyear, last_number=0)
        db.add(sequence)
    sequence.last_number += 1
    db.flush()
    return _format_voucher_no(prefix, fyear, sequence.last_number)


def _get_sequence(db: Session, prefix: str, fyear: str, for_update: bool = False) -> Optional[VoucherSequence]:
    query = select(VoucherSequence).where(
        VoucherSequence.prefix == prefix,
        VoucherSequence.financial_year == fyear,
    )
    if for_update:
        query = query.with_for_update()
    return db.execute(query).scalar_one_or_none()
