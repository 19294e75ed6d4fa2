"""Money and calendar arithmetic shared by billing, payments and accounting.

All amounts are handled as ``Decimal`` and rounded half-up to paise.
"""
from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Optional, Union

from yatrasathi.errors import ValidationFailed

Number = Union[Decimal, int, float, str, None]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

BILL_CHARGE_FIELDS = (
    "railway_fare",
    "sb_incentive",
    "gst",
    "misc_charges",
    "platform_fee",
    "service_charge",
    "delivery_charge",
    "cancellation_charge",
    "surcharge",
)

GST_TYPES = ("INCLUSIVE", "EXCLUSIVE")


def to_decimal(value: Number) -> Decimal:
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def financial_year(on: date) -> str:
    """Indian financial year label, April to March: 2025-05-01 -> '2025-26'."""
    start = on.year if on.month >= 4 else on.year - 1
    return f"{start}-{str(start + 1)[-2:]}"


def financial_year_bounds(label: str) -> tuple[date, date]:
    try:
        start = int(label.split("-")[0])
    except (ValueError, IndexError):
        raise ValidationFailed(f"invalid financial year: {label}")
    if financial_year(date(start, 4, 1)) != label:
        raise ValidationFailed(f"invalid financial year: {label}")
    return date(start, 4, 1), date(start + 1, 3, 31)


def accounting_period(on: date) -> str:
    return f"{on.year:04d}-{on.month:02d}"


def calculate_bill_total(
    charges: Mapping[str, Number],
    discount: Number = None,
    gst_type: str = "EXCLUSIVE",
) -> Decimal:
    if gst_type not in GST_TYPES:
        raise ValidationFailed(f"gst_type must be one of {', '.join(GST_TYPES)}")
    total = ZERO
    for field in BILL_CHARGE_FIELDS:
        if field == "gst" and gst_type == "INCLUSIVE":
            # already part of the fare
            continue
        amount = to_decimal(charges.get(field))
        if amount < 0:
            raise ValidationFailed(f"{field} cannot be negative")
        total += amount
    discount_amount = to_decimal(discount)
    if discount_amount < 0:
        raise ValidationFailed("discount cannot be negative")
    return max(ZERO, round_money(total - discount_amount))


def calculate_payment_allocation(total: Number, count: int) -> list[Decimal]:
    """Split ``total`` into ``count`` equal shares.

    Shares are rounded to two decimals; whatever rounding leaves over is added
    to the first share so the parts always sum to the total. Nothing to
    split across yields no shares.
    """
    if count <= 0:
        return []
    amount = round_money(total)
    share = (amount / count).quantize(CENT, rounding=ROUND_HALF_UP)
    shares = [share] * count
    shares[0] = share + (amount - share * count)
    return shares


def pnr_payment_status(total: Number, paid: Number) -> str:
    total_amount = round_money(total)
    paid_amount = round_money(paid)
    if paid_amount <= 0:
        return "UNPAID"
    if paid_amount >= total_amount:
        return "PAID"
    return "PARTIAL"


def fifo_allocate(amount: Number, pending: Iterable[tuple[int, Number]]) -> list[tuple[int, Decimal]]:
    """Spread ``amount`` over ``(key, pending_amount)`` pairs, oldest first."""
    remaining = round_money(amount)
    plan = []
    for key, due in pending:
        if remaining <= 0:
            break
        due_amount = round_money(due)
        if due_amount <= 0:
            continue
        applied = min(remaining, due_amount)
        plan.append((key, applied))
        remaining -= applied
    return plan


def format_currency(value: Number, symbol: Optional[str] = "Rs.") -> str:
    """Indian digit grouping: 1234567.5 -> 'Rs. 12,34,567.50'."""
    amount = round_money(value)
    sign = "-" if amount < 0 else ""
    whole, fraction = f"{abs(amount):.2f}".split(".")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    text = f"{sign}{whole}.{fraction}"
    return f"{symbol} {text}" if symbol else text
