from yatrasathi.errors import Conflict

BOOKING_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "DRAFT": ("PENDING", "CANCELLED"),
    "PENDING": ("APPROVED", "CONFIRMED", "CANCELLED"),
    "APPROVED": ("CONFIRMED", "CANCELLED"),
    "CONFIRMED": ("COMPLETED", "CANCELLED"),
    "CANCELLED": (),
    "COMPLETED": (),
}

BILLABLE_BOOKING_STATUSES = ("DRAFT", "PENDING", "APPROVED")
DELETABLE_BOOKING_STATUSES = ("DRAFT", "PENDING")

BILL_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "DRAFT": ("FINAL",),
    "FINAL": ("PAID",),
    "PAID": (),
}
LOCKED_BILL_STATUSES = ("FINAL", "PAID")


def can_transition(current: str, target: str, table: dict[str, tuple[str, ...]] = BOOKING_TRANSITIONS) -> bool:
    return target in table.get(current, ())


def transition(record, target: str, table: dict[str, tuple[str, ...]] = BOOKING_TRANSITIONS) -> str:
    """Move ``record.status`` to ``target`` or raise ``Conflict``."""
    current = record.status
    if not can_transition(current, target, table):
        raise Conflict(f"cannot move from {current} to {target}")
    record.status = target
    return current


def ensure_billable(booking) -> None:
    if booking.status == "CONFIRMED":
        raise Conflict("billing already exists for this booking")
    if booking.status not in BILLABLE_BOOKING_STATUSES:
        raise Conflict(f"cannot bill a {booking.status} booking")
