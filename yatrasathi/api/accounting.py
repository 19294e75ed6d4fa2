from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from yatrasathi.api.payments import PAYMENT_MODES
from yatrasathi.db import get_db
from yatrasathi.finance import ZERO, accounting_period, financial_year, round_money
from yatrasathi.ledger import ensure_year_open, ledger_balance
from yatrasathi.logger import logger
from yatrasathi.models import (
    ContraVoucher,
    JournalVoucher,
    LedgerMaster,
    PaymentVoucher,
    ReceiptVoucher,
    User,
    Voucher,
    VoucherLine,
)
from yatrasathi.numbering import next_voucher_no, peek_voucher_no
from yatrasathi.rbac import require_admin, require_permission
from yatrasathi.responses import iso, list_meta, money, ok, paginate, today
from yatrasathi.schemas import PatchModel

router = APIRouter(prefix="/api/accounting", tags=["Accounting"])

VoucherKind = Literal["contra", "payment", "receipt", "journal"]

VOUCHER_MODELS: dict[str, type[Voucher]] = {
    "contra": ContraVoucher,
    "payment": PaymentVoucher,
    "receipt": ReceiptVoucher,
    "journal": JournalVoucher,
}
LEDGER_TYPES = ("Cash", "Bank", "Expense", "Income", "Asset", "Liability", "Capital")
CASH_BANK = ("Cash", "Bank")
CHEQUE_MODES = ("Cheque", "Draft")

can_view = require_permission("canViewReports", "canProcessPayments")
can_post = require_permission("canModifyFinancialValues", "canProcessPayments")


def ledger_out(ledger: LedgerMaster) -> dict:
    return {
        "ledger_id": ledger.id,
        "name": ledger.name,
        "ledger_type": ledger.ledger_type,
        "opening_balance": money(ledger.opening_balance),
        "description": ledger.description,
        "is_active": ledger.is_active,
    }


def voucher_out(db: Session, voucher: Voucher, with_lines: bool = False) -> dict:
    account = db.get(LedgerMaster, voucher.account_id)
    counter = db.get(LedgerMaster, voucher.counter_account_id)
    data = {
        "voucher_id": voucher.id,
        "voucher_type": voucher.voucher_type,
        "voucher_no": voucher.voucher_no,
        "entry_date": iso(voucher.entry_date),
        "financial_year": voucher.financial_year,
        "accounting_period": voucher.accounting_period,
        "account": account.name if account else None,
        "counter_account": counter.name if counter else None,
        "entry_type": voucher.entry_type,
        "amount": money(voucher.amount),
        "mode": voucher.mode,
        "cheque_no": voucher.cheque_no,
        "ref_number": voucher.ref_number,
        "narration": voucher.narration,
        "balance_check": voucher.balance_check,
        "status": voucher.status,
        "locked": voucher.locked,
        "entered_by": voucher.entered_by,
        "entered_on": iso(voucher.entered_on),
        "modified_by": voucher.modified_by,
        "modified_on": iso(voucher.modified_on),
    }
    if with_lines:
        lines = db.query(VoucherLine).filter(VoucherLine.voucher_id == voucher.id).order_by(VoucherLine.id).all()
        data["ledger_entries"] = [
            {
                "ledger": line.ledger_name,
                "debit": money(line.debit),
                "credit": money(line.credit),
                "narration": line.narration,
            }
            for line in lines
        ]
    return data


class LedgerCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'name': 'HDFC Current A/c', 'ledger_type': 'Bank', 'opening_balance': 50000.0}}}
    name: str = Field(min_length=1, max_length=100)
    ledger_type: Literal["Cash", "Bank", "Expense", "Income", "Asset", "Liability", "Capital"]
    opening_balance: float = 0
    description: Optional[str] = None


class LedgerUpdate(PatchModel):
    not_null = ("ledger_type", "opening_balance", "is_active")

    ledger_type: Optional[Literal["Cash", "Bank", "Expense", "Income", "Asset", "Liability", "Capital"]] = None
    opening_balance: Optional[float] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class VoucherLineIn(BaseModel):
    ledger: str
    debit: float = Field(0, ge=0)
    credit: float = Field(0, ge=0)
    narration: Optional[str] = None


class VoucherIn(BaseModel):
    model_config = {"json_schema_extra": {"example": {'entry_date': '2026-10-15', 'account': 'HDFC Current A/c', 'counter_account': 'Cash in Hand', 'entry_type': 'Dr', 'amount': 10000.0, 'narration': 'Cash deposited'}}}
    voucher_no: Optional[str] = None
    entry_date: Optional[date] = None
    account: str
    counter_account: str
    entry_type: Literal["Dr", "Cr"] = "Dr"
    amount: float = Field(gt=0)
    mode: Optional[str] = None
    cheque_no: Optional[str] = None
    ref_number: Optional[str] = None
    narration: Optional[str] = None
    ledger_entries: list[VoucherLineIn] = Field(default_factory=list)


class VoucherUpdate(PatchModel):
    not_null = ("entry_date", "account", "counter_account", "entry_type", "amount")

    entry_date: Optional[date] = None
    account: Optional[str] = None
    counter_account: Optional[str] = None
    entry_type: Optional[Literal["Dr", "Cr"]] = None
    amount: Optional[float] = Field(None, gt=0)
    mode: Optional[str] = None
    cheque_no: Optional[str] = None
    ref_number: Optional[str] = None
    narration: Optional[str] = None
    ledger_entries: Optional[list[VoucherLineIn]] = None


def _ledger_by_name(db: Session, name: str, active_only: bool = True) -> LedgerMaster:
    ledger = db.query(LedgerMaster).filter(LedgerMaster.name == name).first()
    if not ledger or (active_only and not ledger.is_active):
        raise HTTPException(status_code=400 if active_only else 404, detail=f"ledger '{name}' not found")
    return ledger


def _validate_voucher(kind: str, account: LedgerMaster, counter: LedgerMaster, mode: Optional[str], cheque_no: Optional[str]) -> None:
    if account.id == counter.id:
        raise HTTPException(status_code=400, detail="debit and credit ledgers must be different")
    if kind == "contra":
        if account.ledger_type not in CASH_BANK or counter.ledger_type not in CASH_BANK:
            raise HTTPException(status_code=400, detail="contra entries are allowed only between cash and bank ledgers")
    if kind in ("payment", "receipt"):
        if mode not in PAYMENT_MODES:
            raise HTTPException(status_code=400, detail=f"mode must be one of {', '.join(PAYMENT_MODES)}")
        if account.ledger_type not in CASH_BANK and counter.ledger_type not in CASH_BANK:
            raise HTTPException(status_code=400, detail=f"a {kind} voucher must involve a cash or bank ledger")
    if mode in CHEQUE_MODES and not cheque_no:
        raise HTTPException(status_code=400, detail=f"cheque_no is required for {mode}")


def _replace_lines(db: Session, voucher: Voucher, lines: list[VoucherLineIn]) -> Optional[bool]:
    for line in db.query(VoucherLine).filter(VoucherLine.voucher_id == voucher.id).all():
        db.delete(line)
    if not lines:
        return None
    debit = ZERO
    credit = ZERO
    for line in lines:
        db.add(
            VoucherLine(
                voucher_id=voucher.id,
                ledger_name=line.ledger,
                debit=round_money(line.debit),
                credit=round_money(line.credit),
                narration=line.narration,
            )
        )
        debit += round_money(line.debit)
        credit += round_money(line.credit)
    # lines are informational, an unbalanced set is stored and flagged
    return debit == credit


def _get_voucher(db: Session, kind: str, voucher_id: int) -> Voucher:
    voucher = db.get(VOUCHER_MODELS[kind], voucher_id)
    if not voucher or voucher.voucher_type != kind.upper():
        raise HTTPException(status_code=404, detail=f"{kind} voucher not found")
    return voucher


def _ensure_mutable(voucher: Voucher) -> None:
    if voucher.locked:
        raise HTTPException(status_code=409, detail="voucher is locked")
    if voucher.status != "Active":
        raise HTTPException(status_code=400, detail="voucher is deleted")


@router.get("/modes")
def list_modes(_: User = Depends(can_view)) -> dict:
    return ok({"modes": list(PAYMENT_MODES), "cheque_modes": list(CHEQUE_MODES)})


@router.get("/ledgers", tags=["Ledgers"])
def list_ledgers(
    ledger_type: Optional[str] = Query(None, alias="type"),
    search: Optional[str] = None,
    active: Optional[bool] = True,
    _: User = Depends(can_view),
    db: Session = Depends(get_db),
) -> dict:
    query = db.query(LedgerMaster)
    if ledger_type:
        query = query.filter(LedgerMaster.ledger_type == ledger_type)
    if search:
        query = query.filter(func.lower(LedgerMaster.name).like(f"%{search.lower()}%"))
    if active is not None:
        query = query.filter(LedgerMaster.is_active == active)
    return ok([ledger_out(row) for row in query.order_by(LedgerMaster.name).all()])


@router.post("/ledgers", status_code=201, tags=["Ledgers"])
def create_ledger(
    payload: LedgerCreate,
    _: User = Depends(require_permission("canModifyFinancialValues", "canModifySystemSettings")),
    db: Session = Depends(get_db),
) -> dict:
    if db.query(LedgerMaster).filter(LedgerMaster.name == payload.name).first():
        raise HTTPException(status_code=400, detail=f"ledger '{payload.name}' already exists")
    ledger = LedgerMaster(
        name=payload.name,
        ledger_type=payload.ledger_type,
        opening_balance=round_money(payload.opening_balance),
        description=payload.description,
        is_active=True,
    )
    db.add(ledger)
    db.commit()
    db.refresh(ledger)
    return ok(ledger_out(ledger), "ledger created")


@router.get("/ledgers/names", tags=["Ledgers"])
def ledger_names(_: User = Depends(can_view), db: Session = Depends(get_db)) -> dict:
    names = db.query(LedgerMaster.name).filter(LedgerMaster.is_active.is_(True)).order_by(LedgerMaster.name).all()
    return ok([name for (name,) in names])


@router.get("/ledgers/cash-bank", tags=["Ledgers"])
def cash_bank_ledgers(_: User = Depends(can_view), db: Session = Depends(get_db)) -> dict:
    rows = (
        db.query(LedgerMaster)
        .filter(LedgerMaster.ledger_type.in_(CASH_BANK), LedgerMaster.is_active.is_(True))
        .order_by(LedgerMaster.name)
        .all()
    )
    return ok([ledger_out(row) for row in rows])


@router.get("/ledgers/types", tags=["Ledgers"])
def ledger_types(_: User = Depends(can_view)) -> dict:
    return ok(list(LEDGER_TYPES))


@router.get("/ledgers/{name:path}/balance", tags=["Ledgers"])
def get_ledger_balance(
    name: str,
    upto: Optional[date] = None,
    _: User = Depends(can_view),
    db: Session = Depends(get_db),
) -> dict:
    ledger = _ledger_by_name(db, name, active_only=False)
    return ok(ledger_balance(db, ledger, upto))


@router.get("/ledgers/{name:path}", tags=["Ledgers"])
def get_ledger(name: str, _: User = Depends(can_view), db: Session = Depends(get_db)) -> dict:
    return ok(ledger_out(_ledger_by_name(db, name, active_only=False)))


@router.patch("/ledgers/{name:path}", tags=["Ledgers"])
def update_ledger(
    name: str,
    payload: LedgerUpdate,
    _: User = Depends(require_permission("canModifyFinancialValues", "canModifySystemSettings")),
    db: Session = Depends(get_db),
) -> dict:
    ledger = _ledger_by_name(db, name, active_only=False)
    changes = payload.model_dump(exclude_unset=True)
    if "opening_balance" in changes:
        changes["opening_balance"] = round_money(changes["opening_balance"])
    for key, value in changes.items():
        setattr(ledger, key, value)
    db.commit()
    db.refresh(ledger)
    return ok(ledger_out(ledger), "ledger updated")


@router.get("/{kind}/next-voucher")
def next_voucher(
    kind: VoucherKind,
    on: Optional[date] = None,
    _: User = Depends(can_view),
    db: Session = Depends(get_db),
) -> dict:
    voucher_type = kind.upper()
    return ok({"voucher_type": voucher_type, "voucher_no": peek_voucher_no(db, voucher_type, on or today())})


@router.get("/{kind}")
def list_vouchers(
    kind: VoucherKind,
    financial_year: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    ledger: Optional[str] = None,
    status: str = "Active",
    limit: int = Query(50, ge=1, le=200),
    cursor: Optional[int] = Query(None, ge=0),
    _: User = Depends(can_view),
    db: Session = Depends(get_db),
) -> dict:
    model = VOUCHER_MODELS[kind]
    query = db.query(model).filter(model.voucher_type == kind.upper(), model.status == status)
    if financial_year:
        query = query.filter(model.financial_year == financial_year)
    if date_from:
        query = query.filter(model.entry_date >= date_from)
    if date_to:
        query = query.filter(model.entry_date <= date_to)
    if ledger:
        ledger_row = _ledger_by_name(db, ledger, active_only=False)
        query = query.filter(or_(model.account_id == ledger_row.id, model.counter_account_id == ledger_row.id))
    total = query.count()
    totals = query.with_entities(func.coalesce(func.sum(model.amount), 0)).scalar()
    rows, next_cursor = paginate(query.order_by(model.entry_date, model.id), limit, cursor)
    result_meta = list_meta(limit, cursor, next_cursor, total)
    result_meta["total_amount"] = float(round_money(totals))
    return ok([voucher_out(db, row) for row in rows], meta_=result_meta)


@router.post("/{kind}", status_code=201)
def create_voucher(
    kind: VoucherKind,
    payload: VoucherIn,
    _: User = Depends(can_post),
    db: Session = Depends(get_db),
) -> dict:
    account = _ledger_by_name(db, payload.account)
    counter = _ledger_by_name(db, payload.counter_account)
    _validate_voucher(kind, account, counter, payload.mode, payload.cheque_no)
    entry_date = payload.entry_date or today()
    fyear = financial_year(entry_date)
    ensure_year_open(db, fyear)
    voucher_type = kind.upper()
    voucher = VOUCHER_MODELS[kind](
        voucher_no=payload.voucher_no or next_voucher_no(db, voucher_type, entry_date),
        entry_date=entry_date,
        financial_year=fyear,
        accounting_period=accounting_period(entry_date),
        account_id=account.id,
        counter_account_id=counter.id,
        entry_type=payload.entry_type,
        amount=round_money(payload.amount),
        mode=payload.mode,
        cheque_no=payload.cheque_no,
        ref_number=payload.ref_number,
        narration=payload.narration,
        status="Active",
        locked=False,
    )
    db.add(voucher)
    db.flush()
    voucher.balance_check = _replace_lines(db, voucher, payload.ledger_entries)
    db.commit()
    db.refresh(voucher)
    logger.info("{} voucher {} posted for {}", voucher_type, voucher.voucher_no, voucher.amount)
    return ok(voucher_out(db, voucher, with_lines=True), f"{kind} voucher created")


@router.get("/{kind}/{voucher_id}")
def get_voucher(
    kind: VoucherKind,
    voucher_id: int,
    _: User = Depends(can_view),
    db: Session = Depends(get_db),
) -> dict:
    return ok(voucher_out(db, _get_voucher(db, kind, voucher_id), with_lines=True))


@router.put("/{kind}/{voucher_id}")
def update_voucher(
    kind: VoucherKind,
    voucher_id: int,
    payload: VoucherUpdate,
    _: User = Depends(can_post),
    db: Session = Depends(get_db),
) -> dict:
    voucher = _get_voucher(db, kind, voucher_id)
    _ensure_mutable(voucher)
    changes = payload.model_dump(exclude_unset=True, exclude={"account", "counter_account", "ledger_entries"})
    account = _ledger_by_name(db, payload.account) if payload.account else db.get(LedgerMaster, voucher.account_id)
    counter = (
        _ledger_by_name(db, payload.counter_account)
        if payload.counter_account
        else db.get(LedgerMaster, voucher.counter_account_id)
    )
    _validate_voucher(
        kind,
        account,
        counter,
        changes.get("mode", voucher.mode),
        changes.get("cheque_no", voucher.cheque_no),
    )
    if "entry_date" in changes:
        entry_date = changes["entry_date"]
        ensure_year_open(db, financial_year(entry_date))
        voucher.financial_year = financial_year(entry_date)
        voucher.accounting_period = accounting_period(entry_date)
    if "amount" in changes:
        changes["amount"] = round_money(changes["amount"])
    for key, value in changes.items():
        setattr(voucher, key, value)
    voucher.account_id = account.id
    voucher.counter_account_id = counter.id
    if payload.ledger_entries is not None:
        voucher.balance_check = _replace_lines(db, voucher, payload.ledger_entries)
    db.commit()
    db.refresh(voucher)
    return ok(voucher_out(db, voucher, with_lines=True), f"{kind} voucher updated")


@router.delete("/{kind}/{voucher_id}")
def delete_voucher(
    kind: VoucherKind,
    voucher_id: int,
    _: User = Depends(can_post),
    db: Session = Depends(get_db),
) -> dict:
    voucher = _get_voucher(db, kind, voucher_id)
    _ensure_mutable(voucher)
    voucher.status = "Deleted"
    db.commit()
    return ok({"voucher_id": voucher_id, "voucher_no": voucher.voucher_no, "status": voucher.status}, f"{kind} voucher deleted")


@router.post("/{kind}/{voucher_id}/lock")
def lock_voucher(
    kind: VoucherKind,
    voucher_id: int,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict:
    voucher = _get_voucher(db, kind, voucher_id)
    voucher.locked = True
    db.commit()
    db.refresh(voucher)
    return ok(voucher_out(db, voucher), f"{kind} voucher locked")
