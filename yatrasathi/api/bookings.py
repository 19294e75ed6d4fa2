from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from yatrasathi.allocation import pnr_summary
from yatrasathi.api.masters import find_train, station_names
from yatrasathi.db import get_db
from yatrasathi.finance import round_money, to_decimal
from yatrasathi.ledger import post_customer_entry
from yatrasathi.logger import logger
from yatrasathi.models import Bill, Booking, MasterPassenger, Passenger, Pnr, User
from yatrasathi.notifications import notify_booking_status
from yatrasathi.numbering import next_booking_no
from yatrasathi.rbac import has_permission, is_admin, is_customer, require_permission
from yatrasathi.responses import iso, list_meta, money, now, ok, paginate, today
from yatrasathi.schemas import PatchModel
from yatrasathi.workflow import DELETABLE_BOOKING_STATUSES, transition

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])

TRAVEL_CLASSES = ("1A", "2A", "3A", "3E", "SL", "CC", "EC", "2S")
QUOTAS = ("GENERAL", "TATKAL", "PREMIUM_TATKAL", "LADIES", "SENIOR_CITIZEN", "FOREIGN_TOURIST")
PRIORITIES = ("LOW", "NORMAL", "HIGH", "URGENT")
GENDERS = ("M", "F", "O")
MAX_PASSENGERS = 6
EDITABLE_STATUSES = ("DRAFT", "PENDING", "APPROVED")


def _sees_all(user: User) -> bool:
    return is_admin(user) or any(
        has_permission(user, flag)
        for flag in ("canApproveBookings", "canGenerateBills", "canProcessPayments")
    )


def _scoped(query, user: User):
    if is_customer(user):
        return query.filter(Booking.customer_id == user.id)
    if not _sees_all(user):
        return query.filter(Booking.agent_id == user.id)
    return query


def get_booking_for(db: Session, booking_id: int, user: User) -> Booking:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="booking not found")
    if is_customer(user) and booking.customer_id != user.id:
        raise HTTPException(status_code=403, detail="not authorized for this booking")
    if not is_customer(user) and not _sees_all(user) and booking.agent_id != user.id:
        raise HTTPException(status_code=403, detail="booking is not assigned to you")
    return booking


def passenger_out(passenger: Passenger) -> dict:
    return {
        "passenger_id": passenger.id,
        "booking_id": passenger.booking_id,
        "first_name": passenger.first_name,
        "last_name": passenger.last_name,
        "age": passenger.age,
        "gender": passenger.gender,
        "berth_preference": passenger.berth_preference,
        "berth_allocated": passenger.berth_allocated,
        "seat_no": passenger.seat_no,
        "coach": passenger.coach,
        "is_active": passenger.is_active,
    }


def pnr_out(db: Session, pnr: Pnr) -> dict:
    train = find_train(db, pnr.train_no)
    data = {
        "pnr_id": pnr.id,
        "booking_id": pnr.booking_id,
        "customer_id": pnr.customer_id,
        "pnr_number": pnr.pnr_number,
        "train_no": pnr.train_no,
        "train_name": train.name if train else None,
        "travel_date": iso(pnr.travel_date),
        "travel_class": pnr.travel_class,
        "quota": pnr.quota,
        "passengers": pnr.passengers,
        "status": pnr.status,
        "booking_amount": money(pnr.booking_amount),
        "service_amount": money(pnr.service_amount),
        "closed": pnr.closed_on is not None,
    }
    data.update(pnr_summary(db, pnr))
    return data


def booking_out(booking: Booking) -> dict:
    return {
        "booking_id": booking.id,
        "booking_no": booking.booking_no,
        "customer_id": booking.customer_id,
        "from_station": booking.from_station,
        "to_station": booking.to_station,
        "travel_date": iso(booking.travel_date),
        "travel_class": booking.travel_class,
        "quota": booking.quota,
        "berth_preference": booking.berth_preference,
        "total_passengers": booking.total_passengers,
        "request_date": iso(booking.request_date),
        "status": booking.status,
        "agent_id": booking.agent_id,
        "priority": booking.priority,
        "remarks": booking.remarks,
        "entered_by": booking.entered_by,
        "entered_on": iso(booking.entered_on),
        "modified_by": booking.modified_by,
        "modified_on": iso(booking.modified_on),
        "closed_by": booking.closed_by,
        "closed_on": iso(booking.closed_on),
    }


class PassengerIn(BaseModel):
    model_config = {"json_schema_extra": {"example": {"first_name": "Asha", "last_name": "Verma", "age": 34, "gender": "F", "berth_preference": "LOWER"}}}
    first_name: str = Field(min_length=1, max_length=50)
    last_name: Optional[str] = None
    age: int = Field(ge=0, le=125)
    gender: str
    berth_preference: Optional[str] = None
    berth_allocated: Optional[str] = None
    seat_no: Optional[str] = None
    coach: Optional[str] = None

    @field_validator("gender")
    @classmethod
    def _gender(cls, value: str) -> str:
        value = value.upper()[:1]
        if value not in GENDERS:
            raise ValueError("gender must be M, F or O")
        return value


class PassengerUpdate(PatchModel):
    not_null = ("first_name", "age", "is_active")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    age: Optional[int] = Field(None, ge=0, le=125)
    berth_preference: Optional[str] = None
    berth_allocated: Optional[str] = None
    seat_no: Optional[str] = None
    coach: Optional[str] = None
    is_active: Optional[bool] = None


class BookingCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'from_station': 'NDLS', 'to_station': 'BCT', 'travel_date': '2026-12-20', 'travel_class': '3A', 'quota': 'TATKAL', 'berth_preference': 'LOWER', 'passengers': [{'first_name': 'Asha', 'age': 34, 'gender': 'F'}]}}}
    customer_id: Optional[int] = None
    from_station: str = Field(min_length=2, max_length=10)
    to_station: str = Field(min_length=2, max_length=10)
    travel_date: date
    travel_class: str
    quota: str = "TATKAL"
    berth_preference: Optional[str] = None
    priority: str = "NORMAL"
    remarks: Optional[str] = None
    save_as_draft: bool = False
    passengers: list[PassengerIn] = Field(default_factory=list)
    master_passenger_ids: list[int] = Field(default_factory=list)

    @field_validator("from_station", "to_station", "travel_class", "quota", "priority")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()


class BookingUpdate(PatchModel):
    not_null = ("from_station", "to_station", "travel_date", "travel_class", "quota", "priority")

    from_station: Optional[str] = None
    to_station: Optional[str] = None
    travel_date: Optional[date] = None
    travel_class: Optional[str] = None
    quota: Optional[str] = None
    berth_preference: Optional[str] = None
    priority: Optional[str] = None
    remarks: Optional[str] = None

    @field_validator("from_station", "to_station", "travel_class", "quota", "priority")
    @classmethod
    def _upper(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().upper() if value else value


class AssignRequest(BaseModel):
    agent_id: int


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class PnrCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {'pnr_number': '2456789012', 'train_no': '12952', 'booking_amount': 2450.0, 'service_amount': 150.0}}}
    pnr_number: str = Field(min_length=5, max_length=15)
    train_no: Optional[str] = None
    travel_date: Optional[date] = None
    passengers: Optional[int] = Field(None, ge=1)
    status: str = "CNF"
    booking_amount: float = Field(ge=0)
    service_amount: float = Field(0, ge=0)


def _validate_trip(from_station: str, to_station: str, travel_date: date, travel_class: str, quota: str, priority: str) -> None:
    if from_station == to_station:
        raise HTTPException(status_code=400, detail="from and to stations must differ")
    if travel_date < today():
        raise HTTPException(status_code=400, detail="travel date cannot be in the past")
    if travel_class not in TRAVEL_CLASSES:
        raise HTTPException(status_code=400, detail=f"travel_class must be one of {', '.join(TRAVEL_CLASSES)}")
    if quota not in QUOTAS:
        raise HTTPException(status_code=400, detail=f"quota must be one of {', '.join(QUOTAS)}")
    if priority not in PRIORITIES:
        raise HTTPException(status_code=400, detail=f"priority must be one of {', '.join(PRIORITIES)}")


def _saved_passengers(db: Session, customer_id: int, ids: list[int]) -> list[MasterPassenger]:
    ids = list(dict.fromkeys(ids))
    if not ids:
        return []
    rows = (
        db.query(MasterPassenger)
        .filter(
            MasterPassenger.customer_id == customer_id,
            MasterPassenger.id.in_(ids),
            MasterPassenger.is_active.is_(True),
        )
        .all()
    )
    by_id = {row.id: row for row in rows}
    missing = [str(master_id) for master_id in ids if master_id not in by_id]
    if missing:
        raise HTTPException(status_code=400, detail=f"unknown saved passenger {', '.join(missing)}")
    return [by_id[master_id] for master_id in ids]


def _active_passenger_count(db: Session, booking_id: int) -> int:
    return db.execute(
        select(func.count(Passenger.id)).where(
            Passenger.booking_id == booking_id, Passenger.is_active.is_(True)
        )
    ).scalar()


@router.post("", status_code=201)
def create_booking(
    payload: BookingCreate,
    user: User = Depends(require_permission("canViewBookings")),
    db: Session = Depends(get_db),
) -> dict:
    _validate_trip(payload.from_station, payload.to_station, payload.travel_date, payload.travel_class, payload.quota, payload.priority)
    if is_customer(user):
        customer = user
        status = "PENDING"
    else:
        if payload.customer_id is None:
            raise HTTPException(status_code=400, detail="customer_id is required for staff bookings")
        customer = db.get(User, payload.customer_id)
        if not customer or customer.user_type != "customer":
            raise HTTPException(status_code=400, detail="invalid customer_id")
        status = "DRAFT" if payload.save_as_draft else "PENDING"
    saved = _saved_passengers(db, customer.id, payload.master_passenger_ids)
    passenger_count = len(payload.passengers) + len(saved)
    if passenger_count > MAX_PASSENGERS:
        raise HTTPException(status_code=400, detail=f"a booking can carry at most {MAX_PASSENGERS} passengers")

    booking = Booking(
        booking_no=next_booking_no(db, today()),
        customer_id=customer.id,
        from_station=payload.from_station,
        to_station=payload.to_station,
        travel_date=payload.travel_date,
        travel_class=payload.travel_class,
        quota=payload.quota,
        berth_preference=payload.berth_preference,
        total_passengers=passenger_count,
        request_date=now(),
        status=status,
        agent_id=None if is_customer(user) else user.id,
        priority=payload.priority,
        remarks=payload.remarks,
    )
    db.add(booking)
    db.flush()
    for passenger in payload.passengers:
        db.add(Passenger(booking_id=booking.id, **passenger.model_dump()))
    for master in saved:
        db.add(
            Passenger(
                booking_id=booking.id,
                first_name=master.first_name,
                last_name=master.last_name,
                age=master.age,
                gender=master.gender,
                berth_preference=master.berth_preference,
            )
        )
    db.commit()
    db.refresh(booking)
    logger.info("booking {} created for customer {} ({})", booking.booking_no, customer.id, status)
    if status == "PENDING":
        notify_booking_status(customer.email, booking.booking_no, status)
    return ok(booking_out(booking), "booking created")


def _list_query(
    db: Session,
    user: User,
    status: Optional[str],
    customer_id: Optional[int],
    date_from: Optional[date],
    date_to: Optional[date],
):
    query = _scoped(db.query(Booking), user)
    if status:
        query = query.filter(Booking.status == status.upper())
    if customer_id is not None:
        query = query.filter(Booking.customer_id == customer_id)
    if date_from:
        query = query.filter(Booking.travel_date >= date_from)
    if date_to:
        query = query.filter(Booking.travel_date <= date_to)
    return query


@router.get("")
def list_bookings(
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(50, ge=1, le=200),
    cursor: Optional[int] = Query(None, ge=0),
    user: User = Depends(require_permission("canViewBookings")),
    db: Session = Depends(get_db),
) -> dict:
    query = _list_query(db, user, status, customer_id, date_from, date_to)
    total = query.count()
    rows, next_cursor = paginate(query.order_by(Booking.id.desc()), limit, cursor)
    return ok([booking_out(row) for row in rows], meta_=list_meta(limit, cursor, next_cursor, total))


@router.get("/search")
def search_bookings(
    q: Optional[str] = None,
    status: Optional[str] = None,
    from_station: Optional[str] = None,
    to_station: Optional[str] = None,
    travel_class: Optional[str] = None,
    customer_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(50, ge=1, le=200),
    cursor: Optional[int] = Query(None, ge=0),
    user: User = Depends(require_permission("canViewBookings")),
    db: Session = Depends(get_db),
) -> dict:
    query = _list_query(db, user, status, customer_id, date_from, date_to)
    if from_station:
        query = query.filter(Booking.from_station == from_station.upper())
    if to_station:
        query = query.filter(Booking.to_station == to_station.upper())
    if travel_class:
        query = query.filter(Booking.travel_class == travel_class.upper())
    if q:
        pattern = f"%{q.upper()}%"
        query = query.filter(
            or_(
                Booking.booking_no.like(pattern),
                Booking.from_station.like(pattern),
                Booking.to_station.like(pattern),
                func.upper(Booking.remarks).like(pattern),
            )
        )
    total = query.count()
    rows, next_cursor = paginate(query.order_by(Booking.travel_date, Booking.id), limit, cursor)
    return ok([booking_out(row) for row in rows], meta_=list_meta(limit, cursor, next_cursor, total))


@router.get("/{booking_id}")
def get_booking(
    booking_id: int,
    user: User = Depends(require_permission("canViewBookings")),
    db: Session = Depends(get_db),
) -> dict:
    booking = get_booking_for(db, booking_id, user)
    passengers = db.query(Passenger).filter(Passenger.booking_id == booking.id).order_by(Passenger.id).all()
    pnrs = db.query(Pnr).filter(Pnr.booking_id == booking.id).order_by(Pnr.id).all()
    bill = db.query(Bill).filter(Bill.booking_id == booking.id).first()
    names = station_names(db, booking.from_station, booking.to_station)
    data = booking_out(booking)
    data["passengers"] = [passenger_out(passenger) for passenger in passengers]
    data["from_station_name"] = names.get(booking.from_station)
    data["to_station_name"] = names.get(booking.to_station)
    data["pnrs"] = [pnr_out(db, pnr) for pnr in pnrs]
    data["bill"] = {"bill_id": bill.id, "bill_no": bill.bill_no, "status": bill.status} if bill else None
    return ok(data)


@router.patch("/{booking_id}")
def update_booking(
    booking_id: int,
    payload: BookingUpdate,
    user: User = Depends(require_permission("canViewBookings")),
    db: Session = Depends(get_db),
) -> dict:
    booking = get_booking_for(db, booking_id, user)
    allowed = ("DRAFT", "PENDING") if is_customer(user) else EDITABLE_STATUSES
    if booking.status not in allowed:
        raise HTTPException(status_code=400, detail=f"cannot modify a {booking.status} booking")
    changes = payload.model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(booking, key, value)
    _validate_trip(booking.from_station, booking.to_station, booking.travel_date, booking.travel_class, booking.quota, booking.priority)
    db.commit()
    db.refresh(booking)
    return ok(booking_out(booking), "booking updated")


@router.post("/{booking_id}/submit")
def submit_booking(
    booking_id: int,
    user: User = Depends(require_permission("canViewBookings")),
    db: Session = Depends(get_db),
) -> dict:
    booking = get_booking_for(db, booking_id, user)
    transition(booking, "PENDING")
    db.commit()
    db.refresh(booking)
    return ok(booking_out(booking), "booking submitted")


@router.post("/{booking_id}/assign")
def assign_booking(
    booking_id: int,
    payload: AssignRequest,
    user: User = Depends(require_permission("canApproveBookings")),
    db: Session = Depends(get_db),
) -> dict:
    booking = get_booking_for(db, booking_id, user)
    agent = db.get(User, payload.agent_id)
    if not agent or agent.user_type == "customer" or not agent.is_active:
        raise HTTPException(status_code=400, detail="agent must be an active employee")
    if booking.status == "PENDING":
        transition(booking, "APPROVED")
    elif booking.status != "APPROVED":
        raise HTTPException(status_code=400, detail=f"cannot assign a {booking.status} booking")
    booking.agent_id = agent.id
    db.commit()
    db.refresh(booking)
    logger.info("booking {} assigned to agent {}", booking.booking_no, agent.id)
    return ok(booking_out(booking), "booking assigned")


@router.post("/{booking_id}/cancel")
def cancel_booking(
    booking_id: int,
    payload: CancelRequest,
    user: User = Depends(require_permission("canViewBookings")),
    db: Session = Depends(get_db),
) -> dict:
    booking = get_booking_for(db, booking_id, user)
    if booking.status == "CONFIRMED" and not has_permission(user, "canApproveBookings"):
        raise HTTPException(status_code=400, detail="cannot cancel confirmed booking")
    transition(booking, "CANCELLED")
    booking.closed_by = user.id
    booking.closed_on = now()
    if payload.reason:
        booking.remarks = f"{booking.remarks}\n{payload.reason}" if booking.remarks else payload.reason
    customer = db.get(User, booking.customer_id)
    db.commit()
    db.refresh(booking)
    notify_booking_status(customer.email if customer else None, booking.booking_no, booking.status)
    return ok(booking_out(booking), "booking cancelled")


@router.post("/{booking_id}/complete")
def complete_booking(
    booking_id: int,
    user: User = Depends(require_permission("canApproveBookings", "canGenerateBills")),
    db: Session = Depends(get_db),
) -> dict:
    booking = get_booking_for(db, booking_id, user)
    transition(booking, "COMPLETED")
    booking.closed_by = user.id
    booking.closed_on = now()
    db.commit()
    db.refresh(booking)
    return ok(booking_out(booking), "booking completed")


@router.delete("/{booking_id}")
def delete_booking(
    booking_id: int,
    user: User = Depends(require_permission("canViewBookings")),
    db: Session = Depends(get_db),
) -> dict:
    booking = get_booking_for(db, booking_id, user)
    if not (is_admin(user) or booking.customer_id == user.id):
        raise HTTPException(status_code=403, detail="only administrators or the booking owner can delete")
    if booking.status not in DELETABLE_BOOKING_STATUSES:
        raise HTTPException(status_code=400, detail=f"cannot delete a {booking.status} booking")
    if db.query(Pnr).filter(Pnr.booking_id == booking.id).first():
        raise HTTPException(status_code=409, detail="related records exist: booking has PNRs")
    passengers = db.query(Passenger).filter(Passenger.booking_id == booking.id).all()
    for passenger in passengers:
        db.delete(passenger)
    # passengers must go first, the booking row is referenced by them
    db.flush()
    db.delete(booking)
    db.commit()
    logger.info("booking {} deleted with {} passengers", booking_id, len(passengers))
    return ok({"booking_id": booking_id, "passengers_deleted": len(passengers)}, "booking deleted")


@router.get("/{booking_id}/passengers", tags=["Passengers"])
def list_passengers(
    booking_id: int,
    user: User = Depends(require_permission("canViewBookings")),
    db: Session = Depends(get_db),
) -> dict:
    booking = get_booking_for(db, booking_id, user)
    passengers = db.query(Passenger).filter(Passenger.booking_id == booking.id).order_by(Passenger.id).all()
    return ok([passenger_out(passenger) for passenger in passengers])


def _ensure_passengers_editable(booking: Booking) -> None:
    if booking.status not in EDITABLE_STATUSES:
        raise HTTPException(status_code=400, detail=f"cannot change passengers of a {booking.status} booking")


@router.post("/{booking_id}/passengers", status_code=201, tags=["Passengers"])
def add_passenger(
    booking_id: int,
    payload: PassengerIn,
    user: User = Depends(require_permission("canViewBookings")),
    db: Session = Depends(get_db),
) -> dict:
    booking = get_booking_for(db, booking_id, user)
    _ensure_passengers_editable(booking)
    if _active_passenger_count(db, booking.id) >= MAX_PASSENGERS:
        raise HTTPException(status_code=400, detail=f"a booking can carry at most {MAX_PASSENGERS} passengers")
    passenger = Passenger(booking_id=booking.id, **payload.model_dump())
    db.add(passenger)
    db.flush()
    booking.total_passengers = _active_passenger_count(db, booking.id)
    db.commit()
    db.refresh(passenger)
    return ok(passenger_out(passenger), "passenger added")


def _get_passenger(db: Session, booking: Booking, passenger_id: int) -> Passenger:
    passenger = db.get(Passenger, passenger_id)
    if not passenger or passenger.booking_id != booking.id:
        raise HTTPException(status_code=404, detail="passenger not found")
    return passenger


@router.patch("/{booking_id}/passengers/{passenger_id}", tags=["Passengers"])
def update_passenger(
    booking_id: int,
    passenger_id: int,
    payload: PassengerUpdate,
    user: User = Depends(require_permission("canViewBookings")),
    db: Session = Depends(get_db),
) -> dict:
    booking = get_booking_for(db, booking_id, user)
    _ensure_passengers_editable(booking)
    passenger = _get_passenger(db, booking, passenger_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(passenger, key, value)
    db.flush()
    booking.total_passengers = _active_passenger_count(db, booking.id)
    db.commit()
    db.refresh(passenger)
    return ok(passenger_out(passenger), "passenger updated")


@router.delete("/{booking_id}/passengers/{passenger_id}", tags=["Passengers"])
def delete_passenger(
    booking_id: int,
    passenger_id: int,
    user: User = Depends(require_permission("canViewBookings")),
    db: Session = Depends(get_db),
) -> dict:
    booking = get_booking_for(db, booking_id, user)
    _ensure_passengers_editable(booking)
    passenger = _get_passenger(db, booking, passenger_id)
    db.delete(passenger)
    db.flush()
    booking.total_passengers = _active_passenger_count(db, booking.id)
    db.commit()
    return ok({"passenger_id": passenger_id}, "passenger deleted")


@router.get("/{booking_id}/pnrs", tags=["PNRs"])
def list_pnrs(
    booking_id: int,
    user: User = Depends(require_permission("canViewBookings")),
    db: Session = Depends(get_db),
) -> dict:
    booking = get_booking_for(db, booking_id, user)
    pnrs = db.query(Pnr).filter(Pnr.booking_id == booking.id).order_by(Pnr.id).all()
    return ok([pnr_out(db, pnr) for pnr in pnrs])


@router.post("/{booking_id}/pnrs", status_code=201, tags=["PNRs"])
def create_pnr(
    booking_id: int,
    payload: PnrCreate,
    user: User = Depends(require_permission("canGenerateBills", "canModifyFinancialValues")),
    db: Session = Depends(get_db),
) -> dict:
    booking = get_booking_for(db, booking_id, user)
    if booking.status not in ("APPROVED", "CONFIRMED"):
        raise HTTPException(status_code=400, detail=f"cannot issue a PNR for a {booking.status} booking")
    if db.query(Pnr).filter(Pnr.pnr_number == payload.pnr_number).first():
        raise HTTPException(status_code=400, detail="PNR number already exists")
    train = find_train(db, payload.train_no)
    if train and not train.is_active:
        raise HTTPException(status_code=400, detail=f"train {train.train_no} is not running")
    total = round_money(to_decimal(payload.booking_amount) + to_decimal(payload.service_amount))
    pnr = Pnr(
        booking_id=booking.id,
        customer_id=booking.customer_id,
        pnr_number=payload.pnr_number,
        train_no=payload.train_no,
        travel_date=payload.travel_date or booking.travel_date,
        travel_class=booking.travel_class,
        quota=booking.quota,
        passengers=payload.passengers or booking.total_passengers or 1,
        status=payload.status,
        booking_amount=round_money(payload.booking_amount),
        service_amount=round_money(payload.service_amount),
        total_amount=total,
    )
    db.add(pnr)
    db.flush()
    if total > 0:
        post_customer_entry(
            db,
            booking.customer_id,
            "DEBIT",
            total,
            "PNR",
            pnr.id,
            narration=f"PNR {pnr.pnr_number} for booking {booking.booking_no}",
        )
    db.commit()
    db.refresh(pnr)
    return ok(pnr_out(db, pnr), "PNR created")
