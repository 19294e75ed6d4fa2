from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import AfterValidator, BaseModel, Field
from sqlalchemy.orm import Session

from yatrasathi.api.bookings import GENDERS
from yatrasathi.db import get_db
from yatrasathi.models import MasterPassenger, User
from yatrasathi.rbac import is_customer
from yatrasathi.responses import ok
from yatrasathi.schemas import PatchModel
from yatrasathi.security import get_current_user

router = APIRouter(prefix="/api/customers/me/passengers", tags=["Saved Passengers"])


def require_customer(user: User = Depends(get_current_user)) -> User:
    if not is_customer(user):
        raise HTTPException(status_code=403, detail="saved passengers are available to customers only")
    return user


def _gender(value: str) -> str:
    value = value.upper()[:1]
    if value not in GENDERS:
        raise ValueError("gender must be M, F or O")
    return value


def _aadhaar(value: str) -> str:
    value = value.replace(" ", "")
    if len(value) != 12 or not value.isdigit():
        raise ValueError("aadhaar must be 12 digits")
    return value


Gender = Annotated[str, AfterValidator(_gender)]
Aadhaar = Annotated[str, AfterValidator(_aadhaar)]


def master_passenger_out(passenger: MasterPassenger) -> dict:
    return {
        "master_passenger_id": passenger.id,
        "first_name": passenger.first_name,
        "last_name": passenger.last_name,
        "age": passenger.age,
        "gender": passenger.gender,
        "berth_preference": passenger.berth_preference,
        "id_type": passenger.id_type,
        "id_number": passenger.id_number,
        "aadhaar": passenger.aadhaar,
        "is_active": passenger.is_active,
    }


class MasterPassengerIn(BaseModel):
    model_config = {"json_schema_extra": {"example": {"first_name": "Asha", "last_name": "Verma", "age": 34, "gender": "F", "berth_preference": "LOWER", "aadhaar": "123412341234"}}}
    first_name: str = Field(min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    age: int = Field(ge=0, le=125)
    gender: Gender
    berth_preference: Optional[str] = None
    id_type: Optional[str] = Field(None, max_length=20)
    id_number: Optional[str] = Field(None, max_length=30)
    aadhaar: Optional[Aadhaar] = None


class MasterPassengerUpdate(PatchModel):
    not_null = ("first_name", "age", "gender")

    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    age: Optional[int] = Field(None, ge=0, le=125)
    gender: Optional[Gender] = None
    berth_preference: Optional[str] = None
    id_type: Optional[str] = Field(None, max_length=20)
    id_number: Optional[str] = Field(None, max_length=30)
    aadhaar: Optional[Aadhaar] = None


def _get_own(db: Session, user: User, passenger_id: int) -> MasterPassenger:
    passenger = db.get(MasterPassenger, passenger_id)
    if not passenger or passenger.customer_id != user.id:
        raise HTTPException(status_code=404, detail="saved passenger not found")
    return passenger


@router.get("")
def list_saved_passengers(user: User = Depends(require_customer), db: Session = Depends(get_db)) -> dict:
    rows = (
        db.query(MasterPassenger)
        .filter(MasterPassenger.customer_id == user.id, MasterPassenger.is_active.is_(True))
        .order_by(MasterPassenger.id.desc())
        .all()
    )
    return ok([master_passenger_out(row) for row in rows])


@router.post("", status_code=201)
def create_saved_passenger(
    payload: MasterPassengerIn,
    user: User = Depends(require_customer),
    db: Session = Depends(get_db),
) -> dict:
    passenger = MasterPassenger(customer_id=user.id, **payload.model_dump())
    db.add(passenger)
    db.commit()
    db.refresh(passenger)
    return ok(master_passenger_out(passenger), "passenger saved")


@router.get("/{passenger_id}")
def get_saved_passenger(passenger_id: int, user: User = Depends(require_customer), db: Session = Depends(get_db)) -> dict:
    return ok(master_passenger_out(_get_own(db, user, passenger_id)))


@router.patch("/{passenger_id}")
def update_saved_passenger(
    passenger_id: int,
    payload: MasterPassengerUpdate,
    user: User = Depends(require_customer),
    db: Session = Depends(get_db),
) -> dict:
    passenger = _get_own(db, user, passenger_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(passenger, key, value)
    db.commit()
    db.refresh(passenger)
    return ok(master_passenger_out(passenger), "passenger updated")


@router.delete("/{passenger_id}")
def delete_saved_passenger(passenger_id: int, user: User = Depends(require_customer), db: Session = Depends(get_db)) -> dict:
    passenger = _get_own(db, user, passenger_id)
    passenger.is_active = False
    db.commit()
    return ok({"master_passenger_id": passenger_id, "is_active": False}, "passenger removed")
