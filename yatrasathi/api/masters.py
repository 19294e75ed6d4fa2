import re
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import or_
from sqlalchemy.orm import Session

from yatrasathi.db import get_db
from yatrasathi.logger import logger
from yatrasathi.models import Station, Train, User
from yatrasathi.rbac import require_admin
from yatrasathi.responses import ok
from yatrasathi.schemas import PatchModel
from yatrasathi.security import get_current_user

stations_router = APIRouter(prefix="/api/stations", tags=["Stations"])
trains_router = APIRouter(prefix="/api/trains", tags=["Trains"])

RUNNING_DAYS = re.compile(r"^[01]{7}$")


def _code(value: Optional[str]) -> Optional[str]:
    return value.strip().upper() if value else value


def station_out(station: Station) -> dict:
    return {
        "station_id": station.id,
        "code": station.code,
        "name": station.name,
        "city": station.city,
        "state": station.state,
        "is_active": station.is_active,
    }


def station_names(db: Session, *codes: Optional[str]) -> dict[str, str]:
    wanted = [code for code in codes if code]
    if not wanted:
        return {}
    return dict(db.query(Station.code, Station.name).filter(Station.code.in_(wanted)).all())


def find_train(db: Session, train_no: Optional[str]) -> Optional[Train]:
    if not train_no:
        return None
    return db.query(Train).filter(Train.train_no == train_no.strip()).first()


def train_out(db: Session, train: Train) -> dict:
    names = station_names(db, train.from_station, train.to_station)
    return {
        "train_id": train.id,
        "train_no": train.train_no,
        "name": train.name,
        "from_station": train.from_station,
        "from_station_name": names.get(train.from_station),
        "to_station": train.to_station,
        "to_station_name": names.get(train.to_station),
        "days": train.days,
        "seats": train.seats or {},
        "fares": train.fares or {},
        "is_active": train.is_active,
    }


class StationIn(BaseModel):
    model_config = {"json_schema_extra": {"example": {"code": "NDLS", "name": "New Delhi", "city": "Delhi", "state": "Delhi"}}}
    code: str = Field(min_length=2, max_length=10)
    name: str = Field(min_length=1, max_length=100)
    city: Optional[str] = Field(None, max_length=50)
    state: Optional[str] = Field(None, max_length=50)

    @field_validator("code")
    @classmethod
    def _upper(cls, value: str) -> str:
        return _code(value)


class StationUpdate(PatchModel):
    not_null = ("name", "is_active")

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    city: Optional[str] = Field(None, max_length=50)
    state: Optional[str] = Field(None, max_length=50)
    is_active: Optional[bool] = None


class TrainIn(BaseModel):
    model_config = {"json_schema_extra": {"example": {"train_no": "12952", "name": "Mumbai Rajdhani", "from_station": "NDLS", "to_station": "BCT", "days": "1111111", "seats": {"3A": 320}, "fares": {"3A": 2450}}}}
    train_no: str = Field(min_length=3, max_length=10)
    name: str = Field(min_length=1, max_length=100)
    from_station: str
    to_station: str
    days: str = "1111111"
    seats: dict[str, int] = Field(default_factory=dict)
    fares: dict[str, Decimal] = Field(default_factory=dict)

    @field_validator("train_no", "from_station", "to_station")
    @classmethod
    def _upper(cls, value: str) -> str:
        return _code(value)

    @field_validator("days")
    @classmethod
    def _days(cls, value: str) -> str:
        if not RUNNING_DAYS.match(value):
            raise ValueError("days must be seven 0/1 flags, Monday first")
        return value


class TrainUpdate(PatchModel):
    not_null = ("name", "from_station", "to_station", "days", "is_active")

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    from_station: Optional[str] = None
    to_station: Optional[str] = None
    days: Optional[str] = None
    seats: Optional[dict[str, int]] = None
    fares: Optional[dict[str, Decimal]] = None
    is_active: Optional[bool] = None

    @field_validator("from_station", "to_station")
    @classmethod
    def _upper(cls, value: Optional[str]) -> Optional[str]:
        return _code(value)

    @field_validator("days")
    @classmethod
    def _days(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not RUNNING_DAYS.match(value):
            raise ValueError("days must be seven 0/1 flags, Monday first")
        return value


def _fares_json(fares: Optional[dict]) -> Optional[dict]:
    return {travel_class: float(fare) for travel_class, fare in fares.items()} if fares is not None else None


def _get_station(db: Session, station_id: int) -> Station:
    station = db.get(Station, station_id)
    if not station:
        raise HTTPException(status_code=404, detail="station not found")
    return station


def _get_train(db: Session, train_id: int) -> Train:
    train = db.get(Train, train_id)
    if not train:
        raise HTTPException(status_code=404, detail="train not found")
    return train


def _check_route(db: Session, from_station: str, to_station: str) -> None:
    if from_station == to_station:
        raise HTTPException(status_code=400, detail="from and to stations must differ")
    known = station_names(db, from_station, to_station)
    missing = [code for code in (from_station, to_station) if code not in known]
    if missing:
        raise HTTPException(status_code=400, detail=f"unknown station {', '.join(missing)}")


@stations_router.get("")
def list_stations(
    q: Optional[str] = None,
    active: Optional[bool] = True,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    query = db.query(Station)
    if active is not None:
        query = query.filter(Station.is_active.is_(active))
    if q:
        pattern = f"%{q.strip()}%"
        query = query.filter(or_(Station.code.ilike(pattern), Station.name.ilike(pattern), Station.city.ilike(pattern)))
    return ok([station_out(station) for station in query.order_by(Station.code).all()])


@stations_router.get("/{station_id}")
def get_station(station_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)) -> dict:
    return ok(station_out(_get_station(db, station_id)))


@stations_router.post("", status_code=201)
def create_station(payload: StationIn, admin: User = Depends(require_admin), db: Session = Depends(get_db)) -> dict:
    if db.query(Station).filter(Station.code == payload.code).first():
        raise HTTPException(status_code=400, detail=f"station {payload.code} already exists")
    station = Station(**payload.model_dump())
    db.add(station)
    db.commit()
    db.refresh(station)
    logger.info("station {} added by admin {}", station.code, admin.id)
    return ok(station_out(station), "station created")


@stations_router.patch("/{station_id}")
def update_station(
    station_id: int,
    payload: StationUpdate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict:
    station = _get_station(db, station_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(station, key, value)
    db.commit()
    db.refresh(station)
    return ok(station_out(station), "station updated")


@stations_router.delete("/{station_id}")
def delete_station(station_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)) -> dict:
    station = _get_station(db, station_id)
    # trains still routed through the station make this fail with a 409
    db.delete(station)
    db.commit()
    logger.info("station {} deleted by admin {}", station_id, admin.id)
    return ok({"station_id": station_id}, "station deleted")


@trains_router.get("")
def list_trains(
    q: Optional[str] = None,
    from_station: Optional[str] = None,
    to_station: Optional[str] = None,
    active: Optional[bool] = True,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    query = db.query(Train)
    if active is not None:
        query = query.filter(Train.is_active.is_(active))
    if from_station:
        query = query.filter(Train.from_station == _code(from_station))
    if to_station:
        query = query.filter(Train.to_station == _code(to_station))
    if q:
        pattern = f"%{q.strip()}%"
        query = query.filter(or_(Train.train_no.ilike(pattern), Train.name.ilike(pattern)))
    return ok([train_out(db, train) for train in query.order_by(Train.train_no).all()])


@trains_router.get("/{train_id}")
def get_train(train_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)) -> dict:
    return ok(train_out(db, _get_train(db, train_id)))


@trains_router.post("", status_code=201)
def create_train(payload: TrainIn, admin: User = Depends(require_admin), db: Session = Depends(get_db)) -> dict:
    if find_train(db, payload.train_no):
        raise HTTPException(status_code=400, detail=f"train {payload.train_no} already exists")
    _check_route(db, payload.from_station, payload.to_station)
    data = payload.model_dump()
    data["fares"] = _fares_json(payload.fares)
    train = Train(**data)
    db.add(train)
    db.commit()
    db.refresh(train)
    logger.info("train {} added by admin {}", train.train_no, admin.id)
    return ok(train_out(db, train), "train created")


@trains_router.patch("/{train_id}")
def update_train(
    train_id: int,
    payload: TrainUpdate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict:
    train = _get_train(db, train_id)
    changes = payload.model_dump(exclude_unset=True)
    if "fares" in changes:
        changes["fares"] = _fares_json(payload.fares)
    for key, value in changes.items():
        setattr(train, key, value)
    if "from_station" in changes or "to_station" in changes:
        _check_route(db, train.from_station, train.to_station)
    db.commit()
    db.refresh(train)
    return ok(train_out(db, train), "train updated")


@trains_router.delete("/{train_id}")
def delete_train(train_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)) -> dict:
    train = _get_train(db, train_id)
    db.delete(train)
    db.commit()
    logger.info("train {} deleted by admin {}", train_id, admin.id)
    return ok({"train_id": train_id}, "train deleted")
