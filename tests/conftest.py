from datetime import timedelta
from typing import Callable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from yatrasathi.db import Base
from yatrasathi.main import app, get_db
from yatrasathi.models import User
from yatrasathi.responses import today
from yatrasathi.security import create_access_token, hash_password


def _make_session_factory() -> sessionmaker:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enforce_foreign_keys(dbapi_connection, _record) -> None:
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)
    return TestingSessionLocal


@pytest.fixture
def session_factory() -> sessionmaker:
    return _make_session_factory()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory) -> Callable[..., dict]:
    def factory(email: str, role: str = "CUS", name: str = "Test User", password: str = "secret123", **extra) -> dict:
        user_type = "customer" if role == "CUS" else "admin" if role == "ADM" else "employee"
        db = session_factory()
        try:
            user = User(
                email=email,
                name=name,
                password_hash=hash_password(password),
                role=role,
                user_type=user_type,
                **extra,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            token = create_access_token(user)
            return {
                "id": user.id,
                "email": user.email,
                "role": user.role,
                "token": token,
                "headers": {"Authorization": f"Bearer {token}"},
            }
        finally:
            db.close()

    return factory


@pytest.fixture
def admin(make_user) -> dict:
    return make_user("admin@yatrasathi.local", role="ADM", name="Admin")


@pytest.fixture
def accountant(make_user) -> dict:
    return make_user("accounts@yatrasathi.local", role="ACC", name="Meera Accounts")


@pytest.fixture
def agent(make_user) -> dict:
    return make_user("agent@yatrasathi.local", role="AGT", name="Ravi Agent")


@pytest.fixture
def customer(make_user) -> dict:
    return make_user("asha@example.com", role="CUS", name="Asha Verma", phone="9876543210")


@pytest.fixture
def other_customer(make_user) -> dict:
    return make_user("vikram@example.com", role="CUS", name="Vikram Rao")


def _future(days: int = 30) -> str:
    return (today() + timedelta(days=days)).isoformat()


def _booking_payload(customer_id=None, days: int = 30, **overrides) -> dict:
    payload = {
        "from_station": "NDLS",
        "to_station": "BCT",
        "travel_date": _future(days),
        "travel_class": "3A",
        "quota": "TATKAL",
        "passengers": [
            {"first_name": "Asha", "last_name": "Verma", "age": 34, "gender": "F"},
            {"first_name": "Rohan", "last_name": "Verma", "age": 36, "gender": "M"},
        ],
    }
    if customer_id is not None:
        payload["customer_id"] = customer_id
    payload.update(overrides)
    return payload


@pytest.fixture
def issue_pnr(client, admin) -> Callable[..., dict]:
    """Book, bill and ticket a journey for a customer; returns the PNR payload."""

    def factory(customer_id: int, pnr_number: str, booking_amount: float, service_amount: float = 0, days: int = 30) -> dict:
        booking = client.post("/api/bookings", json=_booking_payload(customer_id, days=days), headers=admin["headers"])
        assert booking.status_code == 201
        booking_id = booking.json()["data"]["booking_id"]
        bill = client.post(
            "/api/billing",
            json={"booking_id": booking_id, "railway_fare": booking_amount + service_amount},
            headers=admin["headers"],
        )
        assert bill.status_code == 201
        pnr = client.post(
            f"/api/bookings/{booking_id}/pnrs",
            json={"pnr_number": pnr_number, "booking_amount": booking_amount, "service_amount": service_amount},
            headers=admin["headers"],
        )
        assert pnr.status_code == 201
        return pnr.json()["data"]

    return factory


@pytest.fixture
def booking_payload() -> Callable[..., dict]:
    return _booking_payload
