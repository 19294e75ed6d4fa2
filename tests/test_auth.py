from datetime import timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from yatrasathi.main import app, get_db
from yatrasathi.models import User
from yatrasathi.security import create_access_token


def test_register_login_and_me(client) -> None:
    register_resp = client.post(
        "/api/auth/register",
        json={"name": "Asha Verma", "email": "Asha@Example.com", "password": "secret123", "phone": "9876543210"},
    )
    assert register_resp.status_code == 201
    body = register_resp.json()
    assert body["success"] is True
    assert body["data"]["user"]["email"] == "asha@example.com"
    assert body["data"]["user"]["role"] == "CUS"
    assert body["data"]["permissions"]["canViewBookings"] is True
    assert body["data"]["permissions"]["canViewAdminPanel"] is False
    assert body["meta"]["request_id"].startswith("req_")

    login_resp = client.post("/api/auth/login", json={"email": "asha@example.com", "password": "secret123"})
    assert login_resp.status_code == 200
    token = login_resp.json()["data"]["token"]

    me_resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me_resp.status_code == 200
    me = me_resp.json()["data"]["user"]
    assert me["name"] == "Asha Verma"
    assert me["last_login"] is not None


def test_register_duplicate_email_rejected(client) -> None:
    payload = {"name": "Asha", "email": "asha@example.com", "password": "secret123"}
    assert client.post("/api/auth/register", json=payload).status_code == 201

    dup_resp = client.post("/api/auth/register", json=payload)
    assert dup_resp.status_code == 400
    assert dup_resp.json() == {"success": False, "error": "bad_request", "message": "user already exists"}


def test_register_validation_error_envelope(client) -> None:
    resp = client.post("/api/auth/register", json={"name": "Asha", "email": "not-an-email", "password": "123"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "validation_error"
    fields = {detail["field"] for detail in body["details"]}
    assert {"email", "password"} <= fields


def test_login_with_wrong_password(client, customer) -> None:
    resp = client.post("/api/auth/login", json={"email": customer["email"], "password": "wrong-password"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "unauthorized"


def test_protected_route_requires_token(client) -> None:
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json()["message"] == "not authorized, no token"


def test_tampered_and_expired_tokens_rejected(client, session_factory, customer) -> None:
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401

    db = session_factory()
    try:
        user = db.get(User, customer["id"])
        expired = create_access_token(user, expires_in=timedelta(seconds=-10))
    finally:
        db.close()
    resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "not authorized, token failed"


def test_change_password(client, customer) -> None:
    bad_resp = client.post(
        "/api/auth/change-password",
        json={"current_password": "nope", "new_password": "newsecret"},
        headers=customer["headers"],
    )
    assert bad_resp.status_code == 400

    ok_resp = client.post(
        "/api/auth/change-password",
        json={"current_password": "secret123", "new_password": "newsecret"},
        headers=customer["headers"],
    )
    assert ok_resp.status_code == 200
    login_resp = client.post("/api/auth/login", json={"email": customer["email"], "password": "newsecret"})
    assert login_resp.status_code == 200


def test_admin_creates_employee_and_lists_users(client, admin, customer) -> None:
    create_resp = client.post(
        "/api/users",
        json={"name": "Ravi Kumar", "email": "ravi@yatrasathi.local", "password": "agent123", "role": "AGT"},
        headers=admin["headers"],
    )
    assert create_resp.status_code == 201
    employee = create_resp.json()["data"]
    assert employee["user_type"] == "employee"
    assert employee["role"] == "AGT"

    bad_role = client.post(
        "/api/users",
        json={"name": "X", "email": "x@yatrasathi.local", "password": "agent123", "role": "CUS"},
        headers=admin["headers"],
    )
    assert bad_role.status_code == 400

    forbidden = client.post(
        "/api/users",
        json={"name": "Y", "email": "y@yatrasathi.local", "password": "agent123", "role": "AGT"},
        headers=customer["headers"],
    )
    assert forbidden.status_code == 403

    list_resp = client.get("/api/users", params={"user_type": "employee"}, headers=admin["headers"])
    assert list_resp.status_code == 200
    assert [row["email"] for row in list_resp.json()["data"]] == ["ravi@yatrasathi.local"]


def test_user_self_update_is_limited(client, customer, admin) -> None:
    ok_resp = client.patch(f"/api/users/{customer['id']}", json={"phone": "9000000000"}, headers=customer["headers"])
    assert ok_resp.status_code == 200
    assert ok_resp.json()["data"]["phone"] == "9000000000"

    role_resp = client.patch(f"/api/users/{customer['id']}", json={"role": "ADM"}, headers=customer["headers"])
    assert role_resp.status_code == 403

    other_resp = client.get(f"/api/users/{admin['id']}", headers=customer["headers"])
    assert other_resp.status_code == 403


def test_deactivated_user_loses_access(client, admin, customer) -> None:
    self_resp = client.delete(f"/api/users/{admin['id']}", headers=admin["headers"])
    assert self_resp.status_code == 400

    resp = client.delete(f"/api/users/{customer['id']}", headers=admin["headers"])
    assert resp.status_code == 200
    assert resp.json()["data"]["is_active"] is False

    me_resp = client.get("/api/auth/me", headers=customer["headers"])
    assert me_resp.status_code == 401


def test_my_permissions(client, accountant) -> None:
    resp = client.get("/api/users/me/permissions", headers=accountant["headers"])
    assert resp.status_code == 200
    permissions = resp.json()["data"]["permissions"]
    assert permissions["canProcessPayments"] is True
    assert permissions["canApproveBookings"] is False


def test_health(client) -> None:
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "healthy"
    assert data["db_response_ms"] >= 0


def test_health_reports_unreachable_database(client, tmp_path) -> None:
    unreachable = sessionmaker(bind=create_engine(f"sqlite:///{tmp_path / 'missing' / 'app.db'}"))

    def override_get_db():
        db = unreachable()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    resp = client.get("/api/health")
    assert resp.status_code == 503
    assert resp.json()["success"] is False
    assert resp.json()["message"] == "database unreachable"


def test_unknown_route_uses_error_envelope(client) -> None:
    resp = client.get("/api/nowhere")
    assert resp.status_code == 404
    assert resp.json()["success"] is False
    assert resp.json()["error"] == "not_found"
