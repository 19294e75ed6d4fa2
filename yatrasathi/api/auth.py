from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from yatrasathi.db import get_db
from yatrasathi.logger import logger
from yatrasathi.models import User
from yatrasathi.rbac import EMPLOYEE_ROLES, is_admin, permissions_for, require_admin, require_permission
from yatrasathi.responses import iso, list_meta, now, ok, paginate
from yatrasathi.schemas import Email, PatchModel
from yatrasathi.security import create_access_token, get_current_user, hash_password, verify_password

router = APIRouter(prefix="/api/auth", tags=["Auth"])
users_router = APIRouter(prefix="/api/users", tags=["Users"])


def user_out(user: User) -> dict:
    return {
        "user_id": user.id,
        "email": user.email,
        "name": user.name,
        "phone": user.phone,
        "user_type": user.user_type,
        "role": user.role,
        "department": user.department,
        "is_active": user.is_active,
        "last_login": iso(user.last_login),
        "entered_on": iso(user.entered_on),
    }


class RegisterRequest(BaseModel):
    model_config = {"json_schema_extra": {"example": {"name": "Asha Verma", "email": "asha@example.com", "password": "secret123", "phone": "9876543210"}}}
    name: str = Field(min_length=1, max_length=100)
    email: Email
    password: str = Field(min_length=6)
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    model_config = {"json_schema_extra": {"example": {"email": "asha@example.com", "password": "secret123"}}}
    email: Email
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)


def _session_payload(user: User) -> dict:
    return {
        "token": create_access_token(user),
        "token_type": "bearer",
        "user": user_out(user),
        "permissions": permissions_for(user),
    }


@router.post("/register", status_code=201)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> dict:
    existing = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=400, detail="user already exists")
    user = User(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password),
        phone=payload.phone,
        user_type="customer",
        role="CUS",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("customer {} registered", user.email)
    return ok(_session_payload(user), "registration successful")


@router.post("/login")
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> dict:
    user = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
    if not user or not verify_password(user.password_hash, payload.password):
        logger.warning("failed login for {}", payload.email)
        raise HTTPException(status_code=401, detail="invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="account is deactivated")
    db.info["user_id"] = user.id
    user.last_login = now()
    db.commit()
    db.refresh(user)
    return ok(_session_payload(user), "login successful")


@router.get("/me")
def me(user: User = Depends(get_current_user)) -> dict:
    return ok({"user": user_out(user), "permissions": permissions_for(user)})


@router.post("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    if not verify_password(user.password_hash, payload.current_password):
        raise HTTPException(status_code=400, detail="current password is incorrect")
    user.password_hash = hash_password(payload.new_password)
    db.commit()
    return ok(None, "password updated")


class EmployeeCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {"name": "Ravi Kumar", "email": "ravi@yatrasathi.local", "password": "agent123", "role": "AGT", "department": "Operations"}}}
    name: str = Field(min_length=1, max_length=100)
    email: Email
    password: str = Field(min_length=6)
    role: str
    phone: Optional[str] = None
    department: Optional[str] = None


class UserUpdate(PatchModel):
    not_null = ("name", "role", "is_active")

    name: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None


@users_router.post("", status_code=201)
def create_employee(
    payload: EmployeeCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict:
    if payload.role not in EMPLOYEE_ROLES:
        raise HTTPException(status_code=400, detail=f"role must be one of {', '.join(EMPLOYEE_ROLES)}")
    if db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none():
        raise HTTPException(status_code=400, detail="user already exists")
    user = User(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password),
        phone=payload.phone,
        department=payload.department,
        user_type="admin" if payload.role == "ADM" else "employee",
        role=payload.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return ok(user_out(user), "employee created")


@users_router.get("")
def list_users(
    user_type: Optional[str] = None,
    role: Optional[str] = None,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=200),
    cursor: Optional[int] = Query(None, ge=0),
    _: User = Depends(require_permission("canViewAdminPanel")),
    db: Session = Depends(get_db),
) -> dict:
    query = db.query(User)
    if user_type:
        query = query.filter(User.user_type == user_type)
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active == is_active)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern), User.phone.like(pattern)))
    rows, next_cursor = paginate(query.order_by(User.id), limit, cursor)
    return ok([user_out(row) for row in rows], meta_=list_meta(limit, cursor, next_cursor))


@users_router.get("/me/permissions")
def my_permissions(user: User = Depends(get_current_user)) -> dict:
    return ok({"role": user.role, "user_type": user.user_type, "permissions": permissions_for(user)})


def _load_user_for(db: Session, user_id: int, actor: User) -> User:
    if actor.id != user_id and not is_admin(actor):
        raise HTTPException(status_code=403, detail="not authorized for this user")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="user not found")
    return user


@users_router.get("/{user_id}")
def get_user(user_id: int, actor: User = Depends(get_current_user), db: Session = Depends(get_db)) -> dict:
    return ok(user_out(_load_user_for(db, user_id, actor)))


@users_router.patch("/{user_id}")
def update_user(
    user_id: int,
    payload: UserUpdate,
    actor: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    user = _load_user_for(db, user_id, actor)
    changes = payload.model_dump(exclude_unset=True)
    if not is_admin(actor) and set(changes) - {"name", "phone"}:
        raise HTTPException(status_code=403, detail="only administrators can change role, department or status")
    if "role" in changes:
        if user.user_type == "customer" or changes["role"] not in EMPLOYEE_ROLES:
            raise HTTPException(status_code=400, detail="invalid role for this user")
        user.user_type = "admin" if changes["role"] == "ADM" else "employee"
    for key, value in changes.items():
        setattr(user, key, value)
    db.commit()
    db.refresh(user)
    return ok(user_out(user), "user updated")


@users_router.delete("/{user_id}")
def deactivate_user(user_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)) -> dict:
    if admin.id == user_id:
        raise HTTPException(status_code=400, detail="cannot deactivate your own account")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="user not found")
    user.is_active = False
    user.closed_by = admin.id
    user.closed_on = now()
    db.commit()
    return ok(user_out(user), "user deactivated")
