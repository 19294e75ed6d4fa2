from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import or_
from sqlalchemy.orm import Session

from yatrasathi.db import get_db
from yatrasathi.models import TravelPlan, User
from yatrasathi.rbac import has_permission, is_admin, require_permission
from yatrasathi.responses import iso, list_meta, money, ok, paginate
from yatrasathi.schemas import Email, PatchModel
from yatrasathi.security import get_current_user

router = APIRouter(prefix="/api/travel-plans", tags=["Travel Plans"])

can_plan = require_permission("canViewTravelPlans")


class TravelPlanIn(BaseModel):
    model_config = {"json_schema_extra": {"example": {"title": "Goa weekend", "description": "Beach trip with family", "start_date": "2026-12-20", "end_date": "2026-12-23", "destination": "Goa", "budget": 25000, "activities": ["Baga beach", "Fort Aguada"]}}}
    title: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1)
    start_date: date
    end_date: date
    destination: str = Field(min_length=1, max_length=100)
    budget: Decimal = Field(default=Decimal("0"), ge=0)
    activities: list[str] = []
    is_public: bool = False

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class TravelPlanUpdate(PatchModel):
    not_null = ("title", "description", "start_date", "end_date", "destination", "budget", "is_public")

    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    destination: Optional[str] = Field(default=None, max_length=100)
    budget: Optional[Decimal] = Field(default=None, ge=0)
    activities: Optional[list[str]] = None
    is_public: Optional[bool] = None


class ShareRequest(BaseModel):
    emails: list[Email] = Field(min_length=1)


def plan_out(plan: TravelPlan) -> dict:
    return {
        "plan_id": plan.id,
        "owner_id": plan.owner_id,
        "title": plan.title,
        "description": plan.description,
        "start_date": iso(plan.start_date),
        "end_date": iso(plan.end_date),
        "destination": plan.destination,
        "budget": money(plan.budget),
        "activities": plan.activities or [],
        "is_public": plan.is_public,
        "shared_with": plan.shared_with or [],
        "entered_on": iso(plan.entered_on),
    }


def _visible(plan: TravelPlan, user: User) -> bool:
    return (
        plan.owner_id == user.id
        or plan.is_public
        or user.email in (plan.shared_with or [])
        or is_admin(user)
    )


def _get_plan(db: Session, plan_id: int, user: User, owner_only: bool = False) -> TravelPlan:
    plan = db.get(TravelPlan, plan_id)
    if not plan or not _visible(plan, user):
        raise HTTPException(status_code=404, detail="travel plan not found")
    if owner_only and plan.owner_id != user.id and not is_admin(user):
        raise HTTPException(status_code=403, detail="only the owner can change this plan")
    return plan


@router.post("", status_code=201)
def create_plan(payload: TravelPlanIn, user: User = Depends(can_plan), db: Session = Depends(get_db)) -> dict:
    plan = TravelPlan(owner_id=user.id, shared_with=[], **payload.model_dump())
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return ok(plan_out(plan), "travel plan created")


@router.get("")
def list_plans(
    scope: str = Query("mine", pattern="^(mine|public|shared|all)$"),
    limit: int = Query(50, ge=1, le=200),
    cursor: Optional[int] = Query(None, ge=0),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    if scope != "public" and not has_permission(user, "canViewTravelPlans"):
        raise HTTPException(status_code=403, detail="not authorized for this action")
    query = db.query(TravelPlan).filter(TravelPlan.closed_on.is_(None))
    if scope == "shared":
        # JSON list membership is checked here so sqlite and postgres behave alike
        plans = query.order_by(TravelPlan.start_date, TravelPlan.id).all()
        rows = [plan for plan in plans if user.email in (plan.shared_with or [])]
        return ok([plan_out(plan) for plan in rows], meta_=list_meta(limit, cursor, None, len(rows)))
    if scope == "mine":
        query = query.filter(TravelPlan.owner_id == user.id)
    elif scope == "public":
        query = query.filter(TravelPlan.is_public.is_(True))
    else:
        query = query.filter(or_(TravelPlan.owner_id == user.id, TravelPlan.is_public.is_(True)))
    rows, next_cursor = paginate(query.order_by(TravelPlan.start_date, TravelPlan.id), limit, cursor)
    return ok([plan_out(plan) for plan in rows], meta_=list_meta(limit, cursor, next_cursor))


@router.get("/{plan_id}")
def get_plan(plan_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> dict:
    return ok(plan_out(_get_plan(db, plan_id, user)))


@router.patch("/{plan_id}")
def update_plan(
    plan_id: int,
    payload: TravelPlanUpdate,
    user: User = Depends(can_plan),
    db: Session = Depends(get_db),
) -> dict:
    plan = _get_plan(db, plan_id, user, owner_only=True)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(plan, key, value)
    if plan.end_date < plan.start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    db.commit()
    db.refresh(plan)
    return ok(plan_out(plan), "travel plan updated")


@router.post("/{plan_id}/share")
def share_plan(
    plan_id: int,
    payload: ShareRequest,
    user: User = Depends(can_plan),
    db: Session = Depends(get_db),
) -> dict:
    plan = _get_plan(db, plan_id, user, owner_only=True)
    shared = list(plan.shared_with or [])
    for email in payload.emails:
        if email != user.email and email not in shared:
            shared.append(email)
    plan.shared_with = shared
    db.commit()
    db.refresh(plan)
    return ok(plan_out(plan), "travel plan shared")


@router.delete("/{plan_id}")
def delete_plan(plan_id: int, user: User = Depends(can_plan), db: Session = Depends(get_db)) -> dict:
    plan = _get_plan(db, plan_id, user, owner_only=True)
    db.delete(plan)
    db.commit()
    return ok({"plan_id": plan_id}, "travel plan deleted")
