from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from yatrasathi.db import get_db
from yatrasathi.models import AuditLog, User
from yatrasathi.rbac import require_admin
from yatrasathi.responses import iso, list_meta, ok, paginate

router = APIRouter(prefix="/api/audit", tags=["Audit"])


@router.get("")
def audit_trail(
    entity: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(100, ge=1, le=500),
    cursor: Optional[int] = Query(None, ge=0),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict:
    query = db.query(AuditLog)
    if entity:
        query = query.filter(AuditLog.entity == entity)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    if action:
        query = query.filter(AuditLog.action == action.upper())
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    if date_from:
        query = query.filter(AuditLog.occurred_at >= datetime.combine(date_from, time.min))
    if date_to:
        query = query.filter(AuditLog.occurred_at <= datetime.combine(date_to, time.max))
    rows, next_cursor = paginate(query.order_by(AuditLog.id.desc()), limit, cursor)
    return ok(
        [
            {
                "audit_id": row.id,
                "entity": row.entity,
                "entity_id": row.entity_id,
                "action": row.action,
                "user_id": row.user_id,
                "occurred_at": iso(row.occurred_at),
                "changes": row.changes,
            }
            for row in rows
        ],
        meta_=list_meta(limit, cursor, next_cursor),
    )
