"""Session hooks that stamp audit columns and write the forensic audit log.

Handlers never set ``entered_*``/``modified_*`` themselves: the acting user is
taken from ``session.info["user_id"]``, which ``get_current_user`` fills in.
"""
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from yatrasathi.errors import Conflict
from yatrasathi.logger import logger
from yatrasathi.models import AuditLog, AuditMixin, CustomerLedgerEntry

SKIPPED_ATTRIBUTES = {"entered_by", "entered_on", "modified_by", "modified_on", "password_hash"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _changes(obj) -> dict:
    state = inspect(obj)
    changes = {}
    for attr in state.mapper.column_attrs:
        if attr.key in SKIPPED_ATTRIBUTES:
            continue
        history = state.attrs[attr.key].history
        if not history.has_changes():
            continue
        old = history.deleted[0] if history.deleted else None
        new = history.added[0] if history.added else None
        if old == new:
            continue
        changes[attr.key] = [_jsonable(old), _jsonable(new)]
    return changes


def _snapshot(obj) -> dict:
    state = inspect(obj)
    return {
        attr.key: _jsonable(getattr(obj, attr.key))
        for attr in state.mapper.column_attrs
        if attr.key not in SKIPPED_ATTRIBUTES
    }


def _update_action(changes: dict) -> str:
    if "status" in changes and changes["status"][1] == "CANCELLED":
        return "CANCEL"
    if "closed_on" in changes and changes["closed_on"][0] is None:
        return "CLOSE"
    return "UPDATE"


@event.listens_for(Session, "before_flush")
def stamp_audit_fields(session: Session, flush_context, instances) -> None:
    user_id = session.info.get("user_id")
    now = _now()
    for obj in session.new:
        if isinstance(obj, AuditMixin):
            obj.entered_by = obj.entered_by or user_id
            obj.entered_on = obj.entered_on or now
            obj.modified_by = obj.modified_by or user_id
            obj.modified_on = obj.modified_on or now
        elif isinstance(obj, CustomerLedgerEntry):
            obj.entered_by = obj.entered_by or user_id
            obj.entered_on = obj.entered_on or now
    for obj in session.dirty:
        if isinstance(obj, CustomerLedgerEntry) and session.is_modified(obj):
            raise Conflict("customer ledger entries cannot be modified")
        if isinstance(obj, AuditMixin) and session.is_modified(obj):
            obj.modified_by = user_id
            obj.modified_on = now
    pending_deletes = session.info.setdefault("audit_deleted", {})
    for obj in session.deleted:
        if isinstance(obj, CustomerLedgerEntry):
            raise Conflict("customer ledger entries cannot be deleted")
        if isinstance(obj, AuditMixin):
            # row is gone once the DELETE runs
            pending_deletes[id(obj)] = _snapshot(obj)


@event.listens_for(Session, "after_flush")
def write_audit_log(session: Session, flush_context) -> None:
    user_id = session.info.get("user_id")
    now = _now()
    rows = []
    for obj in session.new:
        if isinstance(obj, (AuditMixin, CustomerLedgerEntry)):
            rows.append(_row(obj, "CREATE", user_id, now, _snapshot(obj)))
    for obj in session.dirty:
        if isinstance(obj, AuditMixin):
            changes = _changes(obj)
            if changes:
                rows.append(_row(obj, _update_action(changes), user_id, now, changes))
    pending_deletes = session.info.pop("audit_deleted", {})
    for obj in session.deleted:
        if isinstance(obj, AuditMixin):
            snapshot = pending_deletes.get(id(obj), {})
            rows.append(_row(obj, "DELETE", user_id, now, snapshot))
    if rows:
        session.connection().execute(AuditLog.__table__.insert(), rows)
        logger.debug("audit: {} rows written", len(rows))


def _row(obj, action: str, user_id, occurred_at: datetime, changes: dict) -> dict:
    return {
        "al_entity": obj.__tablename__,
        "al_entityid": str(obj.id),
        "al_action": action,
        "al_usid": user_id,
        "al_dtm": occurred_at,
        "al_changes": changes,
    }
