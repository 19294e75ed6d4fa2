from datetime import date, datetime, timezone
from typing import Any, Optional
from uuid import uuid4
from zoneinfo import ZoneInfo

from yatrasathi.config import settings


def meta(request_id: Optional[str] = None, warnings: Optional[list[str]] = None) -> dict:
    return {
        "request_id": request_id or f"req_{uuid4().hex}",
        "warnings": warnings or [],
    }


def ok(data: Any, message: Optional[str] = None, meta_: Optional[dict] = None) -> dict:
    return {"success": True, "data": data, "message": message, "meta": meta_ or meta()}


def error_body(error: str, message: str, details: Any = None) -> dict:
    body = {"success": False, "error": error, "message": message}
    if details is not None:
        body["details"] = details
    return body


def now() -> datetime:
    return datetime.now(timezone.utc)


def today() -> date:
    """Calendar date in the business timezone, used for numbering and periods."""
    return datetime.now(ZoneInfo(settings.timezone)).date()


def money(value) -> float:
    return float(value or 0)


def iso(value: Optional[date | datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def paginate(query, limit: int, cursor: Optional[int]) -> tuple[list[Any], Optional[int]]:
    offset = cursor or 0
    rows = query.offset(offset).limit(limit + 1).all()
    next_cursor = None
    if len(rows) > limit:
        next_cursor = offset + limit
        rows = rows[:limit]
    return rows, next_cursor


def list_meta(limit: int, cursor: Optional[int], next_cursor: Optional[int], total: Optional[int] = None) -> dict:
    """Envelope meta for a list page; ``page.cursor`` is None on the last page."""
    result = meta()
    result["page"] = {"limit": limit, "cursor": str(next_cursor) if next_cursor is not None else None}
    if total is not None:
        result["page"]["total"] = total
    return result
