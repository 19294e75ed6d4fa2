from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from yatrasathi.db import get_db
from yatrasathi.logger import logger
from yatrasathi.models import User
from yatrasathi.rbac import require_permission
from yatrasathi.reports import REPORT_TYPES, ReportFilters, build_report, export_report
from yatrasathi.responses import ok

router = APIRouter(prefix="/api/reports", tags=["Reports"])


@router.get("")
def list_report_types(_: User = Depends(require_permission("canViewReports"))) -> dict:
    return ok({"reports": list(REPORT_TYPES), "formats": ["json", "pdf", "xlsx", "csv"]})


@router.get("/{report_type}")
def generate_report(
    report_type: str,
    format: Literal["json", "pdf", "xlsx", "csv"] = "json",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
    user: User = Depends(require_permission("canViewReports")),
    db: Session = Depends(get_db),
):
    filters = ReportFilters(date_from=date_from, date_to=date_to, status=status, customer_id=customer_id)
    report = build_report(db, report_type, filters)
    logger.info("{} report ({}) generated by user {}, {} rows", report_type, format, user.id, len(report.rows))
    if format == "json":
        return ok(report.as_dict())
    content, media_type, filename = export_report(report, format)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
