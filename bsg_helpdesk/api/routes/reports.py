import io
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.security import require_admin
from bsg_helpdesk.models.user import User
from bsg_helpdesk.schemas.report_schema import DashboardResponse, SummaryResponse
from bsg_helpdesk.services.report_service import (
    build_docx_report,
    build_report_filename,
    dashboard,
    overdue_tickets,
    ticket_summary,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/summary", response_model=SummaryResponse)
def summary(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return ticket_summary(db)


@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return dashboard(db)


@router.get("/export")
def export_report(
    title: str = Query("Ticket report", min_length=1, max_length=120),
    include_charts: bool = True,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    stats = dashboard(db)
    overdue = overdue_tickets(db)
    docx_bytes = build_docx_report(title=title, stats=stats, overdue=overdue, include_charts=include_charts)
    filename = build_report_filename(title, "docx")
    logger.info("Ticket report exported by admin %s (%s overdue)", admin.id, len(overdue))

    return StreamingResponse(
        io.BytesIO(docx_bytes),
        media_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
