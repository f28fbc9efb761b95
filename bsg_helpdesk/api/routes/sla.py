from datetime import timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.security import get_current_user, require_admin
from bsg_helpdesk.core.clock import utcnow
from bsg_helpdesk.models.organization import Department
from bsg_helpdesk.models.sla import BusinessHours, Holiday
from bsg_helpdesk.models.user import User
from bsg_helpdesk.schemas.sla_schema import (
    BusinessHoursEntry,
    BusinessHoursUpdate,
    EscalationRunResponse,
    HolidayCreate,
    HolidayResponse,
    SlaCalculateRequest,
    SlaCalculateResponse,
    SlaStatusResponse,
)
from bsg_helpdesk.services.escalation_service import escalate_overdue_tickets
from bsg_helpdesk.services.sla_service import calculate_service_due_date, load_calendar, ticket_sla_status
from bsg_helpdesk.services.ticket_service import get_visible_ticket

router = APIRouter()


def _department_or_404(db: Session, department_id: int) -> Department:
    department = db.query(Department).filter(Department.id == department_id).first()
    if not department:
        raise HTTPException(status_code=404, detail="Department not found")
    return department


@router.get("/business-hours/{department_id}", response_model=List[BusinessHoursEntry])
def get_business_hours(department_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    _department_or_404(db, department_id)
    return (
        db.query(BusinessHours)
        .filter(BusinessHours.department_id == department_id)
        .order_by(BusinessHours.day_of_week)
        .all()
    )


@router.put("/business-hours/{department_id}", response_model=List[BusinessHoursEntry])
def set_business_hours(
    department_id: int,
    request: BusinessHoursUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Replace the department's weekly calendar."""
    _department_or_404(db, department_id)
    days = [d.day_of_week for d in request.days]
    if len(days) != len(set(days)):
        raise HTTPException(status_code=400, detail="Each weekday may appear only once.")

    db.query(BusinessHours).filter(BusinessHours.department_id == department_id).delete()
    rows = [
        BusinessHours(
            department_id=department_id,
            day_of_week=d.day_of_week,
            start_time=d.start_time,
            end_time=d.end_time,
        )
        for d in sorted(request.days, key=lambda d: d.day_of_week)
    ]
    db.add_all(rows)
    db.commit()
    return rows


@router.get("/holidays", response_model=List[HolidayResponse])
def list_holidays(
    department_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    q = db.query(Holiday)
    if department_id is not None:
        q = q.filter(or_(Holiday.department_id.is_(None), Holiday.department_id == department_id))
    return q.order_by(Holiday.date).all()


@router.post("/holidays", response_model=HolidayResponse, status_code=201)
def create_holiday(request: HolidayCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    if request.department_id is not None:
        _department_or_404(db, request.department_id)
    holiday = Holiday(**request.model_dump())
    db.add(holiday)
    db.commit()
    db.refresh(holiday)
    return holiday


@router.delete("/holidays/{holiday_id}")
def delete_holiday(holiday_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    holiday = db.query(Holiday).filter(Holiday.id == holiday_id).first()
    if not holiday:
        raise HTTPException(status_code=404, detail="Holiday not found")
    db.delete(holiday)
    db.commit()
    return {"message": "Holiday deleted successfully"}


@router.post("/calculate", response_model=SlaCalculateResponse)
def calculate(request: SlaCalculateRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    department = _department_or_404(db, request.department_id) if request.department_id is not None else None
    start = request.start or utcnow()
    if start.tzinfo is not None:
        start = start.astimezone(timezone.utc).replace(tzinfo=None)
    due, hours = calculate_service_due_date(
        db,
        business_impact=request.business_impact,
        department=department,
        is_kasda=request.is_kasda,
        start=start,
    )
    windows, _ = load_calendar(db, department.id if department else None)
    return SlaCalculateResponse(start=start, sla_hours=hours, due_date=due, business_hours_applied=bool(windows))


@router.get("/tickets/{ticket_id}/status", response_model=SlaStatusResponse)
def ticket_status(ticket_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    ticket = get_visible_ticket(db, user, ticket_id, department_wide=True)
    return ticket_sla_status(ticket)


@router.post("/escalations/run", response_model=EscalationRunResponse)
def run_escalations(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return EscalationRunResponse(escalated_ticket_ids=escalate_overdue_tickets(db))
