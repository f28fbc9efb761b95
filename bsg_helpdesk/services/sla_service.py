import datetime as dt
from typing import Dict, Iterable, Optional, Set, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from bsg_helpdesk.core.clock import utcnow
from bsg_helpdesk.core.errors import ServiceError
from bsg_helpdesk.models.organization import Department
from bsg_helpdesk.models.sla import BusinessHours, Holiday
from bsg_helpdesk.models.ticket import Ticket

# Manager-approved tickets: due date counted from the approval.
PRIORITY_SLA = {
    "urgent": dt.timedelta(hours=4),
    "high": dt.timedelta(days=1),
    "medium": dt.timedelta(days=3),
    "low": dt.timedelta(days=7),
}

# Service-catalog tickets: hours by business impact.
STANDARD_SLA_HOURS = {"critical": 2, "high": 4, "medium": 8, "low": 24}
BUSINESS_SLA_HOURS = {"critical": 8, "high": 24, "medium": 48, "low": 72}

IMPACT_TO_PRIORITY = {"critical": "urgent", "high": "high", "medium": "medium", "low": "low"}

Windows = Dict[int, Tuple[dt.time, dt.time]]

_MAX_CALENDAR_DAYS = 3660


def sla_due_for_priority(priority: str, start: Optional[dt.datetime] = None) -> dt.datetime:
    start = start or utcnow()
    return start + PRIORITY_SLA.get(priority, PRIORITY_SLA["medium"])


def sla_hours_for_impact(business_impact: str, extended: bool) -> int:
    table = BUSINESS_SLA_HOURS if extended else STANDARD_SLA_HOURS
    return table.get(business_impact, table["medium"])


def add_business_hours(
    start: dt.datetime,
    hours: float,
    windows: Optional[Windows] = None,
    holidays: Optional[Iterable[dt.date]] = None,
) -> dt.datetime:
    """Advance ``start`` by ``hours`` counting only time inside the weekday windows.

    Without windows the clock runs continuously. Holidays contribute no time.
    """
    remaining = dt.timedelta(hours=hours)
    if not windows or remaining <= dt.timedelta(0):
        return start + remaining

    closed_days: Set[dt.date] = set(holidays or ())
    cursor = start
    for _ in range(_MAX_CALENDAR_DAYS):
        day = cursor.date()
        window = windows.get(day.weekday())
        if window and day not in closed_days:
            window_start = dt.datetime.combine(day, window[0])
            window_end = dt.datetime.combine(day, window[1])
            if cursor < window_end:
                begin = max(cursor, window_start)
                available = window_end - begin
                if remaining <= available:
                    return begin + remaining
                remaining -= available
        cursor = dt.datetime.combine(day + dt.timedelta(days=1), dt.time.min)

    raise ServiceError("Business calendar has no working time in range.")


def load_calendar(db: Session, department_id: Optional[int]) -> Tuple[Windows, Set[dt.date]]:
    if department_id is None:
        return {}, set()
    rows = db.query(BusinessHours).filter(BusinessHours.department_id == department_id).all()
    windows: Windows = {r.day_of_week: (r.start_time, r.end_time) for r in rows if r.end_time > r.start_time}
    holidays = {
        h.date
        for h in db.query(Holiday)
        .filter(or_(Holiday.department_id.is_(None), Holiday.department_id == department_id))
        .all()
    }
    return windows, holidays


def calculate_service_due_date(
    db: Session,
    *,
    business_impact: str,
    department: Optional[Department],
    is_kasda: bool,
    start: Optional[dt.datetime] = None,
) -> Tuple[dt.datetime, int]:
    start = start or utcnow()
    extended = is_kasda or (department is not None and department.department_type == "business")
    hours = sla_hours_for_impact(business_impact, extended)
    windows, holidays = load_calendar(db, department.id if department else None)
    return add_business_hours(start, hours, windows, holidays), hours


def ticket_sla_status(ticket: Ticket, now: Optional[dt.datetime] = None) -> dict:
    now = now or utcnow()
    due = ticket.sla_due_date
    finished = ticket.status in ("resolved", "closed")
    reference = ticket.resolved_at if finished and ticket.resolved_at else now
    remaining = int((due - reference).total_seconds() // 60) if due else None
    return {
        "ticket_id": ticket.id,
        "sla_due_date": due,
        "remaining_minutes": remaining,
        "is_breached": bool(due and reference > due),
        "is_escalated": ticket.escalated_at is not None,
        "status": ticket.status,
        "priority": ticket.priority,
    }
