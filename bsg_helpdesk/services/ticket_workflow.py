"""Status lifecycle and visibility rules shared by every ticket surface."""
from sqlalchemy.orm import Session

from bsg_helpdesk.core.clock import utcnow
from bsg_helpdesk.core.errors import NotFound, PermissionDenied, ServiceError
from bsg_helpdesk.models.ticket import Ticket
from bsg_helpdesk.models.user import User

STATUS_TRANSITIONS = {
    "open": {"pending_approval", "assigned", "in_progress", "resolved", "closed"},
    "pending_approval": {"approved", "rejected", "awaiting_changes"},
    "awaiting_changes": {"pending_approval", "closed"},
    "approved": {"assigned", "in_progress", "resolved", "closed"},
    "rejected": {"closed"},
    "assigned": {"open", "in_progress", "resolved", "closed"},
    "in_progress": {"assigned", "resolved", "closed"},
    "resolved": {"in_progress", "closed"},
    "closed": set(),
}

# Statuses the SLA clock no longer applies to.
FINISHED_STATUSES = ("resolved", "closed", "rejected")


def can_transition(current: str, new: str) -> bool:
    return new in STATUS_TRANSITIONS.get(current, set())


def change_status(ticket: Ticket, new_status: str) -> str:
    """Move ``ticket`` to ``new_status`` and return the previous status."""
    old = ticket.status
    if new_status == old:
        return old
    if not can_transition(old, new_status):
        raise ServiceError(f"Cannot change ticket status from {old} to {new_status}.")
    ticket.status = new_status
    if new_status == "resolved":
        ticket.resolved_at = utcnow()
    elif old == "resolved":
        ticket.resolved_at = None
    return old


def get_ticket(db: Session, ticket_id: int) -> Ticket:
    ticket = (
        db.query(Ticket)
        .filter(Ticket.id == ticket_id, Ticket.is_deleted == False)  # noqa: E712
        .first()
    )
    if not ticket:
        raise NotFound("Ticket not found")
    return ticket


def can_view_ticket(user: User, ticket: Ticket, *, department_wide: bool = False) -> bool:
    if user.is_admin:
        return True
    if user.id in (ticket.created_by_user_id, ticket.assigned_to_user_id):
        return True
    same_department = ticket.department_id is not None and ticket.department_id == user.department_id
    if user.role == "technician" and same_department:
        return True
    if ticket.created_by is not None and ticket.created_by.manager_id == user.id:
        return True
    if any(a.business_reviewer_id == user.id for a in ticket.approvals):
        return True
    if department_wide:
        if same_department:
            return True
        if user.is_business_reviewer and ticket.is_kasda_ticket:
            return True
    return False


def ensure_can_view(user: User, ticket: Ticket, *, department_wide: bool = False) -> None:
    if not can_view_ticket(user, ticket, department_wide=department_wide):
        raise PermissionDenied("You do not have permission to view this ticket.")
