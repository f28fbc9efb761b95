import logging
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from bsg_helpdesk.core.clock import utcnow
from bsg_helpdesk.core.errors import PermissionDenied, ServiceError, ValidationFailed
from bsg_helpdesk.models.ticket import BusinessApproval, Ticket
from bsg_helpdesk.models.user import User
from bsg_helpdesk.services import notification_service
from bsg_helpdesk.services.sla_service import sla_due_for_priority
from bsg_helpdesk.services.ticket_workflow import change_status, get_ticket

logger = logging.getLogger(__name__)

# action -> (ticket status, approval record status)
MANAGER_ACTIONS = {
    "approve": ("approved", "approved"),
    "reject": ("rejected", "rejected"),
    "request_changes": ("awaiting_changes", "changes_requested"),
}
BUSINESS_ACTIONS = {
    "approve": ("approved", "approved"),
    "reject": ("rejected", "rejected"),
    "review_required": ("awaiting_changes", "changes_requested"),
}


def upsert_approval(
    db: Session,
    ticket: Ticket,
    reviewer: User,
    *,
    approval_type: str,
    status: str = "pending",
    comments: Optional[str] = None,
    gov_docs_verified: bool = False,
) -> BusinessApproval:
    """Keep a single record per (ticket, reviewer), updating it in place."""
    approval = (
        db.query(BusinessApproval)
        .filter(
            BusinessApproval.ticket_id == ticket.id,
            BusinessApproval.business_reviewer_id == reviewer.id,
        )
        .first()
    )
    if approval is None:
        approval = BusinessApproval(
            ticket_id=ticket.id,
            business_reviewer_id=reviewer.id,
            approval_type=approval_type,
        )
        ticket.approvals.append(approval)
    approval.approval_status = status
    approval.business_comments = comments
    approval.gov_docs_verified = gov_docs_verified
    approval.approved_at = utcnow() if status == "approved" else None
    return approval


def reset_approvals(ticket: Ticket) -> None:
    for approval in ticket.approvals:
        approval.approval_status = "pending"
        approval.approved_at = None


def _require_comments(action: str, comments: Optional[str], needs_comment: tuple) -> None:
    if action in needs_comment and not (comments and comments.strip()):
        raise ValidationFailed(f"Comments are required when the action is '{action}'.")


def manager_decision(
    db: Session,
    manager: User,
    ticket_id: int,
    action: str,
    comments: Optional[str] = None,
) -> Ticket:
    if action not in MANAGER_ACTIONS:
        raise ValidationFailed("Invalid action. Use approve, reject or request_changes.")
    _require_comments(action, comments, ("reject", "request_changes"))

    ticket = get_ticket(db, ticket_id)
    if ticket.status != "pending_approval":
        raise ServiceError("Ticket is not pending approval.")
    creator = ticket.created_by
    if not manager.is_admin and (creator is None or creator.manager_id != manager.id):
        raise PermissionDenied("You are not authorized to approve this ticket.")

    new_status, record_status = MANAGER_ACTIONS[action]
    change_status(ticket, new_status)
    if action == "approve":
        ticket.sla_due_date = sla_due_for_priority(ticket.priority)
        ticket.manager_comments = None
    else:
        ticket.manager_comments = comments

    upsert_approval(
        db,
        ticket,
        manager,
        approval_type="manager",
        status=record_status,
        comments=comments,
    )
    db.commit()
    db.refresh(ticket)
    logger.info("Ticket %s %s by manager %s", ticket.id, new_status, manager.id)

    notification_service.notify_approval_decision(ticket, creator, manager, comments)
    return ticket


def pending_business_approvals(db: Session, reviewer: User) -> List[BusinessApproval]:
    return (
        db.query(BusinessApproval)
        .options(joinedload(BusinessApproval.ticket))
        .join(Ticket, Ticket.id == BusinessApproval.ticket_id)
        .filter(
            BusinessApproval.business_reviewer_id == reviewer.id,
            BusinessApproval.approval_status == "pending",
            BusinessApproval.approval_type == "business",
            Ticket.status == "pending_approval",
            Ticket.is_deleted == False,  # noqa: E712
        )
        .order_by(Ticket.created_at.asc(), Ticket.id.asc())
        .all()
    )


def business_decision(
    db: Session,
    reviewer: User,
    ticket_id: int,
    action: str,
    comments: Optional[str] = None,
    gov_docs_verified: bool = False,
) -> Ticket:
    if action not in BUSINESS_ACTIONS:
        raise ValidationFailed("Invalid action. Use approve, reject or review_required.")
    _require_comments(action, comments, ("reject", "review_required"))

    ticket = get_ticket(db, ticket_id)
    approval = next((a for a in ticket.approvals if a.business_reviewer_id == reviewer.id), None)
    if approval is None:
        raise PermissionDenied("You are not the assigned business reviewer for this ticket.")
    if ticket.status != "pending_approval":
        raise ServiceError("Ticket is not pending business approval.")

    new_status, record_status = BUSINESS_ACTIONS[action]
    change_status(ticket, new_status)
    upsert_approval(
        db,
        ticket,
        reviewer,
        approval_type=approval.approval_type,
        status=record_status,
        comments=comments,
        gov_docs_verified=gov_docs_verified,
    )
    db.commit()
    db.refresh(ticket)
    logger.info("Ticket %s business decision '%s' by reviewer %s", ticket.id, action, reviewer.id)

    notification_service.notify_approval_decision(ticket, ticket.created_by, reviewer, comments)
    return ticket
