import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, joinedload

from bsg_helpdesk.core.clock import utcnow
from bsg_helpdesk.core.errors import NotFound, PermissionDenied, ServiceError, ValidationFailed
from bsg_helpdesk.models.service_catalog import ServiceCatalog, ServiceItem, ServiceTemplate
from bsg_helpdesk.models.ticket import Ticket, TicketBSGFieldValue, TicketFieldValue
from bsg_helpdesk.models.user import User
from bsg_helpdesk.services import bsg_template_service, notification_service
from bsg_helpdesk.services.approval_service import reset_approvals, upsert_approval
from bsg_helpdesk.services.custom_field_service import validate_custom_field_values
from bsg_helpdesk.services.sla_service import IMPACT_TO_PRIORITY, calculate_service_due_date
from bsg_helpdesk.services.ticket_workflow import change_status, ensure_can_view, get_ticket

logger = logging.getLogger(__name__)

REQUESTER_EDITABLE_STATUSES = ("open", "awaiting_changes")
REQUESTER_FIELDS = {"title", "description", "priority", "item_id", "template_id", "custom_field_values"}
STAFF_ONLY_FIELDS = {"status", "assigned_to_user_id"}


def resolve_item_and_template(
    db: Session, item_id: int, template_id: Optional[int]
) -> Tuple[ServiceItem, Optional[ServiceTemplate]]:
    item = (
        db.query(ServiceItem)
        .options(joinedload(ServiceItem.catalog))
        .filter(ServiceItem.id == item_id, ServiceItem.is_active == True)  # noqa: E712
        .first()
    )
    if not item or not item.catalog.is_active:
        raise NotFound("Service item not found")

    template = None
    if template_id is not None:
        template = db.query(ServiceTemplate).filter(ServiceTemplate.id == template_id).first()
        if not template:
            raise NotFound("Service template not found")
        if template.service_item_id != item.id:
            raise ValidationFailed("Template does not belong to the selected service item.")
    return item, template


def _replace_field_values(ticket: Ticket, accepted) -> None:
    ticket.field_values.clear()
    for field, value in accepted:
        ticket.field_values.append(TicketFieldValue(field_definition_id=field.id, value=value))


def create_ticket(db: Session, user: User, data) -> Ticket:
    """Create a ticket that waits for the requester's manager."""
    item, template = resolve_item_and_template(db, data.item_id, data.template_id)
    values = {v.field_definition_id: v.value for v in data.custom_field_values or []}
    accepted = validate_custom_field_values(db, item=item, template=template, values=values)

    ticket = Ticket(
        title=data.title,
        description=data.description,
        priority=data.priority,
        status="pending_approval",
        created_by_user_id=user.id,
        department_id=item.catalog.department_id,
        service_item_id=item.id,
        service_template_id=template.id if template else None,
    )
    db.add(ticket)
    _replace_field_values(ticket, accepted)
    db.flush()

    manager = user.manager
    if manager is not None:
        upsert_approval(db, ticket, manager, approval_type="manager")
    db.commit()
    db.refresh(ticket)
    logger.info("Ticket %s created by user %s (pending approval)", ticket.id, user.id)

    notification_service.notify_ticket_created(ticket, user)
    notification_service.notify_approval_needed(ticket, manager, user)
    return ticket


def _scope_query(q, user: User):
    if user.is_admin:
        return q
    if user.role == "technician":
        return q.filter(
            or_(
                Ticket.department_id == user.department_id,
                Ticket.assigned_to_user_id == user.id,
                Ticket.created_by_user_id == user.id,
            )
        )
    if user.role == "manager":
        reports = [row.id for row in user_reports(q.session, user)]
        return q.filter(
            or_(
                Ticket.created_by_user_id == user.id,
                and_(Ticket.status == "pending_approval", Ticket.created_by_user_id.in_(reports or [-1])),
            )
        )
    return q.filter(Ticket.created_by_user_id == user.id)


def user_reports(db: Session, manager: User) -> List[User]:
    return db.query(User).filter(User.manager_id == manager.id).all()


def list_tickets(
    db: Session,
    user: User,
    *,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
    category: Optional[str] = None,
) -> Dict[str, Any]:
    q = db.query(Ticket).filter(Ticket.is_deleted == False)  # noqa: E712
    q = _scope_query(q, user)
    if status:
        q = q.filter(Ticket.status == status)
    if priority:
        q = q.filter(Ticket.priority == priority)
    if category:
        q = q.filter(Ticket.confirmed_issue_category == category)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Ticket.title.ilike(pattern), Ticket.description.ilike(pattern)))

    total = q.count()
    tickets = (
        q.order_by(Ticket.created_at.desc(), Ticket.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "tickets": tickets,
        "current_page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
        "total_tickets": total,
    }


def pending_manager_approvals(db: Session, user: User) -> List[Ticket]:
    q = db.query(Ticket).filter(
        Ticket.is_deleted == False,  # noqa: E712
        Ticket.status == "pending_approval",
    )
    if not user.is_admin:
        q = q.join(User, User.id == Ticket.created_by_user_id).filter(User.manager_id == user.id)
    return q.order_by(Ticket.created_at.asc(), Ticket.id.asc()).all()


def get_visible_ticket(db: Session, user: User, ticket_id: int, *, department_wide: bool = False) -> Ticket:
    ticket = get_ticket(db, ticket_id)
    ensure_can_view(user, ticket, department_wide=department_wide)
    return ticket


def update_ticket(db: Session, user: User, ticket_id: int, changes: Dict[str, Any]) -> Ticket:
    ticket = get_ticket(db, ticket_id)
    is_owner = ticket.created_by_user_id == user.id
    staff_editor = user.role in ("admin", "technician")

    if staff_editor:
        ensure_can_view(user, ticket)
    else:
        if not is_owner:
            raise PermissionDenied("You can only edit your own tickets.")
        if set(changes) & STAFF_ONLY_FIELDS:
            raise PermissionDenied("Only administrators and technicians can change status or assignment.")
        if ticket.status not in REQUESTER_EDITABLE_STATUSES:
            raise ServiceError("Tickets can only be edited while open or awaiting changes.")

    changed = False
    for name in ("title", "description", "priority"):
        if name in changes and changes[name] is not None and changes[name] != getattr(ticket, name):
            setattr(ticket, name, changes[name])
            changed = True

    item_changed = "item_id" in changes and changes["item_id"] not in (None, ticket.service_item_id)
    template_changed = "template_id" in changes and changes["template_id"] != ticket.service_template_id
    if item_changed or template_changed or "custom_field_values" in changes:
        item_id = changes.get("item_id") or ticket.service_item_id
        template_id = changes["template_id"] if "template_id" in changes else ticket.service_template_id
        if item_id is None:
            raise ValidationFailed("A service item is required.")
        item, template = resolve_item_and_template(db, item_id, template_id)
        if item_changed or template_changed:
            ticket.service_item_id = item.id
            ticket.service_template_id = template.id if template else None
            ticket.department_id = item.catalog.department_id
            changed = True
        if "custom_field_values" in changes:
            values = {v["field_definition_id"]: v["value"] for v in changes["custom_field_values"] or []}
            accepted = validate_custom_field_values(db, item=item, template=template, values=values)
            before = {(v.field_definition_id, v.value) for v in ticket.field_values}
            if before != {(f.id, value) for f, value in accepted}:
                _replace_field_values(ticket, accepted)
                changed = True

    old_status = ticket.status
    if "assigned_to_user_id" in changes and changes["assigned_to_user_id"] != ticket.assigned_to_user_id:
        assignee_id = changes["assigned_to_user_id"]
        if assignee_id is not None:
            assignee = db.query(User).filter(User.id == assignee_id, User.is_active == True).first()  # noqa: E712
            if not assignee:
                raise ValidationFailed("Assigned user does not exist.")
        ticket.assigned_to_user_id = assignee_id
        changed = True
        if assignee_id is not None and changes.get("status") is None and ticket.status in ("open", "approved"):
            change_status(ticket, "assigned")

    if changes.get("status") is not None and changes["status"] != ticket.status:
        change_status(ticket, changes["status"])
        changed = True

    resubmitted = False
    if is_owner and changed and old_status == "awaiting_changes" and ticket.status == "awaiting_changes":
        change_status(ticket, "pending_approval")
        ticket.manager_comments = None
        reset_approvals(ticket)
        resubmitted = True

    if not changed:
        raise ServiceError("No changes detected.")

    db.commit()
    db.refresh(ticket)

    if ticket.status != old_status:
        logger.info("Ticket %s status %s -> %s by user %s", ticket.id, old_status, ticket.status, user.id)
        notification_service.notify_status_change(ticket, ticket.created_by, old_status)
    if resubmitted:
        notification_service.notify_approval_needed(ticket, ticket.created_by.manager, ticket.created_by)
    return ticket


def delete_ticket(db: Session, ticket_id: int) -> None:
    ticket = get_ticket(db, ticket_id)
    ticket.is_deleted = True
    ticket.deleted_at = utcnow()
    db.commit()
    logger.info("Ticket %s soft-deleted", ticket_id)


def auto_categorize(item: ServiceItem) -> Tuple[str, Optional[str]]:
    issue_category = "problem" if item.request_type == "incident" else "request"
    root_cause = None
    if item.is_kasda_related:
        issue_category = "request"
    if "password" in item.name.lower():
        root_cause = "human_error"
    return issue_category, root_cause


def find_business_reviewer(db: Session, department_id: Optional[int]) -> Optional[User]:
    if department_id is None:
        return None
    return (
        db.query(User)
        .filter(
            User.department_id == department_id,
            User.role.in_(("manager", "admin")),
            User.is_business_reviewer == True,  # noqa: E712
            User.is_active == True,  # noqa: E712
        )
        .order_by(User.id)
        .first()
    )


def create_service_ticket(db: Session, user: User, data) -> Tuple[Ticket, Dict[str, Any]]:
    """Create a ticket from the service catalog, routing it to business approval when needed."""
    item, template = resolve_item_and_template(db, data.service_item_id, data.service_template_id)
    catalog: ServiceCatalog = item.catalog
    department = catalog.department

    if item.is_kasda_related and not (user.is_kasda_user or user.is_business_reviewer):
        raise PermissionDenied("KASDA services are restricted to KASDA users.")

    accepted = validate_custom_field_values(
        db, item=item, template=template, values=dict(data.custom_field_values or {})
    )

    bsg_template = None
    bsg_cleaned: Dict[str, str] = {}
    if data.bsg_template_id is not None:
        bsg_template = bsg_template_service.get_template(db, data.bsg_template_id)
        bsg_cleaned, errors = bsg_template_service.validate_submission(
            db, bsg_template, dict(data.bsg_field_values or {})
        )
        if errors:
            raise ValidationFailed("BSG template validation failed.", errors)
    elif data.bsg_field_values:
        raise ValidationFailed("BSG field values require a BSG template.")

    impact = data.business_impact
    due, sla_hours = calculate_service_due_date(
        db, business_impact=impact, department=department, is_kasda=item.is_kasda_related
    )
    requires_approval = bool(
        item.is_kasda_related
        or item.requires_gov_approval
        or (template is not None and template.requires_business_approval)
    )
    issue_category, root_cause = auto_categorize(item)

    ticket = Ticket(
        title=data.title,
        description=data.description,
        status="pending_approval" if requires_approval else "open",
        priority=IMPACT_TO_PRIORITY[impact],
        business_impact=impact,
        created_by_user_id=user.id,
        department_id=department.id,
        service_item_id=item.id,
        service_template_id=template.id if template else None,
        bsg_template_id=bsg_template.id if bsg_template else None,
        is_kasda_ticket=item.is_kasda_related,
        requires_business_approval=requires_approval,
        sla_due_date=due,
        user_issue_category=issue_category,
        user_root_cause=root_cause,
    )
    db.add(ticket)
    _replace_field_values(ticket, accepted)
    if bsg_template is not None:
        by_name = bsg_template_service.fields_by_name(db, bsg_template.id)
        for name, value in bsg_cleaned.items():
            ticket.bsg_field_values.append(TicketBSGFieldValue(field_id=by_name[name].id, value=value))
    db.flush()

    reviewer = None
    if requires_approval:
        reviewer = find_business_reviewer(db, department.id)
        if reviewer is not None:
            upsert_approval(db, ticket, reviewer, approval_type="business")
        else:
            logger.warning("No business reviewer in department %s for ticket %s", department.id, ticket.id)
    if bsg_template is not None:
        bsg_template_service.log_usage(
            db, bsg_template, action_type="completed", user=user, ticket_id=ticket.id, commit=False
        )
    db.commit()
    db.refresh(ticket)
    logger.info(
        "Service ticket %s created by user %s (status=%s, sla=%sh)", ticket.id, user.id, ticket.status, sla_hours
    )

    notification_service.notify_ticket_created(ticket, user)
    if reviewer is not None:
        notification_service.notify_approval_needed(ticket, reviewer, user)

    estimated = template.estimated_resolution_hours if template and template.estimated_resolution_hours else sla_hours
    routing = {
        "target_department": department.name,
        "requires_business_approval": requires_approval,
        "is_kasda_ticket": item.is_kasda_related,
        "estimated_resolution": f"{estimated} hours",
    }
    return ticket, routing
