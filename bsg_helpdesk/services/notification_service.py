from html import escape
from typing import Optional

from bsg_helpdesk.models.ticket import Ticket
from bsg_helpdesk.models.user import User
from bsg_helpdesk.services.email_service import send_email


def _status_label(status: str) -> str:
    return status.replace("_", " ").title()


def notify_ticket_created(ticket: Ticket, creator: User) -> bool:
    if ticket.status == "pending_approval":
        subject = f"Ticket #{ticket.id} Submitted - Pending Approval"
        text = (
            f"Hello {creator.username},\n\n"
            f"Your ticket #{ticket.id} ('{ticket.title}') has been submitted and is "
            "awaiting approval. You will be notified once it has been reviewed."
        )
    else:
        subject = f"Ticket #{ticket.id} Created"
        text = f"Hello {creator.username},\n\nYour ticket #{ticket.id} ('{ticket.title}') has been created."
    return send_email(creator.email, subject, text)


def notify_approval_needed(ticket: Ticket, reviewer: Optional[User], requester: User) -> bool:
    if reviewer is None:
        return False
    subject = f"Approval Required: Ticket #{ticket.id} - {ticket.title}"
    text = (
        f"Hello {reviewer.username},\n\n"
        f"{requester.username} submitted ticket #{ticket.id} which requires your approval.\n\n"
        f"Title: {ticket.title}\nPriority: {ticket.priority}\n\n{ticket.description}"
    )
    return send_email(reviewer.email, subject, text)


def notify_approval_decision(ticket: Ticket, creator: User, reviewer: User, comments: Optional[str]) -> bool:
    subject = f"Ticket #{ticket.id} {_status_label(ticket.status)}"
    text = (
        f"Hello {creator.username},\n\n"
        f"Your ticket #{ticket.id} ('{ticket.title}') was reviewed by {reviewer.username}.\n"
        f"New status: {_status_label(ticket.status)}"
    )
    if comments:
        text += f"\n\nComments: {comments}"
    return send_email(creator.email, subject, text)


def notify_status_change(ticket: Ticket, creator: User, old_status: str) -> bool:
    subject = f"Ticket #{ticket.id} Status Updated"
    text = (
        f"Hello {creator.username},\n\n"
        f"The status of your ticket #{ticket.id} ('{ticket.title}') changed from "
        f"{_status_label(old_status)} to {_status_label(ticket.status)}."
    )
    return send_email(creator.email, subject, text)


def notify_escalation(ticket: Ticket, recipient: str) -> bool:
    subject = f"Ticket Escalation: #{ticket.id} - {ticket.title}"
    due = ticket.sla_due_date.strftime("%Y-%m-%d %H:%M UTC") if ticket.sla_due_date else "n/a"
    text = (
        f"Ticket #{ticket.id} has breached its SLA and was escalated to urgent priority.\n\n"
        f"Title: {ticket.title}\nStatus: {_status_label(ticket.status)}\nSLA due: {due}"
    )
    html = (
        f"<p>Ticket <b>#{ticket.id}</b> has breached its SLA and was escalated to "
        f"<b>urgent</b> priority.</p><p>Title: {escape(ticket.title)}<br/>SLA due: {due}</p>"
    )
    return send_email(recipient, subject, text, html)
