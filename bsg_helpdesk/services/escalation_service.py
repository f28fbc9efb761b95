import asyncio
import logging
import time
from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from bsg_helpdesk.core.clock import utcnow
from bsg_helpdesk.core.config import settings
from bsg_helpdesk.core.database import SessionLocal
from bsg_helpdesk.models.ticket import Ticket
from bsg_helpdesk.services import notification_service
from bsg_helpdesk.services.ticket_workflow import FINISHED_STATUSES

logger = logging.getLogger(__name__)


def find_overdue_tickets(db: Session, now) -> List[Ticket]:
    return (
        db.query(Ticket)
        .filter(
            Ticket.is_deleted == False,  # noqa: E712
            Ticket.sla_due_date.isnot(None),
            Ticket.sla_due_date < now,
            Ticket.status.notin_(FINISHED_STATUSES),
            Ticket.priority != "urgent",
        )
        .order_by(Ticket.sla_due_date.asc())
        .all()
    )


def escalate_overdue_tickets(db: Session, now=None, recipient: Optional[str] = None) -> List[int]:
    """Raise every overdue ticket to urgent and alert the escalation mailbox.

    Each ticket is committed on its own so one failure does not undo the rest.
    """
    now = now or utcnow()
    recipient = recipient if recipient is not None else settings.ESCALATION_EMAIL
    overdue = find_overdue_tickets(db, now)
    if not overdue:
        logger.info("SLA escalation: no overdue tickets")
        return []
    if not recipient:
        logger.warning("ESCALATION_EMAIL is not set; escalating %s ticket(s) without email", len(overdue))

    escalated: List[int] = []
    for ticket in overdue:
        try:
            ticket.priority = "urgent"
            ticket.escalated_at = now
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("SLA escalation failed for ticket %s", ticket.id)
            continue
        escalated.append(ticket.id)
        logger.info("Ticket %s escalated to urgent (due %s)", ticket.id, ticket.sla_due_date)
        if recipient:
            notification_service.notify_escalation(ticket, recipient)

    return escalated


def run_escalation_job() -> List[int]:
    db = SessionLocal()
    try:
        return escalate_overdue_tickets(db)
    finally:
        db.close()


async def run_escalation_loop(stop_event: asyncio.Event, interval_seconds: Optional[int] = None) -> None:
    """Run one escalation pass per interval until ``stop_event`` is set.

    Passes never overlap: the next one is scheduled only after the previous returns.
    """
    interval = interval_seconds or settings.ESCALATION_INTERVAL_SECONDS
    logger.info("SLA escalation loop started", extra={"interval_seconds": interval})
    next_run = time.monotonic() + interval
    while not stop_event.is_set():
        timeout = max(0.0, next_run - time.monotonic())
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=timeout)
            break
        except asyncio.TimeoutError:
            pass

        try:
            escalated = await asyncio.to_thread(run_escalation_job)
            if escalated:
                logger.info("SLA escalation pass escalated %s ticket(s)", len(escalated))
        except Exception:
            logger.exception("SLA escalation pass failed")
        next_run = time.monotonic() + interval

    logger.info("SLA escalation loop stopped")
