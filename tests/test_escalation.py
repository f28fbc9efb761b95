import asyncio
import datetime as dt

import pytest
from sqlalchemy.exc import OperationalError

from bsg_helpdesk.core.clock import utcnow
from bsg_helpdesk.models.ticket import Ticket
from bsg_helpdesk.services import escalation_service, notification_service
from tests.conftest import auth_headers


@pytest.fixture
def sent(monkeypatch):
    outbox = []

    def fake_send_email(to, subject, text, html=None):
        outbox.append({"to": to, "subject": subject, "text": text})
        return True

    monkeypatch.setattr(notification_service, "send_email", fake_send_email)
    return outbox


def _ticket(client, factory, db_session, title="Core banking slow", overdue_by=None, **fields):
    dept = factory.department()
    requester = factory.user(department=dept)
    item = factory.item(factory.catalog(dept))
    ticket_id = client.post(
        "/api/v2/tickets",
        json={"title": title, "description": "Branch 7", "service_item_id": item.id, "business_impact": "low"},
        headers=auth_headers(requester),
    ).json()["ticket"]["id"]
    ticket = db_session.query(Ticket).filter(Ticket.id == ticket_id).first()
    if overdue_by is not None:
        ticket.sla_due_date = utcnow() - overdue_by
    for key, value in fields.items():
        setattr(ticket, key, value)
    db_session.commit()
    return ticket


def test_overdue_ticket_is_escalated_and_mailed(client, factory, db_session, sent):
    ticket = _ticket(client, factory, db_session, overdue_by=dt.timedelta(hours=1))
    now = utcnow()

    escalated = escalation_service.escalate_overdue_tickets(db_session, now=now, recipient="it-escalation@bsg.local")
    assert escalated == [ticket.id]

    db_session.refresh(ticket)
    assert ticket.priority == "urgent"
    assert ticket.escalated_at == now
    assert len(sent) == 1
    assert sent[0]["to"] == "it-escalation@bsg.local"
    assert sent[0]["subject"] == f"Ticket Escalation: #{ticket.id} - Core banking slow"

    # already urgent, so the next pass leaves it alone
    assert escalation_service.escalate_overdue_tickets(db_session, recipient="it-escalation@bsg.local") == []
    assert len(sent) == 1


def test_only_open_overdue_non_urgent_tickets_qualify(client, factory, db_session, sent):
    hour = dt.timedelta(hours=1)
    _ticket(client, factory, db_session, title="Not yet due")
    _ticket(client, factory, db_session, title="Already urgent", overdue_by=hour, priority="urgent")
    _ticket(client, factory, db_session, title="Done", overdue_by=hour, status="resolved")
    _ticket(client, factory, db_session, title="Gone", overdue_by=hour, is_deleted=True)
    due = _ticket(client, factory, db_session, title="Late", overdue_by=hour)

    assert escalation_service.escalate_overdue_tickets(db_session, recipient="ops@bsg.local") == [due.id]


@pytest.mark.parametrize("recipient", [None, ""])
def test_escalation_without_mailbox_skips_email(client, factory, db_session, sent, recipient):
    ticket = _ticket(client, factory, db_session, overdue_by=dt.timedelta(minutes=5))
    assert escalation_service.escalate_overdue_tickets(db_session, recipient=recipient) == [ticket.id]
    assert sent == []


def test_manual_run_endpoint_is_admin_only(client, factory, db_session, sent):
    ticket = _ticket(client, factory, db_session, overdue_by=dt.timedelta(hours=2))
    tech = factory.user(role="technician")
    admin = factory.user(role="admin")

    assert client.post("/api/sla/escalations/run", headers=auth_headers(tech)).status_code == 403
    r = client.post("/api/sla/escalations/run", headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json() == {"escalated_ticket_ids": [ticket.id]}

    status = client.get(f"/api/sla/tickets/{ticket.id}/status", headers=auth_headers(admin)).json()
    assert status["is_escalated"] is True
    assert status["priority"] == "urgent"


def test_escalation_loop_runs_until_stopped(monkeypatch):
    calls = []

    async def scenario():
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()

        def job():
            calls.append(1)
            if len(calls) == 2:
                loop.call_soon_threadsafe(stop.set)
            return []

        monkeypatch.setattr(escalation_service, "run_escalation_job", job)
        await asyncio.wait_for(escalation_service.run_escalation_loop(stop, interval_seconds=0.01), timeout=5)

    asyncio.run(scenario())
    assert len(calls) == 2


def test_escalation_loop_exits_immediately_when_stopped(monkeypatch):
    monkeypatch.setattr(escalation_service, "run_escalation_job", lambda: pytest.fail("should not run"))

    async def scenario():
        stop = asyncio.Event()
        stop.set()
        await escalation_service.run_escalation_loop(stop, interval_seconds=60)

    asyncio.run(scenario())


def test_failed_ticket_does_not_stop_the_pass(client, factory, db_session, sent, monkeypatch):
    first = _ticket(client, factory, db_session, title="Locked row", overdue_by=dt.timedelta(hours=3))
    second = _ticket(client, factory, db_session, title="Still late", overdue_by=dt.timedelta(hours=1))
    first_id, second_id = first.id, second.id

    real_commit = db_session.commit
    calls = []

    def flaky_commit():
        calls.append(1)
        if len(calls) == 1:
            raise OperationalError("UPDATE tickets", {}, Exception("database is locked"))
        real_commit()

    monkeypatch.setattr(db_session, "commit", flaky_commit)
    escalated = escalation_service.escalate_overdue_tickets(db_session, recipient="ops@bsg.local")

    assert escalated == [second_id]
    assert [m["subject"] for m in sent] == [f"Ticket Escalation: #{second_id} - Still late"]
    assert db_session.get(Ticket, first_id).priority == "low"
    assert db_session.get(Ticket, second_id).priority == "urgent"
