from tests.conftest import auth_headers


def _ticket(client, factory, priority="medium"):
    dept = factory.department()
    manager = factory.user(role="manager", department=dept)
    requester = factory.user(department=dept, manager=manager)
    item = factory.item(factory.catalog(dept), name="Access card")
    r = client.post(
        "/api/tickets",
        json={"title": "New access card", "description": "Lost my card", "item_id": item.id, "priority": priority},
        headers=auth_headers(requester),
    )
    assert r.status_code == 201
    return r.json()["id"], manager, requester


def test_manager_sees_reports_pending_tickets(client, factory):
    ticket_id, manager, _ = _ticket(client, factory)
    unrelated_manager = factory.user(role="manager")

    r = client.get("/api/tickets/pending-approvals", headers=auth_headers(manager))
    assert r.status_code == 200
    assert [t["id"] for t in r.json()] == [ticket_id]

    r = client.get("/api/tickets/pending-approvals", headers=auth_headers(unrelated_manager))
    assert r.json() == []


def test_requester_cannot_list_pending_approvals(client, factory):
    _, _, requester = _ticket(client, factory)
    r = client.get("/api/tickets/pending-approvals", headers=auth_headers(requester))
    assert r.status_code == 403
    assert r.json()["detail"] == "Admin or Manager role required."


def test_approve_sets_priority_sla(client, factory):
    ticket_id, manager, _ = _ticket(client, factory, priority="high")

    r = client.post(f"/api/tickets/{ticket_id}/approve", headers=auth_headers(manager))
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "approved"
    assert data["sla_due_date"] is not None
    approval = data["approvals"][0]
    assert approval["approval_status"] == "approved"
    assert approval["approved_at"] is not None

    again = client.post(f"/api/tickets/{ticket_id}/approve", headers=auth_headers(manager))
    assert again.status_code == 400
    assert again.json()["detail"] == "Ticket is not pending approval."


def test_reject_requires_comments(client, factory):
    ticket_id, manager, _ = _ticket(client, factory)

    r = client.post(f"/api/tickets/{ticket_id}/reject", json={}, headers=auth_headers(manager))
    assert r.status_code == 400
    assert r.json()["detail"] == "Comments are required when the action is 'reject'."

    r = client.post(f"/api/tickets/{ticket_id}/reject", json={"comments": "Not budgeted"}, headers=auth_headers(manager))
    assert r.status_code == 200
    assert r.json()["status"] == "rejected"
    assert r.json()["manager_comments"] == "Not budgeted"


def test_only_the_creators_manager_or_admin_may_decide(client, factory):
    ticket_id, _, _ = _ticket(client, factory)
    other_manager = factory.user(role="manager")
    admin = factory.user(role="admin")

    r = client.put(
        f"/api/tickets/{ticket_id}/approval",
        json={"action": "approve"},
        headers=auth_headers(other_manager),
    )
    assert r.status_code == 403

    r = client.put(f"/api/tickets/{ticket_id}/approval", json={"action": "approve"}, headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json()["status"] == "approved"


def test_invalid_action_is_rejected_by_schema(client, factory):
    ticket_id, manager, _ = _ticket(client, factory)
    r = client.put(f"/api/tickets/{ticket_id}/approval", json={"action": "maybe"}, headers=auth_headers(manager))
    assert r.status_code == 422


def test_request_changes_then_resubmit(client, factory):
    ticket_id, manager, requester = _ticket(client, factory)

    r = client.put(
        f"/api/tickets/{ticket_id}/approval",
        json={"action": "request_changes", "comments": "Please add your employee number"},
        headers=auth_headers(manager),
    )
    assert r.status_code == 200
    assert r.json()["status"] == "awaiting_changes"
    assert r.json()["approvals"][0]["approval_status"] == "changes_requested"

    r = client.put(
        f"/api/tickets/{ticket_id}",
        json={"description": "Lost my card. Employee number 12345."},
        headers=auth_headers(requester),
    )
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "pending_approval"
    assert data["manager_comments"] is None
    assert [a["approval_status"] for a in data["approvals"]] == ["pending"]

    # the same reviewer keeps a single approval row
    r = client.post(f"/api/tickets/{ticket_id}/approve", headers=auth_headers(manager))
    assert r.status_code == 200
    assert len(r.json()["approvals"]) == 1
