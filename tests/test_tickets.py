from tests.conftest import auth_headers


def _setup(factory):
    dept = factory.department("IT Support")
    manager = factory.user(role="manager", department=dept)
    requester = factory.user(department=dept, manager=manager)
    catalog = factory.catalog(dept)
    item = factory.item(catalog, name="Laptop request")
    return dept, manager, requester, item


def _create(client, user, item, **extra):
    payload = {"title": "Need a laptop", "description": "Mine broke", "item_id": item.id, **extra}
    return client.post("/api/tickets", json=payload, headers=auth_headers(user))


def test_create_ticket_starts_pending_approval(client, factory):
    dept, manager, requester, item = _setup(factory)

    r = _create(client, requester, item, priority="high")
    assert r.status_code == 201
    data = r.json()
    assert data["status"] == "pending_approval"
    assert data["priority"] == "high"
    assert data["department_id"] == dept.id
    assert data["created_by"]["id"] == requester.id
    assert [a["business_reviewer_id"] for a in data["approvals"]] == [manager.id]
    assert data["approvals"][0]["approval_type"] == "manager"


def test_create_ticket_unknown_item_is_404(client, factory):
    requester = factory.user()
    r = client.post(
        "/api/tickets",
        json={"title": "Missing", "description": "x", "item_id": 999},
        headers=auth_headers(requester),
    )
    assert r.status_code == 404
    assert r.json()["detail"] == "Service item not found"


def test_create_ticket_template_from_other_item_is_400(client, factory):
    dept, manager, requester, item = _setup(factory)
    other_item = factory.item(item.catalog)
    template = factory.template(other_item)

    r = _create(client, requester, item, template_id=template.id)
    assert r.status_code == 400


def test_create_requires_auth(client, factory):
    _, _, _, item = _setup(factory)
    r = client.post("/api/tickets", json={"title": "abc", "description": "x", "item_id": item.id})
    assert r.status_code == 401


def test_list_scoping_by_role(client, factory):
    dept, manager, requester, item = _setup(factory)
    other = factory.user(department=dept)
    tech = factory.user(role="technician", department=dept)
    admin = factory.user(role="admin")
    outsider_tech = factory.user(role="technician", department=factory.department())

    _create(client, requester, item)
    _create(client, other, item)

    def total(user):
        r = client.get("/api/tickets", headers=auth_headers(user))
        assert r.status_code == 200
        return r.json()["total_tickets"]

    assert total(requester) == 1
    assert total(other) == 1
    assert total(tech) == 2
    assert total(admin) == 2
    assert total(outsider_tech) == 0
    # requester reports to manager; other has no manager
    assert total(manager) == 1


def test_list_pagination_and_filters(client, factory):
    _, _, requester, item = _setup(factory)
    for i in range(3):
        _create(client, requester, item, title=f"Printer jam {i}", priority="low")
    _create(client, requester, item, title="VPN broken", priority="high")

    r = client.get("/api/tickets?page=1&limit=2", headers=auth_headers(requester)).json()
    assert r["total_tickets"] == 4
    assert r["total_pages"] == 2
    assert len(r["tickets"]) == 2
    assert r["current_page"] == 1

    r = client.get("/api/tickets?search=printer", headers=auth_headers(requester)).json()
    assert r["total_tickets"] == 3

    r = client.get("/api/tickets?priority=high", headers=auth_headers(requester)).json()
    assert [t["title"] for t in r["tickets"]] == ["VPN broken"]

    assert client.get("/api/tickets?limit=101", headers=auth_headers(requester)).status_code == 422


def test_get_ticket_access_rules(client, factory):
    dept, manager, requester, item = _setup(factory)
    ticket_id = _create(client, requester, item).json()["id"]
    stranger = factory.user(department=factory.department())
    same_dept_requester = factory.user(department=dept)

    assert client.get(f"/api/tickets/{ticket_id}", headers=auth_headers(requester)).status_code == 200
    assert client.get(f"/api/tickets/{ticket_id}", headers=auth_headers(manager)).status_code == 200
    assert client.get(f"/api/tickets/{ticket_id}", headers=auth_headers(stranger)).status_code == 403
    assert client.get(f"/api/tickets/{ticket_id}", headers=auth_headers(same_dept_requester)).status_code == 403
    assert client.get("/api/tickets/9999", headers=auth_headers(requester)).status_code == 404


def test_requester_cannot_edit_pending_ticket(client, factory):
    _, _, requester, item = _setup(factory)
    ticket_id = _create(client, requester, item).json()["id"]

    r = client.put(f"/api/tickets/{ticket_id}", json={"title": "Changed title"}, headers=auth_headers(requester))
    assert r.status_code == 400


def test_requester_cannot_change_status(client, factory):
    _, manager, requester, item = _setup(factory)
    ticket_id = _create(client, requester, item).json()["id"]
    client.put(
        f"/api/tickets/{ticket_id}/approval",
        json={"action": "request_changes", "comments": "Add asset number"},
        headers=auth_headers(manager),
    )

    r = client.put(f"/api/tickets/{ticket_id}", json={"status": "closed"}, headers=auth_headers(requester))
    assert r.status_code == 403


def test_technician_assignment_and_transitions(client, factory):
    dept, manager, requester, item = _setup(factory)
    tech = factory.user(role="technician", department=dept)
    ticket_id = _create(client, requester, item).json()["id"]
    client.post(f"/api/tickets/{ticket_id}/approve", headers=auth_headers(manager))

    r = client.put(
        f"/api/tickets/{ticket_id}",
        json={"assigned_to_user_id": tech.id},
        headers=auth_headers(tech),
    )
    assert r.status_code == 200
    assert r.json()["status"] == "assigned"
    assert r.json()["assigned_to"]["id"] == tech.id

    r = client.put(f"/api/tickets/{ticket_id}", json={"status": "resolved"}, headers=auth_headers(tech))
    assert r.status_code == 200
    assert r.json()["resolved_at"] is not None

    r = client.put(f"/api/tickets/{ticket_id}", json={"status": "pending_approval"}, headers=auth_headers(tech))
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot change ticket status from resolved to pending_approval."


def test_assigning_unknown_user_fails(client, factory):
    dept, manager, requester, item = _setup(factory)
    admin = factory.user(role="admin")
    ticket_id = _create(client, requester, item).json()["id"]

    r = client.put(f"/api/tickets/{ticket_id}", json={"assigned_to_user_id": 4242}, headers=auth_headers(admin))
    assert r.status_code == 400


def test_no_changes_detected(client, factory):
    _, _, requester, item = _setup(factory)
    admin = factory.user(role="admin")
    ticket = _create(client, requester, item).json()

    r = client.put(f"/api/tickets/{ticket['id']}", json={"title": ticket["title"]}, headers=auth_headers(admin))
    assert r.status_code == 400
    assert r.json()["detail"] == "No changes detected."


def test_delete_is_admin_only_and_soft(client, factory, db_session):
    _, _, requester, item = _setup(factory)
    admin = factory.user(role="admin")
    ticket_id = _create(client, requester, item).json()["id"]

    assert client.delete(f"/api/tickets/{ticket_id}", headers=auth_headers(requester)).status_code == 403
    assert client.delete(f"/api/tickets/{ticket_id}", headers=auth_headers(admin)).status_code == 200
    assert client.get(f"/api/tickets/{ticket_id}", headers=auth_headers(admin)).status_code == 404

    from bsg_helpdesk.models.ticket import Ticket

    row = db_session.query(Ticket).filter(Ticket.id == ticket_id).first()
    assert row is not None
    assert row.is_deleted is True
    assert client.get("/api/tickets", headers=auth_headers(admin)).json()["total_tickets"] == 0
