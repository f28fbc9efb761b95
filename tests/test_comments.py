from tests.conftest import auth_headers


def _ticket(client, factory):
    dept = factory.department()
    requester = factory.user(department=dept)
    tech = factory.user(role="technician", department=dept)
    item = factory.item(factory.catalog(dept))
    r = client.post(
        "/api/v2/tickets",
        json={"title": "Printer offline", "description": "Floor 3", "service_item_id": item.id},
        headers=auth_headers(requester),
    )
    return r.json()["ticket"]["id"], requester, tech


def test_internal_comments_hidden_from_requester(client, factory):
    ticket_id, requester, tech = _ticket(client, factory)
    url = f"/api/tickets/{ticket_id}/comments"

    r = client.post(url, json={"content": "Checking the spooler"}, headers=auth_headers(tech))
    assert r.status_code == 201
    r = client.post(url, json={"content": "Vendor ticket opened", "is_internal": True}, headers=auth_headers(tech))
    assert r.json()["is_internal"] is True

    # requesters cannot post internal notes
    r = client.post(url, json={"content": "Any news?", "is_internal": True}, headers=auth_headers(requester))
    assert r.json()["is_internal"] is False

    visible = client.get(f"{url}?include_internal=true", headers=auth_headers(requester)).json()
    assert [c["content"] for c in visible] == ["Checking the spooler", "Any news?"]

    staff_view = client.get(f"{url}?include_internal=true", headers=auth_headers(tech)).json()
    assert len(staff_view) == 3
    assert len(client.get(url, headers=auth_headers(tech)).json()) == 2


def test_blank_comment_and_foreign_parent(client, factory):
    ticket_id, requester, _ = _ticket(client, factory)
    other_id, other_requester, _ = _ticket(client, factory)
    foreign = client.post(
        f"/api/tickets/{other_id}/comments", json={"content": "elsewhere"}, headers=auth_headers(other_requester)
    ).json()

    url = f"/api/tickets/{ticket_id}/comments"
    assert client.post(url, json={"content": "   "}, headers=auth_headers(requester)).status_code == 400
    r = client.post(url, json={"content": "reply", "parent_comment_id": foreign["id"]}, headers=auth_headers(requester))
    assert r.status_code == 400


def test_outsider_cannot_comment(client, factory):
    ticket_id, _, _ = _ticket(client, factory)
    outsider = factory.user(department=factory.department())
    r = client.post(f"/api/tickets/{ticket_id}/comments", json={"content": "hi"}, headers=auth_headers(outsider))
    assert r.status_code == 403


def test_only_author_or_admin_edits(client, factory):
    ticket_id, requester, tech = _ticket(client, factory)
    admin = factory.user(role="admin")
    comment = client.post(
        f"/api/tickets/{ticket_id}/comments", json={"content": "first"}, headers=auth_headers(requester)
    ).json()

    r = client.put(f"/api/tickets/comments/{comment['id']}", json={"content": "hacked"}, headers=auth_headers(tech))
    assert r.status_code == 403

    r = client.put(f"/api/tickets/comments/{comment['id']}", json={"content": "first, edited"}, headers=auth_headers(requester))
    assert r.status_code == 200
    assert r.json()["content"] == "first, edited"

    r = client.delete(f"/api/tickets/comments/{comment['id']}", headers=auth_headers(admin))
    assert r.json() == {"message": "Comment deleted successfully"}
    assert client.get(f"/api/tickets/{ticket_id}/comments", headers=auth_headers(requester)).json() == []
    assert client.delete(f"/api/tickets/comments/{comment['id']}", headers=auth_headers(admin)).status_code == 404


def test_department_colleague_without_ticket_access_cannot_comment(client, factory):
    ticket_id, requester, _ = _ticket(client, factory)
    colleague = factory.user(department=requester.department)
    url = f"/api/tickets/{ticket_id}/comments"

    assert client.get(url, headers=auth_headers(colleague)).status_code == 403
    assert client.post(url, json={"content": "me too"}, headers=auth_headers(colleague)).status_code == 403
    assert client.get(f"/api/tickets/{ticket_id}", headers=auth_headers(colleague)).status_code == 403
