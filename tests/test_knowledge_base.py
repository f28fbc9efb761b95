from bsg_helpdesk.services.knowledge_service import suggest_articles_for_ticket
from tests.conftest import auth_headers


def _article(client, author, **extra):
    payload = {
        "title": "Resetting an OLIBS password",
        "content": "Open the OLIBS admin console and choose reset password for the teller account.",
        "tags": ["olibs", "password"],
    }
    payload.update(extra)
    r = client.post("/api/knowledge-base/articles", json=payload, headers=auth_headers(author))
    assert r.status_code == 201
    return r.json()


def test_requester_cannot_author_articles(client, factory):
    user = factory.user()
    r = client.post(
        "/api/knowledge-base/articles",
        json={"title": "Something", "content": "body"},
        headers=auth_headers(user),
    )
    assert r.status_code == 403


def test_draft_publish_and_view_count(client, factory):
    tech = factory.user(role="technician")
    article = _article(client, tech)
    assert article["status"] == "draft"
    assert article["excerpt"].startswith("Open the OLIBS admin console")

    # drafts are not counted
    r = client.get(f"/api/knowledge-base/articles/{article['id']}", headers=auth_headers(tech)).json()
    assert r["view_count"] == 0
    assert client.get("/api/knowledge-base/articles").json()["total"] == 0

    published = client.post(f"/api/knowledge-base/articles/{article['id']}/publish", headers=auth_headers(tech)).json()
    assert published["status"] == "published"
    assert published["published_at"] is not None

    client.get(f"/api/knowledge-base/articles/{article['id']}")
    r = client.get(f"/api/knowledge-base/articles/{article['id']}", headers=auth_headers(tech)).json()
    assert r["view_count"] == 2

    popular = client.get("/api/knowledge-base/articles/popular").json()
    assert [a["id"] for a in popular] == [article["id"]]

    archived = client.post(f"/api/knowledge-base/articles/{article['id']}/archive", headers=auth_headers(tech)).json()
    assert archived["status"] == "archived"
    assert client.get("/api/knowledge-base/articles/recent").json() == []


def test_search_by_text_and_tags(client, factory):
    tech = factory.user(role="technician")
    first = _article(client, tech)
    second = _article(
        client,
        tech,
        title="VPN client setup",
        content="Install the VPN client and import the profile.",
        tags=["vpn", "network"],
    )
    for a in (first, second):
        client.post(f"/api/knowledge-base/articles/{a['id']}/publish", headers=auth_headers(tech))

    r = client.get("/api/knowledge-base/articles?query=vpn").json()
    assert [a["id"] for a in r["articles"]] == [second["id"]]

    r = client.get("/api/knowledge-base/articles?tags=olibs&tags=PASSWORD").json()
    assert [a["id"] for a in r["articles"]] == [first["id"]]
    assert r["has_more"] is False

    r = client.get("/api/knowledge-base/articles?tags=olibs&tags=vpn").json()
    assert r["total"] == 0

    r = client.get("/api/knowledge-base/articles?limit=1").json()
    assert r["total"] == 2
    assert r["has_more"] is True

    drafts = client.get("/api/knowledge-base/articles?status=draft", headers=auth_headers(tech)).json()
    assert drafts["total"] == 0


def test_update_recomputes_excerpt(client, factory):
    tech = factory.user(role="technician")
    article = _article(client, tech)
    r = client.put(
        f"/api/knowledge-base/articles/{article['id']}",
        json={"content": "Short body."},
        headers=auth_headers(tech),
    ).json()
    assert r["excerpt"] == "Short body."
    assert r["editor_id"] == tech.id

    r = client.put(f"/api/knowledge-base/articles/{article['id']}", json={"category_id": 999}, headers=auth_headers(tech))
    assert r.status_code == 400


def test_feedback_once_per_user_and_per_anonymous_ip(client, factory):
    tech = factory.user(role="technician")
    reader = factory.user()
    article = _article(client, tech)
    url = f"/api/knowledge-base/articles/{article['id']}/feedback"

    r = client.post(url, json={"is_helpful": True}, headers=auth_headers(reader))
    assert r.json()["helpful_count"] == 1
    assert client.post(url, json={"is_helpful": False}, headers=auth_headers(reader)).status_code == 409

    r = client.post(url, json={"is_helpful": False, "comment": "Outdated screenshots"})
    assert r.json()["not_helpful_count"] == 1
    assert client.post(url, json={"is_helpful": True}).status_code == 409


def test_links_between_articles_and_tickets(client, factory):
    dept = factory.department()
    tech = factory.user(role="technician", department=dept)
    requester = factory.user(department=dept)
    item = factory.item(factory.catalog(dept))
    ticket_id = client.post(
        "/api/v2/tickets",
        json={"title": "Forgot password", "description": "OLIBS", "service_item_id": item.id},
        headers=auth_headers(requester),
    ).json()["ticket"]["id"]
    article = _article(client, tech)

    link = {"article_id": article["id"], "ticket_id": ticket_id, "link_type": "solution"}
    r = client.post("/api/knowledge-base/links", json=link, headers=auth_headers(tech))
    assert r.status_code == 201
    assert r.json()["article"]["id"] == article["id"]
    assert client.post("/api/knowledge-base/links", json=link, headers=auth_headers(tech)).status_code == 409

    r = client.get(f"/api/knowledge-base/tickets/{ticket_id}/articles", headers=auth_headers(requester)).json()
    assert [(x["article_id"], x["link_type"]) for x in r] == [(article["id"], "solution")]


def test_category_tree_and_analytics(client, factory):
    tech = factory.user(role="technician")
    root = client.post("/api/knowledge-base/categories", json={"name": "Core Banking"}, headers=auth_headers(tech)).json()
    child = client.post(
        "/api/knowledge-base/categories",
        json={"name": "OLIBS", "parent_id": root["id"]},
        headers=auth_headers(tech),
    ).json()
    article = _article(client, tech, category_id=child["id"])
    client.post(f"/api/knowledge-base/articles/{article['id']}/publish", headers=auth_headers(tech))

    tree = client.get("/api/knowledge-base/categories").json()
    assert [n["name"] for n in tree] == ["Core Banking"]
    assert tree[0]["children"][0]["name"] == "OLIBS"
    assert tree[0]["children"][0]["article_count"] == 1

    detail = client.get(f"/api/knowledge-base/categories/{child['id']}").json()
    assert [a["id"] for a in detail["articles"]] == [article["id"]]

    client.get(f"/api/knowledge-base/articles/{article['id']}")
    stats = client.get("/api/knowledge-base/analytics?days=7", headers=auth_headers(tech)).json()
    assert stats["published_articles"] == 1
    assert stats["total_views"] == 1
    assert stats["recent_views"] == 1
    assert {c["name"]: c["article_count"] for c in stats["category_stats"]} == {"Core Banking": 0, "OLIBS": 1}


def test_bm25_suggestions_need_a_shared_term(db_session, client, factory):
    tech = factory.user(role="technician")
    password = _article(client, tech)
    vpn = _article(client, tech, title="VPN client setup", content="Install the VPN client.", tags=["vpn"])
    _article(client, tech, title="Printer drivers", content="Download printer drivers.", tags=["printer"])
    for a in (password, vpn):
        client.post(f"/api/knowledge-base/articles/{a['id']}/publish", headers=auth_headers(tech))

    results = suggest_articles_for_ticket(db_session, "Teller password locked", "cannot reset my password")
    assert [a.id for a in results] == [password["id"]]

    # the printer article is still a draft
    assert suggest_articles_for_ticket(db_session, "printer drivers", "") == []
    assert suggest_articles_for_ticket(db_session, "a b", "") == []

    r = client.post(
        "/api/knowledge-base/suggestions",
        json={"title": "VPN profile", "description": "client will not connect"},
        headers=auth_headers(tech),
    )
    assert [a["id"] for a in r.json()] == [vpn["id"]]


def test_unpublished_articles_are_hidden_from_readers(client, factory):
    tech = factory.user(role="technician")
    reader = factory.user()
    draft = _article(client, tech, title="Internal runbook", content="Failover steps for the core switch.")

    assert client.get("/api/knowledge-base/articles?status=draft").status_code == 403
    assert client.get("/api/knowledge-base/articles?status=archived", headers=auth_headers(reader)).status_code == 403
    r = client.get("/api/knowledge-base/articles?status=draft", headers=auth_headers(tech)).json()
    assert [a["title"] for a in r["articles"]] == ["Internal runbook"]

    assert client.get(f"/api/knowledge-base/articles/{draft['id']}").status_code == 404
    assert client.get(f"/api/knowledge-base/articles/{draft['id']}", headers=auth_headers(reader)).status_code == 404
    assert client.get(f"/api/knowledge-base/articles/{draft['id']}", headers=auth_headers(tech)).json()["status"] == "draft"

    client.post(f"/api/knowledge-base/articles/{draft['id']}/publish", headers=auth_headers(tech))
    r = client.get(f"/api/knowledge-base/articles/{draft['id']}")
    assert r.status_code == 200
    assert r.json()["view_count"] == 1
