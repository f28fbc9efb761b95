import pytest

from bsg_helpdesk.models.cmdb import CIAttributeValue
from tests.conftest import auth_headers


@pytest.fixture
def people(factory):
    dept = factory.department()
    return {
        "dept": dept,
        "admin": factory.user(role="admin"),
        "manager": factory.user(role="manager", department=dept),
        "tech": factory.user(role="technician", department=dept),
        "requester": factory.user(department=dept),
    }


@pytest.fixture
def server_type(client, people):
    r = client.post(
        "/api/cmdb/ci-types",
        json={
            "name": "Server",
            "category": "infrastructure",
            "attributes": [
                {"name": "rack", "display_name": "Rack position", "is_required": True},
                {"name": "cpu", "display_name": "CPU cores", "attribute_type": "number", "sort_order": 1},
            ],
        },
        headers=auth_headers(people["admin"]),
    )
    assert r.status_code == 201
    return r.json()


def _attr(ci_type, name):
    return next(a for a in ci_type["attributes"] if a["name"] == name)


def _ci(client, user, ci_type, name, rack="R1-U4", **extra):
    body = {
        "name": name,
        "ci_type_id": ci_type["id"],
        "attribute_values": [{"attribute_id": _attr(ci_type, "rack")["id"], "value": rack}],
        **extra,
    }
    r = client.post("/api/cmdb/cis", json=body, headers=auth_headers(user))
    assert r.status_code == 201, r.json()
    return r.json()


def test_ci_types_carry_attributes_and_counts(client, people, server_type):
    assert [a["name"] for a in server_type["attributes"]] == ["rack", "cpu"]

    denied = client.post("/api/cmdb/ci-types", json={"name": "Router", "category": "network"}, headers=auth_headers(people["tech"]))
    assert denied.status_code == 403
    dup = client.post("/api/cmdb/ci-types", json={"name": "Server", "category": "infrastructure"}, headers=auth_headers(people["admin"]))
    assert dup.status_code == 409

    _ci(client, people["tech"], server_type, "core-banking-db")
    client.post("/api/cmdb/ci-types", json={"name": "Router", "category": "network"}, headers=auth_headers(people["admin"]))

    types = client.get("/api/cmdb/ci-types", headers=auth_headers(people["requester"])).json()
    assert [(t["name"], t["ci_count"]) for t in types] == [("Router", 0), ("Server", 1)]
    types = client.get("/api/cmdb/ci-types?category=network", headers=auth_headers(people["requester"])).json()
    assert [t["name"] for t in types] == ["Router"]


def test_create_ci_checks_attributes_and_numbers_ids(client, people, server_type):
    tech = people["tech"]
    url = "/api/cmdb/cis"

    r = client.post(url, json={"name": "db01", "ci_type_id": server_type["id"]}, headers=auth_headers(tech))
    assert r.status_code == 400
    assert r.json()["detail"] == "Attribute 'Rack position' is required."

    r = client.post(
        url,
        json={
            "name": "db01",
            "ci_type_id": server_type["id"],
            "attribute_values": [{"attribute_id": 999, "value": "x"}, {"attribute_id": _attr(server_type, "rack")["id"], "value": "R2"}],
        },
        headers=auth_headers(tech),
    )
    assert r.status_code == 400
    assert r.json()["errors"] == ["Attribute 999 does not belong to CI type 'Server'."]

    assert client.post(url, json={"name": "db01", "ci_type_id": 999}, headers=auth_headers(tech)).json()["detail"] == "CI type not found."
    denied = client.post(url, json={"name": "db01", "ci_type_id": server_type["id"]}, headers=auth_headers(people["requester"]))
    assert denied.status_code == 403

    first = _ci(client, tech, server_type, "db01", hostname="db01.bsg.local")
    second = _ci(client, tech, server_type, "db02")
    assert (first["ci_id"], second["ci_id"]) == ("CI-000001", "CI-000002")
    assert first["status"] == "active"
    assert first["business_criticality"] == "medium"
    assert [v["value"] for v in first["attribute_values"]] == ["R1-U4"]


def test_update_replaces_attribute_values(client, db_session, people, server_type):
    ci = _ci(client, people["tech"], server_type, "app01")
    cpu, rack = _attr(server_type, "cpu"), _attr(server_type, "rack")

    r = client.put(
        f"/api/cmdb/cis/{ci['id']}",
        json={
            "status": "maintenance",
            "attribute_values": [{"attribute_id": rack["id"], "value": "R9-U1"}, {"attribute_id": cpu["id"], "value": "16"}],
        },
        headers=auth_headers(people["tech"]),
    )
    assert r.status_code == 200
    assert r.json()["status"] == "maintenance"
    assert sorted(v["value"] for v in r.json()["attribute_values"]) == ["16", "R9-U1"]
    assert db_session.query(CIAttributeValue).count() == 2

    r = client.put(f"/api/cmdb/cis/{ci['id']}", json={"attribute_values": []}, headers=auth_headers(people["tech"]))
    assert r.status_code == 400
    assert client.put("/api/cmdb/cis/999", json={"name": "x"}, headers=auth_headers(people["tech"])).status_code == 404


def test_search_and_filters(client, people, server_type):
    tech = people["tech"]
    _ci(client, tech, server_type, "core-banking-db", environment="production", business_criticality="critical", ip_address="10.1.0.5")
    _ci(client, tech, server_type, "test-db", environment="test")

    def names(query):
        body = client.get(f"/api/cmdb/cis{query}", headers=auth_headers(people["requester"])).json()
        return sorted(c["name"] for c in body["cis"])

    assert names("") == ["core-banking-db", "test-db"]
    assert names("?search=10.1.0") == ["core-banking-db"]
    assert names("?environment=test") == ["test-db"]
    assert names("?business_criticality=critical") == ["core-banking-db"]
    assert names("?search=CI-000002") == ["test-db"]

    detail = client.get("/api/cmdb/cis/999", headers=auth_headers(people["requester"]))
    assert detail.status_code == 404
    assert detail.json()["detail"] == "Configuration item not found"


def test_relationship_map(client, people, server_type):
    tech = people["tech"]
    host = _ci(client, tech, server_type, "vm-host-01")
    app = _ci(client, tech, server_type, "olibs-app")
    database = _ci(client, tech, server_type, "olibs-db")
    url = "/api/cmdb/cis/{}/relationships"

    r = client.post(url.format(host["id"]), json={"child_ci_id": app["id"], "relationship_type": "hosted_on"}, headers=auth_headers(tech))
    assert r.status_code == 201
    assert r.json()["child"]["name"] == "olibs-app"
    client.post(url.format(app["id"]), json={"child_ci_id": database["id"], "relationship_type": "uses"}, headers=auth_headers(tech))

    dup = client.post(url.format(host["id"]), json={"child_ci_id": app["id"], "relationship_type": "hosted_on"}, headers=auth_headers(tech))
    assert dup.status_code == 400
    assert dup.json()["detail"] == "Relationship already exists"
    self_link = client.post(url.format(host["id"]), json={"child_ci_id": host["id"], "relationship_type": "uses"}, headers=auth_headers(tech))
    assert self_link.status_code == 400

    rel_map = client.get(url.format(app["id"]), headers=auth_headers(people["requester"])).json()
    assert [r["parent"]["name"] for r in rel_map["dependencies"]] == ["vm-host-01"]
    assert [r["child"]["name"] for r in rel_map["dependents"]] == ["olibs-db"]

    detail = client.get(f"/api/cmdb/cis/{app['id']}", headers=auth_headers(tech)).json()
    assert (detail["dependency_count"], detail["dependent_count"]) == (1, 1)
    assert detail["ci_type"]["name"] == "Server"


def test_incident_link_and_change_approval(client, factory, people, server_type):
    tech, manager = people["tech"], people["manager"]
    item = factory.item(factory.catalog(people["dept"]))
    ticket_id = client.post(
        "/api/v2/tickets",
        json={"title": "OLIBS down", "description": "Teller cannot log in", "service_item_id": item.id},
        headers=auth_headers(people["requester"]),
    ).json()["ticket"]["id"]
    ci = _ci(client, tech, server_type, "olibs-app")

    r = client.post(f"/api/cmdb/cis/{ci['id']}/incidents", json={"ticket_id": ticket_id}, headers=auth_headers(tech))
    assert r.status_code == 201
    assert r.json()["impact"] == "low"
    again = client.post(f"/api/cmdb/cis/{ci['id']}/incidents", json={"ticket_id": ticket_id, "impact": "high"}, headers=auth_headers(tech))
    assert again.status_code == 400
    assert again.json()["detail"] == "CI is already linked to this incident"
    assert client.post(f"/api/cmdb/cis/{ci['id']}/incidents", json={"ticket_id": 999}, headers=auth_headers(tech)).status_code == 404

    change = client.post(
        f"/api/cmdb/cis/{ci['id']}/changes",
        json={"change_type": "patch", "change_description": "Apply OLIBS 7.2 hotfix", "impact": "medium"},
        headers=auth_headers(tech),
    ).json()
    assert change["status"] == "planning"
    assert change["requested_by_user_id"] == tech.id

    url = f"/api/cmdb/changes/{change['id']}/approve"
    assert client.put(url, headers=auth_headers(tech)).status_code == 403
    r = client.put(url, headers=auth_headers(manager))
    assert r.status_code == 200
    assert r.json()["status"] == "approved"
    assert r.json()["approved_by_user_id"] == manager.id
    assert r.json()["approved_at"] is not None

    again = client.put(url, headers=auth_headers(manager))
    assert again.status_code == 400
    assert again.json()["detail"] == "Change request is not in planning status"
    assert client.put("/api/cmdb/changes/999/approve", headers=auth_headers(manager)).status_code == 404


def test_dashboard_counts_and_alerts(client, factory, people, server_type):
    tech = people["tech"]
    item = factory.item(factory.catalog(people["dept"]))
    ticket_id = client.post(
        "/api/v2/tickets",
        json={"title": "Switch flapping", "description": "Floor 3", "service_item_id": item.id},
        headers=auth_headers(people["requester"]),
    ).json()["ticket"]["id"]
    prod = _ci(client, tech, server_type, "prod-app", environment="production")
    broken = _ci(client, tech, server_type, "old-switch", status="failed")
    client.post(f"/api/cmdb/cis/{prod['id']}/relationships", json={"child_ci_id": broken["id"], "relationship_type": "connects_to"}, headers=auth_headers(tech))
    client.post(f"/api/cmdb/cis/{broken['id']}/incidents", json={"ticket_id": ticket_id}, headers=auth_headers(tech))
    client.post(f"/api/cmdb/cis/{broken['id']}/changes", json={"change_type": "replace", "change_description": "Swap switch"}, headers=auth_headers(tech))

    assert client.get("/api/cmdb/dashboard", headers=auth_headers(people["requester"])).status_code == 403
    dash = client.get("/api/cmdb/dashboard", headers=auth_headers(tech)).json()
    assert dash["total_cis"] == 2
    assert dash["by_type"] == [{"ci_type_id": server_type["id"], "type_name": "Server", "count": 2}]
    assert dash["by_status"] == {"active": 1, "failed": 1}
    assert dash["by_environment"] == {"production": 1, "unknown": 1}
    assert dash["relationship_stats"] == {"connects_to": 1}
    assert len(dash["recent_changes"]) == 1
    assert [i["ticket_id"] for i in dash["active_incidents"]] == [ticket_id]
    assert dash["alerts"] == {"pending_changes": 1, "active_incidents": 1, "failed_cis": 1}
