import pytest

from bsg_helpdesk.models.bsg_template import (
    BSGFieldOption,
    BSGFieldType,
    BSGMasterData,
    BSGTemplate,
    BSGTemplateCategory,
    BSGTemplateField,
    BSGTemplateUsageLog,
)
from tests.conftest import auth_headers


@pytest.fixture
def olibs_template(db_session):
    category = BSGTemplateCategory(name="olibs", display_name="OLIBS")
    db_session.add(category)
    db_session.flush()

    text = BSGFieldType(name="text", display_name="Text")
    dropdown = BSGFieldType(name="dropdown", display_name="Dropdown", html_input_type="select")
    branch = BSGFieldType(name="dropdown_branch", display_name="Branch", html_input_type="select")
    db_session.add_all([text, dropdown, branch])
    db_session.flush()

    template = BSGTemplate(category_id=category.id, template_number=1, name="OLIBS - Perubahan Menu", description="Change menu access")
    other = BSGTemplate(category_id=category.id, template_number=2, name="OLIBS - Reset Password")
    db_session.add_all([template, other])
    db_session.flush()

    action = BSGTemplateField(
        template_id=template.id,
        field_type_id=dropdown.id,
        field_name="action",
        field_label="Action",
        is_required=True,
        sort_order=1,
    )
    action.options = [
        BSGFieldOption(option_value="add", option_label="Add"),
        BSGFieldOption(option_value="remove", option_label="Remove", sort_order=1),
    ]
    reason = BSGTemplateField(
        template_id=template.id,
        field_type_id=text.id,
        field_name="removal_reason",
        field_label="Removal reason",
        is_required=True,
        sort_order=2,
        show_when={"field": "action", "equals": "remove"},
    )
    branch_field = BSGTemplateField(
        template_id=template.id,
        field_type_id=branch.id,
        field_name="branch",
        field_label="Branch",
        sort_order=3,
    )
    db_session.add_all([action, reason, branch_field])

    head_office = BSGMasterData(data_type="branch", code="KP", name="Kantor Pusat")
    db_session.add(head_office)
    db_session.flush()
    db_session.add_all(
        [
            BSGMasterData(data_type="branch", code="KC01", name="Kantor Cabang Manado", parent_id=head_office.id),
            BSGMasterData(data_type="branch", code="KC99", name="Closed Branch", is_active=False),
            BSGMasterData(data_type="olibs_menu", code="M1", name="Teller"),
        ]
    )
    db_session.commit()
    return template


def test_categories_count_active_templates(client, factory, olibs_template):
    user = factory.user()
    r = client.get("/api/bsg-templates/categories", headers=auth_headers(user))
    assert r.status_code == 200
    assert [(c["name"], c["template_count"]) for c in r.json()] == [("olibs", 2)]


def test_template_search_and_detail(client, factory, olibs_template):
    user = factory.user()
    r = client.get("/api/bsg-templates/templates?search=reset", headers=auth_headers(user)).json()
    assert r["success"] is True
    assert r["total"] == 1
    assert r["data"][0]["name"] == "OLIBS - Reset Password"
    assert r["data"][0]["category"]["name"] == "olibs"

    r = client.get(f"/api/bsg-templates/templates/{olibs_template.id}", headers=auth_headers(user))
    assert r.status_code == 200
    assert client.get("/api/bsg-templates/templates/999", headers=auth_headers(user)).status_code == 404


def test_fields_include_options_and_master_data(client, factory, olibs_template):
    user = factory.user()
    r = client.get(f"/api/bsg-templates/templates/{olibs_template.id}/fields", headers=auth_headers(user))
    fields = r.json()["data"]
    assert [f["field_name"] for f in fields] == ["action", "removal_reason", "branch"]
    assert [o["value"] for o in fields[0]["options"]] == ["add", "remove"]
    assert fields[1]["show_when"] == {"field": "action", "equals": "remove"}
    assert [m["code"] for m in fields[2]["master_data"]] == ["KC01", "KP"]


def test_master_data_filters(client, factory, olibs_template):
    user = factory.user()
    r = client.get("/api/bsg-templates/master-data/branch", headers=auth_headers(user)).json()
    assert {m["code"] for m in r} == {"KP", "KC01"}

    r = client.get("/api/bsg-templates/master-data/branch?search=manado", headers=auth_headers(user)).json()
    assert [m["code"] for m in r] == ["KC01"]

    parent = client.get("/api/bsg-templates/master-data/branch?search=KP", headers=auth_headers(user)).json()[0]
    r = client.get(f"/api/bsg-templates/master-data/branch?parent_id={parent['id']}", headers=auth_headers(user)).json()
    assert [m["code"] for m in r] == ["KC01"]


def test_conditional_field_only_required_when_shown(client, factory, olibs_template):
    user = factory.user()
    url = f"/api/bsg-templates/templates/{olibs_template.id}/validate"

    r = client.post(url, json={"values": {"action": "add", "removal_reason": "ignored"}}, headers=auth_headers(user)).json()
    assert r["valid"] is True
    assert r["values"] == {"action": "add"}

    r = client.post(url, json={"values": {"action": "remove"}}, headers=auth_headers(user)).json()
    assert r["valid"] is False
    assert r["errors"] == ["Field 'Removal reason' is required."]


def test_field_behind_hidden_field_stays_hidden(client, factory, db_session, olibs_template):
    text = db_session.query(BSGFieldType).filter(BSGFieldType.name == "text").first()
    db_session.add(
        BSGTemplateField(
            template_id=olibs_template.id,
            field_type_id=text.id,
            field_name="approver_note",
            field_label="Approver note",
            is_required=True,
            sort_order=4,
            show_when={"field": "removal_reason", "equals": "fraud"},
        )
    )
    db_session.commit()
    user = factory.user()
    url = f"/api/bsg-templates/templates/{olibs_template.id}/validate"

    r = client.post(url, json={"values": {"action": "add", "removal_reason": "fraud"}}, headers=auth_headers(user)).json()
    assert r == {"valid": True, "errors": [], "values": {"action": "add"}}

    r = client.post(url, json={"values": {"action": "remove", "removal_reason": "fraud"}}, headers=auth_headers(user)).json()
    assert r["errors"] == ["Field 'Approver note' is required."]

    r = client.post(
        url,
        json={"values": {"action": "remove", "removal_reason": "fraud", "approver_note": "Signed off by KC01"}},
        headers=auth_headers(user),
    ).json()
    assert r["valid"] is True
    assert r["values"]["approver_note"] == "Signed off by KC01"


def test_validation_reports_unknown_fields_and_bad_master_data(client, factory, olibs_template):
    user = factory.user()
    url = f"/api/bsg-templates/templates/{olibs_template.id}/validate"

    r = client.post(
        url,
        json={"values": {"action": "rename", "branch": "KC99", "colour": "red"}},
        headers=auth_headers(user),
    ).json()
    assert r["valid"] is False
    assert "Unknown field 'colour'." in r["errors"]
    assert "Invalid option 'rename' for field 'Action'." in r["errors"]
    assert "Invalid value 'KC99' for field 'Branch'." in r["errors"]

    r = client.post(url, json={"values": {"action": "add", "branch": "KC01"}}, headers=auth_headers(user)).json()
    assert r["valid"] is True


def test_completed_usage_bumps_popularity(client, factory, db_session, olibs_template):
    user = factory.user()
    url = f"/api/bsg-templates/templates/{olibs_template.id}/usage"

    r = client.post(url, json={"action_type": "viewed"}, headers=auth_headers(user)).json()
    assert r["usage_count"] == 0

    r = client.post(url, json={"action_type": "completed", "completion_time_ms": 5400}, headers=auth_headers(user)).json()
    assert r["usage_count"] == 1
    assert r["popularity_score"] == pytest.approx(0.1)
    assert db_session.query(BSGTemplateUsageLog).count() == 2

    bad = client.post(url, json={"action_type": "shared"}, headers=auth_headers(user))
    assert bad.status_code == 422


def test_service_ticket_stores_bsg_values(client, factory, db_session, olibs_template):
    dept = factory.department()
    user = factory.user(department=dept)
    item = factory.item(factory.catalog(dept))

    r = client.post(
        "/api/v2/tickets",
        json={
            "title": "Add teller menu",
            "description": "New teller",
            "service_item_id": item.id,
            "bsg_template_id": olibs_template.id,
            "bsg_field_values": {"action": "add", "branch": "KP"},
        },
        headers=auth_headers(user),
    )
    assert r.status_code == 201
    ticket = r.json()["ticket"]
    assert ticket["bsg_template_id"] == olibs_template.id
    assert sorted(v["value"] for v in ticket["bsg_field_values"]) == ["KP", "add"]
    db_session.refresh(olibs_template)
    assert olibs_template.usage_count == 1

    r = client.post(
        "/api/v2/tickets",
        json={
            "title": "Remove teller menu",
            "description": "Leaver",
            "service_item_id": item.id,
            "bsg_template_id": olibs_template.id,
            "bsg_field_values": {"action": "remove"},
        },
        headers=auth_headers(user),
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "BSG template validation failed."
    assert r.json()["errors"] == ["Field 'Removal reason' is required."]


def test_master_data_admin_lifecycle(client, factory, olibs_template):
    manager = factory.user(role="manager")
    admin = factory.user(role="admin")
    requester = factory.user()
    url = "/api/bsg-templates/master-data/branch"

    denied = client.post(url, json={"code": "KC02", "name": "Kantor Cabang Bitung"}, headers=auth_headers(requester))
    assert denied.status_code == 403

    parent = client.get(f"{url}?search=KP", headers=auth_headers(manager)).json()[0]
    r = client.post(
        url,
        json={"code": "KC02", "name": "Kantor Cabang Bitung", "parent_id": parent["id"], "metadata": {"region": "north"}},
        headers=auth_headers(manager),
    )
    assert r.status_code == 201
    created = r.json()
    assert created["metadata"] == {"region": "north"}
    assert created["is_active"] is True

    dup = client.post(url, json={"code": "KC02", "name": "Again"}, headers=auth_headers(manager))
    assert dup.status_code == 400
    assert dup.json()["detail"] == "Master data entity with code 'KC02' already exists for type 'branch'"
    # codes are unique per type only
    other_type = client.post(
        "/api/bsg-templates/master-data/olibs_menu", json={"code": "KC02", "name": "Menu"}, headers=auth_headers(manager)
    )
    assert other_type.status_code == 201

    r = client.put(f"{url}/{created['id']}", json={"name": "KC Bitung", "sort_order": 5}, headers=auth_headers(manager))
    assert r.status_code == 200
    assert r.json()["name"] == "KC Bitung"
    assert r.json()["code"] == "KC02"
    assert client.put(f"{url}/{other_type.json()['id']}", json={"name": "x"}, headers=auth_headers(manager)).status_code == 404

    assert client.delete(f"{url}/{created['id']}", headers=auth_headers(manager)).status_code == 403
    r = client.delete(f"{url}/{created['id']}", headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json()["is_active"] is False

    codes = {m["code"] for m in client.get(url, headers=auth_headers(requester)).json()}
    assert codes == {"KP", "KC01"}
    codes = {m["code"] for m in client.get(f"{url}?include_inactive=true", headers=auth_headers(requester)).json()}
    assert codes == {"KP", "KC01", "KC02", "KC99"}


def test_master_data_parent_must_share_type_and_not_loop(client, factory, olibs_template):
    manager = factory.user(role="manager")
    url = "/api/bsg-templates/master-data/branch"
    rows = {m["code"]: m for m in client.get(url, headers=auth_headers(manager)).json()}
    menu = client.get("/api/bsg-templates/master-data/olibs_menu", headers=auth_headers(manager)).json()[0]

    r = client.post(url, json={"name": "Orphan", "parent_id": menu["id"]}, headers=auth_headers(manager))
    assert r.status_code == 400
    assert r.json()["detail"] == f"Parent entity {menu['id']} not found for type 'branch'."

    r = client.put(f"{url}/{rows['KP']['id']}", json={"parent_id": rows["KC01"]["id"]}, headers=auth_headers(manager))
    assert r.status_code == 400
    assert r.json()["detail"] == "An entity cannot be its own ancestor."


def test_master_data_hierarchy_nests_active_children(client, factory, db_session, olibs_template):
    user = factory.user()
    kc01 = db_session.query(BSGMasterData).filter(BSGMasterData.code == "KC01").first()
    db_session.add(BSGMasterData(data_type="branch", code="KCP01", name="Kantor Cabang Pembantu Tomohon", parent_id=kc01.id))
    db_session.commit()

    tree = client.get("/api/bsg-templates/master-data/branch/hierarchy", headers=auth_headers(user)).json()
    assert [n["code"] for n in tree] == ["KP"]
    assert [n["code"] for n in tree[0]["children"]] == ["KC01"]
    assert [n["code"] for n in tree[0]["children"][0]["children"]] == ["KCP01"]
    assert tree[0]["children"][0]["children"][0]["children"] == []


def test_master_data_bulk_import_reports_bad_rows(client, factory, db_session, olibs_template):
    admin = factory.user(role="admin")
    manager = factory.user(role="manager")
    url = "/api/bsg-templates/master-data/branch/bulk-import"

    assert client.post(url, json={"entities": [{"name": "X"}]}, headers=auth_headers(manager)).status_code == 403
    empty = client.post(url, json={"entities": []}, headers=auth_headers(admin))
    assert empty.status_code == 400
    assert empty.json()["detail"] == "Entities array is required and must not be empty"

    r = client.post(
        url,
        json={
            "entities": [
                {"code": "KC10", "name": "Kantor Cabang Gorontalo", "metadata": {"region": "west"}},
                {"code": "KC01", "name": "Already there"},
                {"code": "KC11"},
                {"code": "KC10", "name": "Twice in one file"},
                {"code": "KC12", "name": "Kantor Cabang Jakarta", "sort_order": 2},
            ]
        },
        headers=auth_headers(admin),
    )
    assert r.status_code == 201
    body = r.json()
    assert body["summary"] == {"total": 5, "created": 2, "failed": 3}
    assert [m["code"] for m in body["created"]] == ["KC10", "KC12"]
    assert [(e["index"], e["code"]) for e in body["errors"]] == [(1, "KC01"), (2, "KC11"), (3, "KC10")]
    assert body["errors"][1]["error"] == "Name is required."
    assert db_session.query(BSGMasterData).filter(BSGMasterData.data_type == "branch").count() == 5
