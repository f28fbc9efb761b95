import datetime as dt

import pytest

from bsg_helpdesk.models.ticket import Ticket
from bsg_helpdesk.services.sla_service import (
    add_business_hours,
    sla_due_for_priority,
    sla_hours_for_impact,
)
from tests.conftest import auth_headers

WEEKDAYS = {day: (dt.time(8, 0), dt.time(17, 0)) for day in range(5)}
WEEK_PAYLOAD = {
    "days": [{"day_of_week": day, "start_time": "08:00:00", "end_time": "17:00:00"} for day in range(5)]
}


def test_sla_tables():
    assert [sla_hours_for_impact(i, False) for i in ("critical", "high", "medium", "low")] == [2, 4, 8, 24]
    assert [sla_hours_for_impact(i, True) for i in ("critical", "high", "medium", "low")] == [8, 24, 48, 72]
    start = dt.datetime(2024, 3, 1, 12, 0)
    assert sla_due_for_priority("urgent", start) == dt.datetime(2024, 3, 1, 16, 0)
    assert sla_due_for_priority("low", start) == dt.datetime(2024, 3, 8, 12, 0)


def test_continuous_clock_without_windows():
    start = dt.datetime(2024, 3, 2, 22, 0)
    assert add_business_hours(start, 4) == dt.datetime(2024, 3, 3, 2, 0)
    assert add_business_hours(start, 0, WEEKDAYS) == start


@pytest.mark.parametrize(
    "start, hours, expected",
    [
        # Friday afternoon rolls over the weekend
        (dt.datetime(2024, 3, 1, 16, 0), 4, dt.datetime(2024, 3, 4, 11, 0)),
        # before opening time the clock starts at 08:00
        (dt.datetime(2024, 3, 4, 6, 0), 2, dt.datetime(2024, 3, 4, 10, 0)),
        # after closing time the next working day is used
        (dt.datetime(2024, 3, 4, 18, 30), 1, dt.datetime(2024, 3, 5, 9, 0)),
        # exactly one full day
        (dt.datetime(2024, 3, 5, 8, 0), 9, dt.datetime(2024, 3, 5, 17, 0)),
    ],
)
def test_business_hours_windows(start, hours, expected):
    assert add_business_hours(start, hours, WEEKDAYS) == expected


def test_holidays_contribute_no_time():
    start = dt.datetime(2024, 3, 1, 16, 0)
    assert add_business_hours(start, 4, WEEKDAYS, {dt.date(2024, 3, 4)}) == dt.datetime(2024, 3, 5, 11, 0)


def test_business_hours_admin_endpoints(client, factory):
    dept = factory.department()
    admin = factory.user(role="admin")
    user = factory.user(department=dept)

    assert client.put(f"/api/sla/business-hours/{dept.id}", json=WEEK_PAYLOAD, headers=auth_headers(user)).status_code == 403
    r = client.put(f"/api/sla/business-hours/{dept.id}", json=WEEK_PAYLOAD, headers=auth_headers(admin))
    assert r.status_code == 200
    assert [d["day_of_week"] for d in r.json()] == [0, 1, 2, 3, 4]

    dup = {"days": [WEEK_PAYLOAD["days"][0], WEEK_PAYLOAD["days"][0]]}
    r = client.put(f"/api/sla/business-hours/{dept.id}", json=dup, headers=auth_headers(admin))
    assert r.status_code == 400
    assert r.json()["detail"] == "Each weekday may appear only once."

    backwards = {"days": [{"day_of_week": 5, "start_time": "17:00:00", "end_time": "08:00:00"}]}
    assert client.put(f"/api/sla/business-hours/{dept.id}", json=backwards, headers=auth_headers(admin)).status_code == 422

    r = client.get(f"/api/sla/business-hours/{dept.id}", headers=auth_headers(user))
    assert len(r.json()) == 5
    assert client.get("/api/sla/business-hours/999", headers=auth_headers(user)).status_code == 404


def test_holiday_endpoints(client, factory):
    dept = factory.department()
    other = factory.department()
    admin = factory.user(role="admin")

    national = client.post("/api/sla/holidays", json={"date": "2024-08-17", "name": "Independence Day"}, headers=auth_headers(admin))
    assert national.status_code == 201
    client.post(
        "/api/sla/holidays",
        json={"date": "2024-09-14", "name": "Regional anniversary", "department_id": other.id},
        headers=auth_headers(admin),
    )

    r = client.get(f"/api/sla/holidays?department_id={dept.id}", headers=auth_headers(admin)).json()
    assert [h["name"] for h in r] == ["Independence Day"]
    assert len(client.get("/api/sla/holidays", headers=auth_headers(admin)).json()) == 2

    holiday_id = national.json()["id"]
    assert client.delete(f"/api/sla/holidays/{holiday_id}", headers=auth_headers(admin)).status_code == 200
    assert client.delete(f"/api/sla/holidays/{holiday_id}", headers=auth_headers(admin)).status_code == 404


def test_calculate_uses_department_calendar(client, factory):
    dept = factory.department(department_type="business")
    admin = factory.user(role="admin")
    client.put(f"/api/sla/business-hours/{dept.id}", json=WEEK_PAYLOAD, headers=auth_headers(admin))
    client.post(
        "/api/sla/holidays",
        json={"date": "2024-03-04", "name": "Bank holiday", "department_id": dept.id},
        headers=auth_headers(admin),
    )

    r = client.post(
        "/api/sla/calculate",
        json={"business_impact": "critical", "department_id": dept.id, "start": "2024-03-01T16:00:00"},
        headers=auth_headers(admin),
    ).json()
    assert r["sla_hours"] == 8
    assert r["business_hours_applied"] is True
    assert r["due_date"] == "2024-03-05T15:00:00"


def test_calculate_without_department_converts_timezone(client, factory):
    user = factory.user()
    r = client.post(
        "/api/sla/calculate",
        json={"business_impact": "high", "start": "2024-03-01T16:00:00+07:00"},
        headers=auth_headers(user),
    ).json()
    assert r["start"] == "2024-03-01T09:00:00"
    assert r["due_date"] == "2024-03-01T13:00:00"
    assert r["business_hours_applied"] is False

    r = client.post("/api/sla/calculate", json={"is_kasda": True, "business_impact": "high"}, headers=auth_headers(user)).json()
    assert r["sla_hours"] == 24


def test_ticket_sla_status(client, factory, db_session):
    dept = factory.department()
    user = factory.user(department=dept)
    item = factory.item(factory.catalog(dept))
    ticket_id = client.post(
        "/api/v2/tickets",
        json={"title": "Slow branch link", "description": "Branch 12", "service_item_id": item.id, "business_impact": "low"},
        headers=auth_headers(user),
    ).json()["ticket"]["id"]

    r = client.get(f"/api/sla/tickets/{ticket_id}/status", headers=auth_headers(user)).json()
    assert r["is_breached"] is False
    assert 23 * 60 < r["remaining_minutes"] <= 24 * 60

    ticket = db_session.query(Ticket).filter(Ticket.id == ticket_id).first()
    ticket.sla_due_date = ticket.sla_due_date - dt.timedelta(days=2)
    db_session.commit()

    r = client.get(f"/api/sla/tickets/{ticket_id}/status", headers=auth_headers(user)).json()
    assert r["is_breached"] is True
    assert r["remaining_minutes"] < 0
