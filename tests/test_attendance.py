from datetime import datetime

import pytest

from app.api.v1 import attendance
from conftest import auth


@pytest.fixture
def clock(monkeypatch):
    now = {"value": datetime(2024, 3, 4, 9, 50)}
    monkeypatch.setattr(attendance, "local_now", lambda: now["value"])
    return now


def test_clock_in_and_out(client, clock, alice):
    r = client.post("/api/v1/attendance/clock-in", headers=auth(alice))
    assert r.status_code == 200
    assert r.json()["date"] == "2024-03-04"
    assert r.json()["login_time"].startswith("2024-03-04T09:50")
    assert r.json()["status"] == "present"

    clock["value"] = datetime(2024, 3, 4, 18, 40)
    r = client.post("/api/v1/attendance/clock-out", headers=auth(alice))
    assert r.status_code == 200
    assert r.json()["logout_time"].startswith("2024-03-04T18:40")
    assert r.json()["login_time"].startswith("2024-03-04T09:50")


def test_second_clock_in_keeps_first_login(client, clock, alice):
    client.post("/api/v1/attendance/clock-in", headers=auth(alice))
    clock["value"] = datetime(2024, 3, 4, 11, 0)
    r = client.post("/api/v1/attendance/clock-in", headers=auth(alice))
    assert r.json()["login_time"].startswith("2024-03-04T09:50")


def test_clock_out_without_clock_in(client, clock, alice):
    assert client.post("/api/v1/attendance/clock-out", headers=auth(alice)).status_code == 404


def test_mark_requires_approver(client, alice, bob):
    body = {"user_id": str(bob["_id"]), "date": "2024-03-04", "login_time": "09:00"}
    assert client.post("/api/v1/attendance/mark", json=body, headers=auth(alice)).status_code == 403


def test_mark_upserts_one_row_per_day(client, admin, alice):
    body = {"user_id": str(alice["_id"]), "date": "2024-03-04", "login_time": "09:00", "logout_time": "17:00"}
    first = client.post("/api/v1/attendance/mark", json=body, headers=auth(admin))
    assert first.status_code == 201
    body.update({"logout_time": "19:00"})
    second = client.post("/api/v1/attendance/mark", json=body, headers=auth(admin))
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["logout_time"].startswith("2024-03-04T19:00")
    assert second.json()["marked_by"] == str(admin["_id"])


def test_mark_validates_times_and_user(client, admin, alice):
    bad_time = {"user_id": str(alice["_id"]), "date": "2024-03-04", "login_time": "9am"}
    assert client.post("/api/v1/attendance/mark", json=bad_time, headers=auth(admin)).status_code == 422
    out_of_range = {"user_id": str(alice["_id"]), "date": "2024-03-04", "login_time": "26:00"}
    assert client.post("/api/v1/attendance/mark", json=out_of_range, headers=auth(admin)).status_code == 400
    unknown = {"user_id": "65f000000000000000000000", "date": "2024-03-04"}
    assert client.post("/api/v1/attendance/mark", json=unknown, headers=auth(admin)).status_code == 404


def mark(client, who, user, day, login):
    body = {"user_id": str(user["_id"]), "date": day, "login_time": login}
    return client.post("/api/v1/attendance/mark", json=body, headers=auth(who)).json()["id"]


def test_history_is_scoped_and_ordered(client, admin, alice, bob):
    mark(client, admin, alice, "2024-03-04", "09:00")
    mark(client, admin, alice, "2024-03-05", "09:30")
    mark(client, admin, bob, "2024-03-05", "10:00")

    mine = client.get("/api/v1/attendance/history", params={"user_id": str(bob["_id"])}, headers=auth(alice)).json()
    assert [r["date"] for r in mine] == ["2024-03-05", "2024-03-04"]
    assert {r["user_id"] for r in mine} == {str(alice["_id"])}

    everyone = client.get("/api/v1/attendance/history", headers=auth(admin)).json()
    assert [(r["date"], r["user_name"]) for r in everyone] == [
        ("2024-03-05", "bob"),
        ("2024-03-05", "alice"),
        ("2024-03-04", "alice"),
    ]

    ranged = client.get(
        "/api/v1/attendance/history",
        params={"start_date": "2024-03-05", "end_date": "2024-03-05"},
        headers=auth(admin),
    ).json()
    assert len(ranged) == 2


def test_only_sysadmin_edits_or_deletes(client, sysadmin, admin, alice):
    att_id = mark(client, admin, alice, "2024-03-04", "09:00")
    body = {"login_time": "08:45", "logout_time": "17:15", "status": "half_day"}
    assert client.put(f"/api/v1/attendance/{att_id}", json=body, headers=auth(admin)).status_code == 403
    r = client.put(f"/api/v1/attendance/{att_id}", json=body, headers=auth(sysadmin))
    assert r.status_code == 200
    assert r.json()["status"] == "half_day"
    assert r.json()["login_time"].startswith("2024-03-04T08:45")

    assert client.delete(f"/api/v1/attendance/{att_id}", headers=auth(admin)).status_code == 403
    assert client.delete(f"/api/v1/attendance/{att_id}", headers=auth(sysadmin)).status_code == 200
    assert client.delete(f"/api/v1/attendance/{att_id}", headers=auth(sysadmin)).status_code == 404
