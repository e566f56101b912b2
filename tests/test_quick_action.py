from datetime import datetime, timedelta, timezone

import pytest

from app.core.config import settings
from app.core.security import QuickActionTokenExpired, create_jwt, create_quick_action_token, verify_quick_action_token
from app.schemas.notification_schema import LeaveStatusNotice
from conftest import auth


def submit(client, user, start="2024-03-04", end="2024-03-06"):
    r = client.post(
        "/api/v1/leaves",
        json={"start_date": start, "end_date": end, "category": "annual", "justification": "Family trip"},
        headers=auth(user),
    )
    return r.json()["id"]


def link(leave_id):
    return f"/api/v1/leaves/{leave_id}/quick-action"


def status_of(client, leave_id, viewer):
    return client.get(f"/api/v1/leaves/{leave_id}", headers=auth(viewer)).json()


def test_form_renders_without_mutating(client, notifier, admin, alice):
    leave_id = submit(client, alice)
    before = len(notifier.sent)
    token = create_quick_action_token(leave_id)
    r = client.get(link(leave_id), params={"action": "approved", "token": token})
    assert r.status_code == 200
    assert "text/html" in r.headers["content-type"]
    assert "Approve Leave Request" in r.text
    assert "Alice" in r.text
    assert "04/03/2024" in r.text
    assert status_of(client, leave_id, admin)["status"] == "pending"
    assert len(notifier.sent) == before


def test_reject_form_makes_remarks_required(client, alice):
    leave_id = submit(client, alice)
    r = client.get(link(leave_id), params={"action": "rejected", "token": create_quick_action_token(leave_id)})
    assert r.status_code == 200
    assert "Reject Leave Request" in r.text
    assert "Remarks (Required)" in r.text


def test_unknown_action_is_rejected(client, alice):
    leave_id = submit(client, alice)
    r = client.get(link(leave_id), params={"action": "maybe", "token": create_quick_action_token(leave_id)})
    assert r.status_code == 400


def test_tampered_token_is_refused(client, alice):
    leave_id = submit(client, alice)
    token = create_quick_action_token(leave_id) + "x"
    r = client.get(link(leave_id), params={"action": "approved", "token": token})
    assert r.status_code == 403
    assert "Invalid or expired link" in r.text


def test_token_is_scoped_to_one_request(client, admin, alice):
    a = submit(client, alice)
    b = submit(client, alice, start="2024-05-01", end="2024-05-02")
    token_a = create_quick_action_token(a)
    r = client.post(link(b), data={"action": "approved", "token": token_a})
    assert r.status_code == 403
    assert status_of(client, b, admin)["status"] == "pending"
    assert "Family trip" not in r.text


def test_session_token_is_not_a_link_token(client, alice):
    leave_id = submit(client, alice)
    session = create_jwt({"sub": str(alice["_id"]), "role": "user", "leave_id": leave_id})
    r = client.post(link(leave_id), data={"action": "approved", "token": session})
    assert r.status_code == 403


def test_link_token_is_not_a_session_token(client, alice):
    leave_id = submit(client, alice)
    token = create_quick_action_token(leave_id)
    r = client.get("/api/v1/leaves", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_token_valid_just_before_expiry(client, admin, alice):
    leave_id = submit(client, alice)
    ttl = timedelta(days=settings.QUICK_ACTION_TTL_DAYS)
    issued = datetime.now(timezone.utc) - ttl + timedelta(seconds=60)
    r = client.post(link(leave_id), data={"action": "approved", "token": create_quick_action_token(leave_id, issued)})
    assert r.status_code == 200
    assert status_of(client, leave_id, admin)["status"] == "approved"


def test_expired_token_gets_distinct_page(client, admin, alice):
    leave_id = submit(client, alice)
    ttl = timedelta(days=settings.QUICK_ACTION_TTL_DAYS)
    issued = datetime.now(timezone.utc) - ttl - timedelta(seconds=60)
    token = create_quick_action_token(leave_id, issued)
    for r in (
        client.get(link(leave_id), params={"action": "approved", "token": token}),
        client.post(link(leave_id), data={"action": "approved", "token": token}),
    ):
        assert r.status_code == 403
        assert "This link has expired" in r.text
    assert status_of(client, leave_id, admin)["status"] == "pending"


def test_submit_approves_as_default_approver(client, notifier, sysadmin, admin, alice):
    leave_id = submit(client, alice)
    token = create_quick_action_token(leave_id)
    r = client.post(link(leave_id), data={"action": "approved", "token": token, "end_date": "2024-03-05"})
    assert r.status_code == 200
    assert "Leave Request Approved" in r.text
    assert "2 days" in r.text
    leave = status_of(client, leave_id, admin)
    assert leave["status"] == "approved"
    assert leave["day_count"] == 2
    assert leave["decision"]["approver_id"] == str(sysadmin["_id"])
    [notice] = notifier.of_type(LeaveStatusNotice)
    assert notice.dates_modified
    assert notice.original_days == 3


def test_reject_without_remarks_shows_error(client, admin, alice):
    leave_id = submit(client, alice)
    token = create_quick_action_token(leave_id)
    r = client.post(link(leave_id), data={"action": "rejected", "token": token, "remarks": ""})
    assert r.status_code == 400
    assert "Remarks are required" in r.text
    assert status_of(client, leave_id, admin)["status"] == "pending"


def test_reject_with_remarks(client, admin, alice):
    leave_id = submit(client, alice)
    token = create_quick_action_token(leave_id)
    r = client.post(link(leave_id), data={"action": "rejected", "token": token, "remarks": "Audit week"})
    assert r.status_code == 200
    assert "Leave Request Rejected" in r.text
    assert "Audit week" in r.text
    assert status_of(client, leave_id, admin)["decision"]["remarks"] == "Audit week"


def test_bad_date_shows_error(client, admin, alice):
    leave_id = submit(client, alice)
    token = create_quick_action_token(leave_id)
    r = client.post(link(leave_id), data={"action": "approved", "token": token, "start_date": "04/03/2024"})
    assert r.status_code == 400
    assert status_of(client, leave_id, admin)["status"] == "pending"


def test_resubmitted_link_is_idempotent(client, notifier, admin, alice):
    leave_id = submit(client, alice)
    token = create_quick_action_token(leave_id)
    form = {"action": "approved", "token": token}
    assert client.post(link(leave_id), data=form).status_code == 200
    assert client.post(link(leave_id), data=form).status_code == 200
    assert len(notifier.of_type(LeaveStatusNotice)) == 1


def test_opposite_action_after_decision_conflicts(client, admin, alice):
    leave_id = submit(client, alice)
    token = create_quick_action_token(leave_id)
    client.post(link(leave_id), data={"action": "approved", "token": token})
    r = client.post(link(leave_id), data={"action": "rejected", "token": token, "remarks": "Too late"})
    assert r.status_code == 409
    assert status_of(client, leave_id, admin)["status"] == "approved"


def test_form_flags_already_decided_request(client, alice, admin):
    leave_id = submit(client, alice)
    client.patch(f"/api/v1/leaves/{leave_id}/status", json={"status": "approved"}, headers=auth(admin))
    r = client.get(link(leave_id), params={"action": "approved", "token": create_quick_action_token(leave_id)})
    assert r.status_code == 200
    assert "currently <strong>approved</strong>" in r.text


def test_expiry_boundary_is_exact_to_the_second():
    leave_id = "65f000000000000000000001"
    issued = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)
    expires = issued + timedelta(days=settings.QUICK_ACTION_TTL_DAYS)
    token = create_quick_action_token(leave_id, issued)
    verify_quick_action_token(token, leave_id, now=expires - timedelta(seconds=1))
    with pytest.raises(QuickActionTokenExpired):
        verify_quick_action_token(token, leave_id, now=expires + timedelta(seconds=1))
    with pytest.raises(QuickActionTokenExpired):
        verify_quick_action_token(token, leave_id, now=expires)


def test_form_posts_back_to_its_own_route(client, alice):
    leave_id = submit(client, alice)
    r = client.get(link(leave_id), params={"action": "approved", "token": create_quick_action_token(leave_id)})
    assert f'action="http://testserver/api/v1/leaves/{leave_id}/quick-action"' in r.text
