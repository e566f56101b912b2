from app.schemas.notification_schema import WelcomeNotice
from conftest import auth, run


def test_login_returns_session_token(client, alice):
    r = client.post("/api/v1/auth/login", json={"email": alice["email"], "password": "secret123"})
    assert r.status_code == 200
    data = r.json()
    assert data["user"]["username"] == "alice"
    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
    assert me.status_code == 200
    assert me.json()["id"] == str(alice["_id"])


def test_login_rejects_bad_password(client, alice):
    r = client.post("/api/v1/auth/login", json={"email": alice["email"], "password": "wrong"})
    assert r.status_code == 401


def test_inactive_user_cannot_log_in(client, make_user):
    ghost = make_user("ghost", is_active=False)
    r = client.post("/api/v1/auth/login", json={"email": ghost["email"], "password": "secret123"})
    assert r.status_code == 401
    assert client.get("/api/v1/auth/me", headers=auth(ghost)).status_code == 401


def test_demotion_applies_to_existing_tokens(client, db, alice, bob):
    headers = auth(alice)
    run(db["users"].update_one({"_id": alice["_id"]}, {"$set": {"role": "admin"}}))
    assert client.get("/api/v1/users", headers=headers).status_code == 200
    run(db["users"].update_one({"_id": alice["_id"]}, {"$set": {"role": "user"}}))
    assert client.get("/api/v1/users", headers=headers).status_code == 403


def test_get_users(client, admin, alice):
    r = client.get("/api/v1/users", headers=auth(admin))
    assert r.status_code == 200
    data = r.json()
    assert isinstance(data, list)
    # newest first
    assert [u["username"] for u in data] == ["alice", "hrlead", "root"]
    assert all("password_hash" not in u for u in data)


def test_plain_user_cannot_list_users(client, alice):
    assert client.get("/api/v1/users", headers=auth(alice)).status_code == 403


def test_create_user_sends_welcome(client, notifier, admin):
    payload = {
        "username": "carol",
        "email": "carol@example.com",
        "password": "welcome1",
        "full_name": "Carol King",
        "designation": "Designer",
    }
    r = client.post("/api/v1/users", json=payload, headers=auth(admin))
    assert r.status_code == 201
    assert r.json()["role"] == "user"
    [notice] = notifier.of_type(WelcomeNotice)
    assert notice.to == "carol@example.com"
    assert notice.login_url.endswith("/login")
    login = client.post("/api/v1/auth/login", json={"email": "carol@example.com", "password": "welcome1"})
    assert login.status_code == 200


def test_create_user_rejects_duplicates(client, admin, alice):
    payload = {"username": "alice", "email": "other@example.com", "password": "x", "full_name": "Dup"}
    assert client.post("/api/v1/users", json=payload, headers=auth(admin)).status_code == 409


def test_admin_cannot_create_sysadmin(client, sysadmin, admin):
    payload = {"username": "boss", "email": "boss@example.com", "password": "x", "full_name": "Boss", "role": "sysadmin"}
    assert client.post("/api/v1/users", json=payload, headers=auth(admin)).status_code == 403
    assert client.post("/api/v1/users", json=payload, headers=auth(sysadmin)).status_code == 201


def test_update_user_password(client, admin, alice):
    r = client.put(f"/api/v1/users/{alice['_id']}", json={"designation": "Lead", "password": "newpass1"}, headers=auth(admin))
    assert r.status_code == 200
    assert r.json()["designation"] == "Lead"
    assert client.post("/api/v1/auth/login", json={"email": alice["email"], "password": "newpass1"}).status_code == 200


def test_update_user_blank_password_keeps_old(client, admin, alice):
    client.put(f"/api/v1/users/{alice['_id']}", json={"password": "  "}, headers=auth(admin))
    assert client.post("/api/v1/auth/login", json={"email": alice["email"], "password": "secret123"}).status_code == 200


def test_update_unknown_user(client, admin):
    assert client.put("/api/v1/users/65f000000000000000000000", json={"designation": "x"}, headers=auth(admin)).status_code == 404


def test_only_sysadmin_deletes_users(client, sysadmin, admin, alice):
    assert client.delete(f"/api/v1/users/{alice['_id']}", headers=auth(admin)).status_code == 403
    assert client.delete(f"/api/v1/users/{sysadmin['_id']}", headers=auth(sysadmin)).status_code == 400
    assert client.delete(f"/api/v1/users/{alice['_id']}", headers=auth(sysadmin)).status_code == 200
    assert client.delete(f"/api/v1/users/{alice['_id']}", headers=auth(sysadmin)).status_code == 404
