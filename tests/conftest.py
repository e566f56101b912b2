import asyncio
import os
from datetime import datetime, timedelta

import pytest

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["ADMIN_EMAIL"] = ""
os.environ["SYSADMIN_EMAIL"] = ""

from fastapi.testclient import TestClient  # noqa: E402
from mongomock_motor import AsyncMongoMockClient  # noqa: E402

from main import app  # noqa: E402
from app.core.security import create_jwt, hash_password  # noqa: E402
from app.db.mongo import get_mongo_db  # noqa: E402
from app.services.notifier import EmailNotifier, get_notifier  # noqa: E402


def run(coro):
    return asyncio.run(coro)


class RecordingNotifier(EmailNotifier):
    """Keeps every notice instead of talking to SMTP."""

    def __init__(self) -> None:
        self.sent = []

    async def _deliver(self, send, notice) -> bool:
        self.sent.append(notice)
        return True

    def of_type(self, cls):
        return [n for n in self.sent if isinstance(n, cls)]


@pytest.fixture
def db():
    return AsyncMongoMockClient()["leaveflow_test"]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(db, notifier):
    app.dependency_overrides[get_mongo_db] = lambda: db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    base = datetime(2024, 1, 1)
    counter = {"n": 0}

    def _make(username, role="user", password="secret123", is_active=True):
        counter["n"] += 1
        doc = {
            "username": username,
            "email": f"{username}@example.com",
            "password_hash": hash_password(password),
            "full_name": username.capitalize(),
            "designation": None,
            "role": role,
            "is_active": is_active,
            "created_at": base + timedelta(minutes=counter["n"]),
            "updated_at": base,
        }
        doc["_id"] = run(db["users"].insert_one(doc)).inserted_id
        return doc

    return _make


def auth(user) -> dict:
    token = create_jwt({"sub": str(user["_id"]), "role": user["role"]})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sysadmin(make_user):
    return make_user("root", role="sysadmin")


@pytest.fixture
def admin(make_user, sysadmin):
    return make_user("hrlead", role="admin")


@pytest.fixture
def alice(make_user, admin):
    return make_user("alice")


@pytest.fixture
def bob(make_user, admin):
    return make_user("bob")
