from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta

from bson import ObjectId

from app.db.mongo import get_mongo_db, close_mongo_client
from app.db.mongo_indexes import ensure_indexes
from app.core.security import hash_password
from app.services.bootstrap import ensure_sysadmin
from app.utils.dates import combine, to_storage


async def seed_users(db):
    now = datetime.utcnow()
    users = [
        {
            "_id": ObjectId("6562a0f0a0a0a0a0a0a0a0a1"),
            "username": "admin",
            "email": "admin@leaveflow.example.com",
            "password_hash": hash_password("admin12345"),
            "full_name": "Admin User",
            "designation": "HR Manager",
            "role": "admin",
            "created_at": now,
            "updated_at": now,
            "is_active": True,
            "last_login": None,
        },
        {
            "_id": ObjectId("6562a0f0a0a0a0a0a0a0a0a2"),
            "username": "alice",
            "email": "alice@example.com",
            "password_hash": hash_password("alice12345"),
            "full_name": "Alice Smith",
            "designation": "Engineer",
            "role": "user",
            "created_at": now,
            "updated_at": now,
            "is_active": True,
            "last_login": None,
        },
        {
            "_id": ObjectId("6562a0f0a0a0a0a0a0a0a0a3"),
            "username": "bob",
            "email": "bob@example.com",
            "password_hash": hash_password("bob12345"),
            "full_name": "Bob Brown",
            "designation": "Operations",
            "role": "user",
            "created_at": now,
            "updated_at": now,
            "is_active": True,
            "last_login": None,
        },
    ]
    for u in users:
        await db["users"].update_one({"email": u["email"]}, {"$setOnInsert": u}, upsert=True)
    return users


async def seed_leaves(db, users):
    now = datetime.utcnow()
    today = date.today()
    # pick the first plain user
    requester_id = users[1]["_id"]
    leaves = [
        {
            "_id": ObjectId("6562a0f0a0a0a0a0a0a0a0c1"),
            "requester_id": requester_id,
            "start_date": to_storage(today + timedelta(days=7)),
            "end_date": to_storage(today + timedelta(days=9)),
            "category": "Annual",
            "justification": "Sample seed leave",
            "status": "pending",
            "decision": None,
            "created_at": now,
            "updated_at": now,
        }
    ]
    for l in leaves:
        await db["leave_requests"].update_one({"_id": l["_id"]}, {"$setOnInsert": l}, upsert=True)


async def seed_attendance(db, users):
    now = datetime.utcnow()
    marker = users[0]["_id"]
    for offset in range(1, 6):
        day = date.today() - timedelta(days=offset)
        for u in users[1:]:
            await db["attendance"].update_one(
                {"user_id": u["_id"], "date": to_storage(day)},
                {"$setOnInsert": {
                    "login_time": combine(day, "09:45"),
                    "logout_time": combine(day, "18:45"),
                    "status": "present",
                    "marked_by": marker,
                    "created_at": now,
                    "updated_at": now,
                }},
                upsert=True,
            )


async def main():
    db = get_mongo_db()
    # Ensure indexes before inserting
    await ensure_indexes(db)

    await ensure_sysadmin(db)
    users = await seed_users(db)
    await seed_leaves(db, users)
    await seed_attendance(db, users)

    print("MongoDB seed completed.")
    close_mongo_client()


if __name__ == "__main__":
    asyncio.run(main())
