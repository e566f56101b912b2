from motor.motor_asyncio import AsyncIOMotorDatabase
from app.db.mongo import get_mongo_db


async def ensure_indexes(db: AsyncIOMotorDatabase | None = None) -> None:
    """Create required MongoDB indexes (idempotent)."""
    if db is None:
        db = get_mongo_db()

    users = db["users"]
    # Unique logins
    await users.create_index([("email", 1)], unique=True, name="uniq_email")
    await users.create_index([("username", 1)], unique=True, name="uniq_username")
    # Default-approver lookup and dashboard headcounts
    await users.create_index([("role", 1), ("created_at", 1)], name="idx_role_created")

    leaves = db["leave_requests"]
    await leaves.create_index([("requester_id", 1)], name="idx_requester_leave")
    await leaves.create_index([("status", 1)], name="idx_status_leave")
    await leaves.create_index([("created_at", -1), ("_id", -1)], name="idx_leave_created_desc")
    await leaves.create_index([("start_date", 1), ("end_date", 1)], name="idx_leave_dates")

    attendance = db["attendance"]
    # One attendance row per user per day
    await attendance.create_index([("user_id", 1), ("date", 1)], unique=True, name="uniq_att_user_date")
    await attendance.create_index([("date", -1), ("login_time", -1)], name="idx_att_date_login")
