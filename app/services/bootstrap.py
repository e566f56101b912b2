import logging
from datetime import datetime
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.config import settings
from app.core.security import hash_password
from app.db.mongo import get_mongo_db
from app.schemas.common import Role


logger = logging.getLogger("uvicorn.error")


async def ensure_sysadmin(db: Optional[AsyncIOMotorDatabase] = None) -> bool:
    """Create the configured system administrator if none exists yet.

    Returns True when a user was inserted. Nothing happens unless both
    SYSADMIN_EMAIL and SYSADMIN_PASSWORD are configured.
    """
    if not settings.SYSADMIN_EMAIL or not settings.SYSADMIN_PASSWORD:
        return False
    if db is None:
        db = get_mongo_db()
    if await db["users"].find_one({"role": Role.sysadmin.value}):
        return False
    now = datetime.utcnow()
    res = await db["users"].update_one(
        {"email": settings.SYSADMIN_EMAIL},
        {"$setOnInsert": {
            "username": settings.SYSADMIN_USERNAME,
            "email": settings.SYSADMIN_EMAIL,
            "password_hash": hash_password(settings.SYSADMIN_PASSWORD),
            "full_name": settings.SYSADMIN_FULLNAME,
            "designation": "System Administrator",
            "role": Role.sysadmin.value,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }},
        upsert=True,
    )
    if res.upserted_id is None:
        logger.warning("SYSADMIN_EMAIL %s belongs to an existing non-sysadmin user", settings.SYSADMIN_EMAIL)
        return False
    logger.info("Created sysadmin user %s", settings.SYSADMIN_USERNAME)
    return True
