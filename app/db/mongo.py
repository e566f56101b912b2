from typing import Optional

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.core.config import settings


_mongo_client: Optional[AsyncIOMotorClient] = None


def _uses_tls(uri: str) -> bool:
    lowered = uri.lower()
    return lowered.startswith("mongodb+srv://") or "tls=true" in lowered or "ssl=true" in lowered


def get_mongo_client() -> AsyncIOMotorClient:
    global _mongo_client
    if _mongo_client is None:
        client_kwargs = {"serverSelectionTimeoutMS": 30000, "tz_aware": False}
        # Use certifi CA bundle to avoid SSL verify errors with Atlas
        if _uses_tls(settings.MONGODB_URI):
            client_kwargs["tlsCAFile"] = certifi.where()
        _mongo_client = AsyncIOMotorClient(settings.MONGODB_URI, **client_kwargs)
    return _mongo_client


def get_mongo_db() -> AsyncIOMotorDatabase:
    client = get_mongo_client()
    return client[settings.MONGODB_DB_NAME]


def close_mongo_client() -> None:
    global _mongo_client
    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None
