import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, Header, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.config import settings
from app.db.mongo import get_mongo_db
from app.schemas.common import APPROVER_ROLES


ALGORITHM = "HS256"

# Both token kinds share the signing key; the purpose claim keeps them apart.
SESSION_PURPOSE = "session"
QUICK_ACTION_PURPOSE = "quick_action"


class QuickActionTokenError(Exception):
    """Quick-action token is malformed, tampered with, or scoped to another request."""


class QuickActionTokenExpired(QuickActionTokenError):
    """Quick-action token was valid but its lifetime has elapsed."""


@dataclass(frozen=True)
class CallerContext:
    id: str
    role: str
    email: str = ""
    full_name: str = ""

    @property
    def is_approver(self) -> bool:
        return self.role in APPROVER_ROLES


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def verify_password(password: str, hashed: str) -> bool:
    return hash_password(password) == hashed


def create_jwt(payload: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = payload.copy()
    if expires_delta is None:
        expires_delta = timedelta(hours=settings.JWT_EXPIRE_HOURS)
    exp = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": exp, "purpose": SESSION_PURPOSE})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_jwt(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
    if payload.get("purpose") != SESSION_PURPOSE:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return payload


def create_quick_action_token(leave_id: str, issued_at: Optional[datetime] = None) -> str:
    """Mint a signed link credential scoped to a single leave request.

    ``issued_at`` defaults to now; expiry is ``QUICK_ACTION_TTL_DAYS`` later.
    """
    iat = issued_at or datetime.now(timezone.utc)
    payload = {
        "leave_id": str(leave_id),
        "purpose": QUICK_ACTION_PURPOSE,
        "iat": iat,
        "exp": iat + timedelta(days=settings.QUICK_ACTION_TTL_DAYS),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def verify_quick_action_token(token: str, leave_id: str, now: Optional[datetime] = None) -> dict:
    """Check signature, expiry, purpose and that the token targets ``leave_id``.

    Raises ``QuickActionTokenExpired`` for an elapsed lifetime and
    ``QuickActionTokenError`` for every other failure. No database access.
    ``now`` defaults to the current UTC time; a token is expired once
    ``now >= exp``.
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[ALGORITHM],
            options={"require": ["exp", "iat"], "verify_exp": False},
        )
    except jwt.PyJWTError as exc:
        raise QuickActionTokenError("Invalid quick-action token") from exc
    try:
        exp = float(payload["exp"])
    except (TypeError, ValueError) as exc:
        raise QuickActionTokenError("Invalid quick-action token") from exc
    if exp <= (now or datetime.now(timezone.utc)).timestamp():
        raise QuickActionTokenExpired("Quick-action link has expired")
    if payload.get("purpose") != QUICK_ACTION_PURPOSE:
        raise QuickActionTokenError("Token is not a quick-action token")
    if str(payload.get("leave_id")) != str(leave_id):
        raise QuickActionTokenError("Token is scoped to a different leave request")
    return payload


async def get_current_user(
    authorization: Optional[str] = Header(None),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
) -> CallerContext:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    token = authorization.split(" ", 1)[1]
    payload = decode_jwt(token)
    uid = payload.get("sub")
    if not uid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    try:
        user = await db["users"].find_one({"_id": ObjectId(uid), "is_active": True})
    except InvalidId as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload") from exc
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    # Role is read from the store, not the token, so demotions apply immediately
    return CallerContext(
        id=str(user["_id"]),
        role=user.get("role", "user"),
        email=user.get("email", ""),
        full_name=user.get("full_name", ""),
    )
