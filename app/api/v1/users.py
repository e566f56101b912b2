from datetime import datetime

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, HTTPException, Path, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from app.core.config import settings
from app.core.rbac import require_approver, require_roles
from app.core.security import CallerContext, get_current_user, hash_password
from app.db.mongo import get_mongo_db
from app.schemas.auth_schema import UserIn, UserOut, UserUpdate
from app.schemas.common import Role
from app.schemas.notification_schema import WelcomeNotice
from app.services.notifier import EmailNotifier, get_notifier

router = APIRouter(prefix="/users", tags=["users"])


def user_out(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "username": doc.get("username", ""),
        "email": doc.get("email", ""),
        "full_name": doc.get("full_name", ""),
        "designation": doc.get("designation"),
        "role": doc.get("role", Role.user.value),
        "is_active": doc.get("is_active", True),
        "created_at": doc.get("created_at"),
    }


def _user_oid(user_id: str) -> ObjectId:
    try:
        return ObjectId(user_id)
    except InvalidId as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from exc


async def _ensure_unique(db: AsyncIOMotorDatabase, username: str | None, email: str | None, exclude: ObjectId | None = None) -> None:
    clauses = []
    if username:
        clauses.append({"username": username})
    if email:
        clauses.append({"email": email})
    if not clauses:
        return
    q: dict = {"$or": clauses}
    if exclude is not None:
        q["_id"] = {"$ne": exclude}
    if await db["users"].find_one(q):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username or email already exists")


@router.get("", response_model=list[UserOut])
async def list_users(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    require_approver(current_user)
    cursor = db["users"].find({}).sort([("created_at", -1), ("_id", -1)])
    return [user_out(u) async for u in cursor]


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserIn,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    notifier: EmailNotifier = Depends(get_notifier),
    current_user: CallerContext = Depends(get_current_user),
):
    require_approver(current_user)
    if current_user.role == Role.admin.value and payload.role == Role.sysadmin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admins cannot create sysadmin users")
    await _ensure_unique(db, payload.username, payload.email)
    now = datetime.utcnow()
    doc = {
        "username": payload.username,
        "email": payload.email,
        "password_hash": hash_password(payload.password),
        "full_name": payload.full_name,
        "designation": payload.designation,
        "role": payload.role.value,
        "is_active": True,
        "created_by": ObjectId(current_user.id),
        "created_at": now,
        "updated_at": now,
    }
    try:
        res = await db["users"].insert_one(doc)
    except DuplicateKeyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username or email already exists") from exc
    doc["_id"] = res.inserted_id
    await notifier.user_created(WelcomeNotice(
        to=payload.email,
        username=payload.username,
        full_name=payload.full_name,
        password=payload.password,
        login_url=f"{settings.FRONTEND_BASE_URL.rstrip('/')}/login",
    ))
    return user_out(doc)


@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    payload: UserUpdate,
    user_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    require_approver(current_user)
    oid = _user_oid(user_id)
    changes = payload.model_dump(exclude_unset=True)
    password = changes.pop("password", None)
    update = {k: v for k, v in changes.items() if v is not None}
    if password and password.strip():
        update["password_hash"] = hash_password(password)
    await _ensure_unique(db, update.get("username"), update.get("email"), exclude=oid)
    update["updated_at"] = datetime.utcnow()
    try:
        res = await db["users"].update_one({"_id": oid}, {"$set": update})
    except DuplicateKeyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username or email already exists") from exc
    if res.matched_count == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    doc = await db["users"].find_one({"_id": oid})
    return user_out(doc)


@router.delete("/{user_id}")
async def delete_user(
    user_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    require_roles(current_user, {Role.sysadmin.value})
    oid = _user_oid(user_id)
    if user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account")
    res = await db["users"].delete_one({"_id": oid})
    if res.deleted_count == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return {"status": "deleted", "id": user_id}
