from datetime import datetime, date as _date
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.rbac import require_approver, require_roles, scoped_user_id
from app.core.security import CallerContext, get_current_user
from app.db.mongo import get_mongo_db
from app.schemas.attendance_schema import AttendanceMarkIn, AttendanceOut, AttendanceUpdate
from app.schemas.common import Role
from app.utils.dates import as_date, combine, local_now, to_storage


router = APIRouter(prefix="/attendance", tags=["attendance"])


def _oid(value: str, what: str) -> ObjectId:
    try:
        return ObjectId(value)
    except InvalidId as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found") from exc


def _times(day: _date, login_time: Optional[str], logout_time: Optional[str]) -> tuple:
    try:
        return combine(day, login_time), combine(day, logout_time)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Times must be valid HH:MM values") from exc


def _record(doc: dict, names: Optional[dict] = None) -> dict:
    names = names or {}
    return {
        "id": str(doc["_id"]),
        "user_id": str(doc.get("user_id")),
        "user_name": names.get(doc.get("user_id")),
        "date": as_date(doc.get("date")),
        "login_time": doc.get("login_time"),
        "logout_time": doc.get("logout_time"),
        "status": doc.get("status", "present"),
        "marked_by": str(doc["marked_by"]) if doc.get("marked_by") else None,
    }


@router.post("/clock-in", response_model=AttendanceOut)
async def clock_in(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user: CallerContext = Depends(get_current_user)):
    uid = ObjectId(current_user.id)
    now = local_now()
    q = {"user_id": uid, "date": to_storage(now.date())}
    att = await db["attendance"].find_one(q)
    if att and att.get("login_time"):
        # if already clocked in, return record
        return _record(att)
    await db["attendance"].update_one(
        q,
        {
            "$set": {"login_time": now, "status": "present", "updated_at": datetime.utcnow()},
            "$setOnInsert": {"logout_time": None, "marked_by": uid, "created_at": datetime.utcnow()},
        },
        upsert=True,
    )
    att = await db["attendance"].find_one(q)
    return _record(att)


@router.post("/clock-out", response_model=AttendanceOut)
async def clock_out(db: AsyncIOMotorDatabase = Depends(get_mongo_db), current_user: CallerContext = Depends(get_current_user)):
    now = local_now()
    q = {"user_id": ObjectId(current_user.id), "date": to_storage(now.date())}
    att = await db["attendance"].find_one(q)
    if not att:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No login record found for today")
    await db["attendance"].update_one(q, {"$set": {"logout_time": now, "updated_at": datetime.utcnow()}})
    att = await db["attendance"].find_one(q)
    return _record(att)


@router.post("/mark", response_model=AttendanceOut, status_code=status.HTTP_201_CREATED)
async def mark_attendance(
    payload: AttendanceMarkIn,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    require_approver(current_user)
    uid = _oid(payload.user_id, "User")
    if not await db["users"].find_one({"_id": uid}):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    login_ts, logout_ts = _times(payload.date, payload.login_time, payload.logout_time)
    q = {"user_id": uid, "date": to_storage(payload.date)}
    now = datetime.utcnow()
    await db["attendance"].update_one(
        q,
        {
            "$set": {
                "login_time": login_ts,
                "logout_time": logout_ts,
                "status": payload.status,
                "marked_by": ObjectId(current_user.id),
                "updated_at": now,
            },
            "$setOnInsert": {"created_at": now},
        },
        upsert=True,
    )
    att = await db["attendance"].find_one(q)
    return _record(att)


@router.get("/history", response_model=list[AttendanceOut])
async def attendance_history(
    user_id: Optional[str] = Query(None),
    start_date: Optional[_date] = Query(None),
    end_date: Optional[_date] = Query(None),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    q: dict = {}
    target = scoped_user_id(current_user, user_id)
    if target:
        try:
            q["user_id"] = ObjectId(target)
        except InvalidId as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid user_id") from exc
    if start_date:
        q["date"] = {"$gte": to_storage(start_date)}
    if end_date:
        q.setdefault("date", {}).update({"$lte": to_storage(end_date)})
    cursor = db["attendance"].find(q).sort([("date", -1), ("login_time", -1)])
    docs = [doc async for doc in cursor]
    names: dict = {}
    user_ids = list({d["user_id"] for d in docs})
    if user_ids:
        async for u in db["users"].find({"_id": {"$in": user_ids}}, {"username": 1}):
            names[u["_id"]] = u.get("username", "")
    return [_record(d, names) for d in docs]


@router.put("/{attendance_id}", response_model=AttendanceOut)
async def update_attendance(
    payload: AttendanceUpdate,
    attendance_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    require_roles(current_user, {Role.sysadmin.value})
    oid = _oid(attendance_id, "Attendance record")
    existing = await db["attendance"].find_one({"_id": oid})
    if not existing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attendance record not found")
    login_ts, logout_ts = _times(as_date(existing["date"]), payload.login_time, payload.logout_time)
    await db["attendance"].update_one(
        {"_id": oid},
        {"$set": {
            "login_time": login_ts,
            "logout_time": logout_ts,
            "status": payload.status,
            "updated_at": datetime.utcnow(),
        }},
    )
    att = await db["attendance"].find_one({"_id": oid})
    return _record(att)


@router.delete("/{attendance_id}")
async def delete_attendance(
    attendance_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    require_roles(current_user, {Role.sysadmin.value})
    oid = _oid(attendance_id, "Attendance record")
    res = await db["attendance"].delete_one({"_id": oid})
    if res.deleted_count == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attendance record not found")
    return {"status": "deleted", "id": attendance_id}
