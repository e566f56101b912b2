"""Leave request lifecycle.

State machine::

    submit ──> pending ──decide──> approved | rejected
                  ^                       │
                  └──────── withdraw ─────┘

``status == pending`` exactly when no ``decision`` sub-document is stored.
Every mutation is a single conditional write, and notifications are built from
the document image returned by that write, never from a separate read.
"""
import logging
from datetime import date, datetime
from typing import Iterable, Optional
from urllib.parse import urlencode

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.core.config import settings
from app.core.rbac import is_approver, is_sysadmin, require_approver, scoped_user_id
from app.core.security import CallerContext, create_quick_action_token
from app.schemas.common import APPROVER_ROLES, LeaveStatus, Role
from app.schemas.leave_schema import LeaveDecisionIn, LeaveIn, LeaveUpdate
from app.schemas.notification_schema import LeaveRequestNotice, LeaveStatusNotice
from app.services.notifier import EmailNotifier
from app.utils.dates import as_date, day_count, to_storage


logger = logging.getLogger("uvicorn.error")

LEAVES = "leave_requests"
DECIDED_STATES = [LeaveStatus.approved.value, LeaveStatus.rejected.value]


def _oid(value: str, what: str = "Leave request") -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found") from exc


def _required_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} is required")
    return value.strip()


def validate_period(start: Optional[date], end: Optional[date]) -> None:
    if start is None or end is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date and end_date are required")
    if start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date must be on or before end_date")


def resolve_period(doc: dict, start: Optional[date], end: Optional[date]) -> tuple[date, date]:
    """Override dates, each falling back to the stored value when not supplied."""
    return (
        start or as_date(doc.get("start_date")),
        end or as_date(doc.get("end_date")),
    )


def serialize_leave(doc: dict, names: Optional[dict] = None) -> dict:
    names = names or {}
    decision = doc.get("decision")
    start = as_date(doc.get("start_date"))
    end = as_date(doc.get("end_date"))
    return {
        "id": str(doc["_id"]),
        "requester_id": str(doc.get("requester_id")),
        "requester_name": names.get(doc.get("requester_id")),
        "start_date": start,
        "end_date": end,
        "day_count": day_count(start, end),
        "category": doc.get("category", ""),
        "justification": doc.get("justification", ""),
        "status": doc.get("status", LeaveStatus.pending.value),
        "decision": {
            "approver_id": str(decision.get("approver_id")),
            "approver_name": names.get(decision.get("approver_id")),
            "decided_at": decision.get("decided_at"),
            "remarks": decision.get("remarks"),
        } if decision else None,
        "created_at": doc.get("created_at"),
        "updated_at": doc.get("updated_at"),
    }


async def _user_names(db: AsyncIOMotorDatabase, docs: Iterable[dict]) -> dict:
    ids = set()
    for d in docs:
        ids.add(d.get("requester_id"))
        if d.get("decision"):
            ids.add(d["decision"].get("approver_id"))
    ids.discard(None)
    names: dict = {}
    if not ids:
        return names
    async for u in db["users"].find({"_id": {"$in": list(ids)}}, {"full_name": 1}):
        names[u["_id"]] = u.get("full_name", "")
    return names


async def _serialize_one(db: AsyncIOMotorDatabase, doc: dict) -> dict:
    return serialize_leave(doc, await _user_names(db, [doc]))


async def _serialize_saved(db: AsyncIOMotorDatabase, doc: dict) -> dict:
    """Serialize a record whose write already succeeded.

    A failed name lookup only drops the display names.
    """
    try:
        names = await _user_names(db, [doc])
    except PyMongoError as exc:
        logger.warning("Name lookup for leave request %s failed: %s", doc["_id"], exc)
        names = {}
    return serialize_leave(doc, names)


async def _load(db: AsyncIOMotorDatabase, oid: ObjectId) -> dict:
    doc = await db[LEAVES].find_one({"_id": oid})
    if not doc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Leave request not found")
    return doc


def quick_action_url(leave_id: str, action: str, token: str) -> str:
    query = urlencode({"action": action, "token": token})
    return f"{settings.BACKEND_BASE_URL}/api/v1/leaves/{leave_id}/quick-action?{query}"


async def _approver_recipients(db: AsyncIOMotorDatabase) -> list[str]:
    if settings.ADMIN_EMAIL:
        return [settings.ADMIN_EMAIL]
    recipients = []
    cursor = db["users"].find({"role": {"$in": sorted(APPROVER_ROLES)}, "is_active": True}, {"email": 1})
    async for u in cursor:
        if u.get("email"):
            recipients.append(u["email"])
    return recipients


async def _announce_new_request(db: AsyncIOMotorDatabase, notifier: EmailNotifier, caller: CallerContext, doc: dict) -> None:
    leave_id = str(doc["_id"])
    try:
        recipients = await _approver_recipients(db)
    except PyMongoError as exc:
        logger.warning("Could not resolve approvers for leave request %s; skipping notification: %s", leave_id, exc)
        return
    for to in recipients:
        # One token per email, shared by its approve and reject links
        token = create_quick_action_token(leave_id)
        await notifier.leave_requested(LeaveRequestNotice(
            to=to,
            leave_id=leave_id,
            requester_name=caller.full_name,
            requester_email=caller.email,
            category=doc["category"],
            justification=doc["justification"],
            start_date=as_date(doc["start_date"]),
            end_date=as_date(doc["end_date"]),
            approve_url=quick_action_url(leave_id, LeaveStatus.approved.value, token),
            reject_url=quick_action_url(leave_id, LeaveStatus.rejected.value, token),
        ))


async def submit_leave(db: AsyncIOMotorDatabase, notifier: EmailNotifier, caller: CallerContext, payload: LeaveIn) -> dict:
    validate_period(payload.start_date, payload.end_date)
    now = datetime.utcnow()
    doc = {
        "requester_id": ObjectId(caller.id),
        "start_date": to_storage(payload.start_date),
        "end_date": to_storage(payload.end_date),
        "category": _required_text(payload.category, "category"),
        "justification": _required_text(payload.justification, "justification"),
        "status": LeaveStatus.pending.value,
        "created_at": now,
        "updated_at": now,
    }
    res = await db[LEAVES].insert_one(doc)
    doc["_id"] = res.inserted_id
    logger.info("Leave request %s submitted by user %s", res.inserted_id, caller.id)
    await _announce_new_request(db, notifier, caller, doc)
    return serialize_leave(doc, {doc["requester_id"]: caller.full_name})


async def list_leaves(
    db: AsyncIOMotorDatabase,
    caller: CallerContext,
    user_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    statuses: Optional[list[str]] = None,
) -> list[dict]:
    q: dict = {}
    target = scoped_user_id(caller, user_id)
    if target:
        try:
            q["requester_id"] = ObjectId(target)
        except InvalidId as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid user_id") from exc
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date must be on or before end_date")
    # Inclusive overlap with [start_date, end_date]
    if end_date:
        q["start_date"] = {"$lte": to_storage(end_date)}
    if start_date:
        q["end_date"] = {"$gte": to_storage(start_date)}
    if statuses:
        allowed = {s.value for s in LeaveStatus}
        unknown = [s for s in statuses if s not in allowed]
        if unknown:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown status: {', '.join(unknown)}")
        q["status"] = {"$in": list(statuses)}
    cursor = db[LEAVES].find(q).sort([("created_at", -1), ("_id", -1)])
    docs = [doc async for doc in cursor]
    names = await _user_names(db, docs)
    return [serialize_leave(doc, names) for doc in docs]


async def get_leave(db: AsyncIOMotorDatabase, caller: CallerContext, leave_id: str) -> dict:
    doc = await _load(db, _oid(leave_id))
    if not caller.is_approver and str(doc.get("requester_id")) != caller.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return await _serialize_one(db, doc)


async def edit_leave(db: AsyncIOMotorDatabase, caller: CallerContext, leave_id: str, payload: LeaveUpdate) -> dict:
    oid = _oid(leave_id)
    doc = await _load(db, oid)
    guard: dict = {"_id": oid}
    if not caller.is_approver:
        if str(doc.get("requester_id")) != caller.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only edit your own leave requests")
        if doc.get("status") != LeaveStatus.pending.value:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only pending leave requests can be edited")
        guard.update({"requester_id": doc["requester_id"], "status": LeaveStatus.pending.value})

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    start, end = resolve_period(doc, changes.get("start_date"), changes.get("end_date"))
    validate_period(start, end)
    update = {
        "start_date": to_storage(start),
        "end_date": to_storage(end),
        "updated_at": datetime.utcnow(),
    }
    for field in ("category", "justification"):
        if field in changes:
            update[field] = _required_text(changes[field], field)

    updated = await db[LEAVES].find_one_and_update(guard, {"$set": update}, return_document=ReturnDocument.AFTER)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Leave request is no longer pending")
    return await _serialize_saved(db, updated)


def _same_decision(doc: dict, outcome: str, start: date, end: date, remarks: Optional[str]) -> bool:
    decision = doc.get("decision") or {}
    return (
        doc.get("status") == outcome
        and as_date(doc.get("start_date")) == start
        and as_date(doc.get("end_date")) == end
        and (decision.get("remarks") or None) == remarks
    )


async def _load_requester(db: AsyncIOMotorDatabase, requester_id: Optional[ObjectId]) -> Optional[dict]:
    return await db["users"].find_one({"_id": requester_id})


async def _notify_decision(
    db: AsyncIOMotorDatabase,
    notifier: EmailNotifier,
    before: dict,
    after: dict,
    approver: CallerContext,
) -> None:
    try:
        requester = await _load_requester(db, after.get("requester_id"))
    except PyMongoError as exc:
        logger.warning("Could not load requester for leave request %s; skipping notification: %s", after["_id"], exc)
        return
    if not requester or not requester.get("email"):
        logger.warning("Leave request %s has no reachable requester; skipping notification", after["_id"])
        return
    await notifier.leave_decided(LeaveStatusNotice(
        to=requester["email"],
        leave_id=str(after["_id"]),
        requester_name=requester.get("full_name", ""),
        status=after["status"],
        remarks=after["decision"].get("remarks"),
        approver_name=approver.full_name or "Administrator",
        category=after.get("category", ""),
        justification=after.get("justification", ""),
        original_start_date=as_date(before["start_date"]),
        original_end_date=as_date(before["end_date"]),
        start_date=as_date(after["start_date"]),
        end_date=as_date(after["end_date"]),
    ))


async def decide_leave(
    db: AsyncIOMotorDatabase,
    notifier: EmailNotifier,
    caller: CallerContext,
    leave_id: str,
    payload: LeaveDecisionIn,
) -> dict:
    """Approve or reject a pending request, optionally moving its dates.

    Repeating a decision that is already recorded with the same outcome,
    period and remarks returns the record untouched and sends nothing; the
    quick-action POST relies on this when a link is submitted twice.
    """
    require_approver(caller)
    oid = _oid(leave_id)
    doc = await _load(db, oid)

    remarks = (payload.remarks or "").strip() or None
    if payload.status == LeaveStatus.rejected.value and not remarks:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Remarks are required when rejecting a leave request")
    start, end = resolve_period(doc, payload.start_date, payload.end_date)
    validate_period(start, end)

    if doc.get("status") != LeaveStatus.pending.value:
        if _same_decision(doc, payload.status, start, end, remarks):
            return await _serialize_one(db, doc)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Leave request is already {doc.get('status')}")

    now = datetime.utcnow()
    changes = {
        "status": payload.status,
        "start_date": to_storage(start),
        "end_date": to_storage(end),
        "decision": {"approver_id": ObjectId(caller.id), "decided_at": now, "remarks": remarks},
        "updated_at": now,
    }
    before = await db[LEAVES].find_one_and_update(
        {"_id": oid, "status": LeaveStatus.pending.value},
        {"$set": changes},
        return_document=ReturnDocument.BEFORE,
    )
    if before is None:
        # Another decision landed between the read and the write
        current = await _load(db, oid)
        if _same_decision(current, payload.status, start, end, remarks):
            return await _serialize_one(db, current)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Leave request is already {current.get('status')}")

    after = {**before, **changes}
    logger.info("Leave request %s %s by %s", leave_id, payload.status, caller.id)
    await _notify_decision(db, notifier, before, after, caller)
    return await _serialize_saved(db, after)


async def withdraw_leave(db: AsyncIOMotorDatabase, caller: CallerContext, leave_id: str) -> dict:
    require_approver(caller)
    oid = _oid(leave_id)
    updated = await db[LEAVES].find_one_and_update(
        {"_id": oid, "status": {"$in": DECIDED_STATES}},
        {"$set": {"status": LeaveStatus.pending.value, "updated_at": datetime.utcnow()}, "$unset": {"decision": ""}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        await _load(db, oid)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only approved or rejected leave requests can be withdrawn")
    logger.info("Leave request %s withdrawn to pending by %s", leave_id, caller.id)
    return await _serialize_saved(db, updated)


async def delete_leave(db: AsyncIOMotorDatabase, caller: CallerContext, leave_id: str) -> None:
    oid = _oid(leave_id)
    if is_sysadmin(caller.role):
        res = await db[LEAVES].delete_one({"_id": oid})
        if res.deleted_count == 0:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Leave request not found")
        return
    if is_approver(caller.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only system administrators can delete leave requests")
    res = await db[LEAVES].delete_one({
        "_id": oid,
        "requester_id": ObjectId(caller.id),
        "status": LeaveStatus.pending.value,
    })
    if res.deleted_count:
        return
    doc = await _load(db, oid)
    if str(doc.get("requester_id")) != caller.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only delete your own leave requests")
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only pending leave requests can be deleted")


async def resolve_default_approver(db: AsyncIOMotorDatabase) -> CallerContext:
    """Identity credited with decisions taken through emailed links.

    Placeholder attribution: the earliest active sysadmin, else the earliest
    active admin.
    """
    for role in (Role.sysadmin.value, Role.admin.value):
        user = await db["users"].find_one(
            {"role": role, "is_active": True},
            sort=[("created_at", 1), ("_id", 1)],
        )
        if user:
            return CallerContext(
                id=str(user["_id"]),
                role=role,
                email=user.get("email", ""),
                full_name=user.get("full_name", ""),
            )
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="No approver account is configured")
