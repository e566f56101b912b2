from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.config import settings
from app.core.feature_flags import features
from app.core.rbac import require_approver, scoped_user_id
from app.core.security import CallerContext, get_current_user
from app.db.mongo import get_mongo_db
from app.schemas.common import LeaveStatus
from app.schemas.dashboard_schema import (
    AttendanceOverviewRow,
    AttendanceSummary,
    DashboardStats,
    LeaveStatusCount,
    LeaveTrendPoint,
    TimePattern,
    UserLeaveStatsRow,
    UserSummary,
)
from app.utils.dates import day_count, local_now, parse_hhmm, to_storage


router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _year_window(year: int) -> tuple[datetime, datetime]:
    return datetime(year, 1, 1), datetime(year, 12, 31)


async def _leave_stats(db: AsyncIOMotorDatabase, year: int) -> list[UserLeaveStatsRow]:
    start, end = _year_window(year)
    rows: dict[ObjectId, UserLeaveStatsRow] = {}
    async for u in db["users"].find({"is_active": True}):
        rows[u["_id"]] = UserLeaveStatsRow(
            user_id=str(u["_id"]),
            username=u.get("username", ""),
            full_name=u.get("full_name", ""),
        )

    cursor = db["leave_requests"].find({"start_date": {"$gte": start, "$lte": end}})
    async for l in cursor:
        row = rows.get(l.get("requester_id"))
        if row is None:
            continue
        row.total_requests += 1
        days = day_count(l["start_date"], l["end_date"])
        if l.get("status") == LeaveStatus.approved.value:
            row.days_taken += days
        elif l.get("status") == LeaveStatus.pending.value:
            row.days_pending += days

    for row in rows.values():
        row.limit_exceed = max(row.days_taken - settings.YEARLY_LEAVE_LIMIT, 0)
    return sorted(rows.values(), key=lambda r: (-r.days_taken, r.username))


@router.get("/stats", response_model=DashboardStats)
async def dashboard_stats(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    require_approver(current_user)
    today = local_now().date()
    month_start = datetime(today.year, today.month, 1)
    next_month = (month_start + timedelta(days=32)).replace(day=1)
    return DashboardStats(
        total_users=await db["users"].count_documents({"is_active": True}),
        pending_requests=await db["leave_requests"].count_documents({"status": LeaveStatus.pending.value}),
        today_attendance=await db["attendance"].count_documents({"date": to_storage(today)}),
        leaves_this_month=await db["leave_requests"].count_documents({
            "start_date": {"$gte": month_start, "$lt": next_month},
        }),
    )


@router.get("/user-summary", response_model=UserSummary)
async def user_summary(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    uid = ObjectId(current_user.id)
    start, end = _year_window(local_now().year)
    out = UserSummary()
    cursor = db["leave_requests"].find({
        "requester_id": uid,
        "status": {"$in": [LeaveStatus.approved.value, LeaveStatus.pending.value]},
        "start_date": {"$gte": start, "$lte": end},
    })
    async for l in cursor:
        days = day_count(l["start_date"], l["end_date"])
        if l["status"] == LeaveStatus.approved.value:
            out.approved_leaves += 1
            out.approved_days += days
        else:
            out.pending_requests += 1
            out.pending_days += days
    q = {"user_id": uid, "date": {"$gte": start, "$lte": end}}
    out.absent_days = await db["attendance"].count_documents({**q, "status": "absent"})
    out.present_days = await db["attendance"].count_documents({**q, "status": "present"})
    return out


@router.get("/user-leave-stats", response_model=list[UserLeaveStatsRow])
async def user_leave_stats(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    if not features.leave_stats:
        raise HTTPException(status_code=404, detail="Leave stats disabled")
    require_approver(current_user)
    return await _leave_stats(db, year or local_now().year)


@router.get("/leave-trends", response_model=list[LeaveTrendPoint])
async def leave_trends(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    require_approver(current_user)
    start, end = _year_window(year or local_now().year)
    points = [LeaveTrendPoint(month=calendar.month_abbr[m], month_num=m) for m in range(1, 13)]
    cursor = db["leave_requests"].find(
        {"status": LeaveStatus.approved.value, "start_date": {"$gte": start, "$lte": end}},
        {"start_date": 1},
    )
    async for l in cursor:
        points[l["start_date"].month - 1].total_leaves += 1
    return points


@router.get("/leave-type-distribution", response_model=list[LeaveStatusCount])
async def leave_type_distribution(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    require_approver(current_user)
    start, end = _year_window(year or local_now().year)
    q = {"start_date": {"$gte": start, "$lte": end}}
    out = [LeaveStatusCount(status="Total Requests", count=await db["leave_requests"].count_documents(q))]
    for status in (LeaveStatus.pending, LeaveStatus.approved, LeaveStatus.rejected):
        count = await db["leave_requests"].count_documents({**q, "status": status.value})
        out.append(LeaveStatusCount(status=status.value.capitalize(), count=count))
    return out


@router.get("/attendance-overview", response_model=list[AttendanceOverviewRow])
async def attendance_overview(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    require_approver(current_user)
    start, end = _year_window(year or local_now().year)
    # future-dated marks are not counted yet
    end = min(end, to_storage(local_now().date()))
    rows: dict[ObjectId, AttendanceOverviewRow] = {}
    async for u in db["users"].find({"is_active": True}, {"full_name": 1}):
        rows[u["_id"]] = AttendanceOverviewRow(user_name=u.get("full_name", ""))

    async for att in db["attendance"].find({"date": {"$gte": start, "$lte": end}}):
        row = rows.get(att.get("user_id"))
        if row is None:
            continue
        row.total_days += 1
        if att.get("status") == "present":
            row.present += 1
        elif att.get("status") == "absent":
            row.absent += 1

    active = [r for r in rows.values() if r.total_days]
    return sorted(active, key=lambda r: (-r.present, r.user_name))[:10]


@router.get("/attendance-summary", response_model=AttendanceSummary)
async def attendance_summary(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    require_approver(current_user)
    on_time_cutoff = parse_hhmm(settings.ON_TIME_CUTOFF)
    early_cutoff = parse_hhmm(settings.EARLY_DEPARTURE_CUTOFF)
    out = AttendanceSummary(total_employees=await db["users"].count_documents({"is_active": True}))
    async for att in db["attendance"].find({"date": to_storage(local_now().date())}):
        login = att.get("login_time")
        logout = att.get("logout_time")
        if login:
            if login.time() <= on_time_cutoff:
                out.on_time += 1
            else:
                out.late_arrivals += 1
        if logout and logout.time() < early_cutoff:
            out.early_departures += 1
    return out


async def _time_pattern(
    db: AsyncIOMotorDatabase,
    current_user: CallerContext,
    field: str,
    year: Optional[int],
    user_id: Optional[str],
) -> TimePattern:
    if not features.patterns:
        raise HTTPException(status_code=404, detail="Patterns disabled")
    start, end = _year_window(year or local_now().year)
    q: dict = {"status": "present", "date": {"$gte": start, "$lte": end}}
    target = scoped_user_id(current_user, user_id)
    if target:
        try:
            q["user_id"] = ObjectId(target)
        except InvalidId as exc:
            raise HTTPException(status_code=400, detail="Invalid user_id") from exc

    names: dict[ObjectId, str] = {}
    async for u in db["users"].find({}, {"username": 1}):
        names[u["_id"]] = u.get("username", "")

    out: TimePattern = {}
    async for att in db["attendance"].find(q).sort("date", 1):
        username = names.get(att["user_id"])
        if username is None:
            continue
        stamp = att.get(field)
        day: date = att["date"].date()
        out.setdefault(username, {})[day.isoformat()] = stamp.strftime("%H:%M") if stamp else None
    return out


@router.get("/login-pattern", response_model=TimePattern)
async def login_pattern(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    user_id: Optional[str] = Query(None),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    return await _time_pattern(db, current_user, "login_time", year, user_id)


@router.get("/logout-pattern", response_model=TimePattern)
async def logout_pattern(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    user_id: Optional[str] = Query(None),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    return await _time_pattern(db, current_user, "logout_time", year, user_id)


@router.get("/export.csv")
async def dashboard_export_csv(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    if not features.export:
        raise HTTPException(status_code=404, detail="Export disabled")
    require_approver(current_user)
    rows = await _leave_stats(db, year or local_now().year)
    lines = [["username", "full_name", "total_requests", "days_taken", "days_pending", "limit_exceed"]]
    for r in rows:
        lines.append([r.username, r.full_name, str(r.total_requests), str(r.days_taken), str(r.days_pending), str(r.limit_exceed)])
    # RFC 4180: quote values and double-quote embedded quotes
    csv = "\n".join(
        ",".join('"' + c.replace('"', '""') + '"' for c in row)
        for row in lines
    )
    return PlainTextResponse(content=csv, media_type="text/csv; charset=utf-8")
