from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class DashboardStats(BaseModel):
    total_users: int = 0
    pending_requests: int = 0
    today_attendance: int = 0
    leaves_this_month: int = 0


class UserSummary(BaseModel):
    approved_leaves: int = 0
    approved_days: int = 0
    pending_requests: int = 0
    pending_days: int = 0
    absent_days: int = 0
    present_days: int = 0


class UserLeaveStatsRow(BaseModel):
    user_id: str
    username: str
    full_name: str
    total_requests: int = 0
    days_taken: int = 0
    days_pending: int = 0
    limit_exceed: int = 0


class AttendanceSummary(BaseModel):
    total_employees: int = 0
    on_time: int = 0
    late_arrivals: int = 0
    early_departures: int = 0


# username -> {YYYY-MM-DD: "HH:MM" or None}
TimePattern = dict[str, dict[str, Optional[str]]]


class LeaveTrendPoint(BaseModel):
    month: str
    month_num: int
    total_leaves: int = 0


class LeaveStatusCount(BaseModel):
    status: str
    count: int = 0


class AttendanceOverviewRow(BaseModel):
    user_name: str
    present: int = 0
    absent: int = 0
    total_days: int = 0
