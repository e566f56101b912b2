from datetime import date, datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class LeaveIn(BaseModel):
    start_date: date
    end_date: date
    category: str = Field(description="Leave type tag, e.g. sick, casual, annual, emergency")
    justification: str


class LeaveUpdate(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category: Optional[str] = None
    justification: Optional[str] = None


class LeaveDecisionIn(BaseModel):
    """Body of a decide call.

    Absent ``start_date``/``end_date`` fall back, each on its own, to the
    dates currently stored on the request.
    """

    status: Literal["approved", "rejected"]
    remarks: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class DecisionOut(BaseModel):
    approver_id: str
    approver_name: Optional[str] = None
    decided_at: datetime
    remarks: Optional[str] = None


class LeaveOut(BaseModel):
    id: str
    requester_id: str
    requester_name: Optional[str] = None
    start_date: date
    end_date: date
    day_count: int
    category: str
    justification: str
    status: Literal["pending", "approved", "rejected"]
    decision: Optional[DecisionOut] = None
    created_at: datetime
    updated_at: datetime


class LeaveListOut(BaseModel):
    items: list[LeaveOut]
    total: int


