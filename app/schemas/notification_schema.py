from datetime import date
from typing import Optional

from pydantic import BaseModel

from app.utils.dates import day_count


class LeaveRequestNotice(BaseModel):
    """New-request email sent to an approver, carrying the quick-action links."""

    to: str
    leave_id: str
    requester_name: str
    requester_email: str
    category: str
    justification: str
    start_date: date
    end_date: date
    approve_url: str
    reject_url: str

    @property
    def days(self) -> int:
        return day_count(self.start_date, self.end_date)


class LeaveStatusNotice(BaseModel):
    """Decision email sent to the requester.

    ``original_*`` hold the period as it stood right before the decision was
    written; ``start_date``/``end_date`` are the decided period.
    """

    to: str
    leave_id: str
    requester_name: str
    status: str
    remarks: Optional[str] = None
    approver_name: str
    category: str
    justification: str
    original_start_date: date
    original_end_date: date
    start_date: date
    end_date: date

    @property
    def original_days(self) -> int:
        return day_count(self.original_start_date, self.original_end_date)

    @property
    def days(self) -> int:
        return day_count(self.start_date, self.end_date)

    @property
    def dates_modified(self) -> bool:
        return (self.original_start_date, self.original_end_date) != (self.start_date, self.end_date)


class WelcomeNotice(BaseModel):
    to: str
    username: str
    full_name: str
    password: str
    login_url: str
