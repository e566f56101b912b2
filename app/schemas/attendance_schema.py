from datetime import date, datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

AttendanceStatus = Literal["present", "absent", "half_day", "leave"]

_HHMM = r"^\d{2}:\d{2}$"


class AttendanceMarkIn(BaseModel):
    user_id: str
    date: date
    login_time: Optional[str] = Field(default=None, pattern=_HHMM, description="HH:MM")
    logout_time: Optional[str] = Field(default=None, pattern=_HHMM, description="HH:MM")
    status: AttendanceStatus = "present"


class AttendanceUpdate(BaseModel):
    login_time: Optional[str] = Field(default=None, pattern=_HHMM)
    logout_time: Optional[str] = Field(default=None, pattern=_HHMM)
    status: AttendanceStatus = "present"


class AttendanceOut(BaseModel):
    id: str
    user_id: str
    user_name: Optional[str] = None
    date: date
    login_time: Optional[datetime] = None
    logout_time: Optional[datetime] = None
    status: str
    marked_by: Optional[str] = None
