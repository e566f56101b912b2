from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr

from .common import Role


class UserIn(BaseModel):
    username: str
    email: EmailStr
    password: str
    full_name: str
    designation: Optional[str] = None
    role: Role = Role.user


class UserUpdate(BaseModel):
    username: Optional[str] = None
    email: Optional[EmailStr] = None
    full_name: Optional[str] = None
    designation: Optional[str] = None
    is_active: Optional[bool] = None
    # Blank keeps the current password
    password: Optional[str] = None


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class UserOut(BaseModel):
    id: str
    username: str
    email: EmailStr
    full_name: str
    designation: Optional[str] = None
    role: Role
    is_active: bool = True
    created_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    user: UserOut
    token: str
