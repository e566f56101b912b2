from typing import Iterable
from fastapi import HTTPException, status

from app.schemas.common import APPROVER_ROLES, Role


def is_approver(role: str) -> bool:
    return role in APPROVER_ROLES


def is_sysadmin(role: str) -> bool:
    return role == Role.sysadmin.value


def require_roles(user, allowed: Iterable[str]) -> None:
    role = str(getattr(user, "role", ""))
    if role not in set(allowed):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


def require_approver(user) -> None:
    require_roles(user, APPROVER_ROLES)


def scoped_user_id(user, requested_user_id: str | None) -> str | None:
    """User id a listing must be restricted to, or None for "everyone".

    Plain users are always pinned to themselves regardless of what they ask for.
    """
    if is_approver(str(getattr(user, "role", ""))):
        return requested_user_id or None
    return user.id
