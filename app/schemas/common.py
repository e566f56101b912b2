from enum import Enum


class Role(str, Enum):
    sysadmin = "sysadmin"
    admin = "admin"
    user = "user"


class LeaveStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


APPROVER_ROLES = {Role.sysadmin.value, Role.admin.value}
