"""Role normalisation and role-based access checks.

Every screen and endpoint asks these helpers instead of comparing role
strings inline, so `superadmin`, `super_admin` and `SUPER_ADMIN` are
treated as the same role everywhere.
"""

from typing import FrozenSet, Iterable, Optional

from fastapi import Depends, HTTPException

from . import models
from .auth import get_current_user

ROLE_SUPER_ADMIN = "super_admin"
ROLE_ADMIN = "admin"
ROLE_ADMIN_MANAGER = "admin_manager"
ROLE_STAFF = "staff"
ROLE_COLLECTOR = "collector"
ROLE_RESIDENT = "resident"

_ALIASES = {
    "superadmin": ROLE_SUPER_ADMIN,
    "super-admin": ROLE_SUPER_ADMIN,
    "adminmanager": ROLE_ADMIN_MANAGER,
    "admin-manager": ROLE_ADMIN_MANAGER,
    "member": ROLE_RESIDENT,
    "customer": ROLE_RESIDENT,
}

SUPERADMIN_ROLES: FrozenSet[str] = frozenset({ROLE_SUPER_ADMIN})
OFFICE_ROLES: FrozenSet[str] = frozenset({ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_ADMIN_MANAGER, ROLE_STAFF})
SETTINGS_ROLES: FrozenSet[str] = frozenset({ROLE_SUPER_ADMIN, ROLE_ADMIN})
COLLECTOR_ROLES: FrozenSet[str] = OFFICE_ROLES | {ROLE_COLLECTOR}
EXPORT_APPROVER_ROLES: FrozenSet[str] = frozenset({ROLE_SUPER_ADMIN, ROLE_ADMIN_MANAGER})

_DISPLAY_NAMES = {
    ROLE_SUPER_ADMIN: "Super Admin",
    ROLE_ADMIN: "Admin",
    ROLE_ADMIN_MANAGER: "Admin Manager",
    ROLE_STAFF: "Staff",
    ROLE_COLLECTOR: "Collector",
    ROLE_RESIDENT: "Resident",
}


def normalize_role(role: Optional[str]) -> str:
    """Return the canonical lower-case role name ('' for missing roles)."""
    if not role:
        return ""
    key = role.strip().lower()
    return _ALIASES.get(key, key)


def _role_of(user: Optional[models.User]) -> str:
    return normalize_role(user.role) if user is not None else ""


def is_super_admin(user: Optional[models.User]) -> bool:
    return _role_of(user) in SUPERADMIN_ROLES


def is_admin(user: Optional[models.User]) -> bool:
    """True for plain admins only (not super admins)."""
    return _role_of(user) == ROLE_ADMIN


def can_access_team_members(user: Optional[models.User]) -> bool:
    return is_super_admin(user)


def can_delete_transactions(user: Optional[models.User]) -> bool:
    return is_super_admin(user)


def can_access_settings(user: Optional[models.User]) -> bool:
    return _role_of(user) in SETTINGS_ROLES


def is_office_user(user: Optional[models.User]) -> bool:
    return _role_of(user) in OFFICE_ROLES


def can_approve_exports(user: Optional[models.User]) -> bool:
    return _role_of(user) in EXPORT_APPROVER_ROLES


def role_display_name(role: Optional[str]) -> str:
    return _DISPLAY_NAMES.get(normalize_role(role), "Unknown")


def require_roles(allowed: Iterable[str]):
    """Build a FastAPI dependency that admits only users holding one of `allowed`."""
    allowed_set = frozenset(allowed)

    def _dependency(user: models.User = Depends(get_current_user)) -> models.User:
        if _role_of(user) not in allowed_set:
            raise HTTPException(status_code=403, detail="insufficient role")
        return user

    return _dependency


require_office_user = require_roles(OFFICE_ROLES)
require_super_admin = require_roles(SUPERADMIN_ROLES)
require_collector = require_roles(COLLECTOR_ROLES)
