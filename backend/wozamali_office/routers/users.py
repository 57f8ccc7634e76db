"""Office user administration endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from .. import models, services
from ..database import get_session
from ..errors import service_errors
from ..permissions import require_office_user, require_super_admin
from ..schemas import CreateUserIn, ResetPasswordIn, UpdateUserRoleIn, UserIdIn

router = APIRouter(prefix="/api/admin", tags=["users"])
logger = logging.getLogger("office.users")


@router.get("/users")
def list_users(page: int = 1, limit: int = 50, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    """One page of users, newest first. A store failure yields an empty page."""
    try:
        return services.UserService(db).list_page(page, limit)
    except SQLAlchemyError as e:
        logger.exception("users_list_failed")
        return {"users": [], "count": 0, "error": str(e)}


@router.get("/users/find")
def find_user(email: str, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    with service_errors():
        found = services.UserService(db).find_by_email(email)
    return {"user": services.user_to_dict(found)}


@router.post("/create-user", status_code=status.HTTP_201_CREATED)
def create_user(payload: CreateUserIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    with service_errors():
        created = services.UserService(db).create_user(
            payload.email, payload.full_name, payload.role, password=payload.password, phone=payload.phone,
        )
    return {"success": True, "user": services.user_to_dict(created)}


@router.post("/update-user-role")
def update_user_role(payload: UpdateUserRoleIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    with service_errors():
        result = services.UserService(db).update_role(payload.user_id, payload.role, actor=user)
    return {"success": True, **result}


@router.post("/approve-user")
def approve_user(payload: UserIdIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    with service_errors():
        approved = services.UserService(db).approve(payload.user_id, actor=user)
    return {"success": True, "user": services.user_to_dict(approved)}


@router.get("/pending-applicants")
def pending_applicants(db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    rows = [services.user_to_dict(u) for u in services.UserService(db).pending()]
    return {"users": rows, "count": len(rows)}


@router.get("/team-members")
def team_members(db: Session = Depends(get_session), user: models.User = Depends(require_super_admin)):
    rows = [services.user_to_dict(u) for u in services.UserService(db).team_members()]
    return {"members": rows, "count": len(rows)}


@router.post("/reset-user-password")
def reset_user_password(payload: ResetPasswordIn, db: Session = Depends(get_session), user: models.User = Depends(require_super_admin)):
    if len(payload.new_password or "") < services.MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"password must be at least {services.MIN_PASSWORD_LENGTH} characters")
    with service_errors():
        services.UserService(db).reset_password(payload.user_id, payload.new_password, actor=user)
    return {"success": True}
