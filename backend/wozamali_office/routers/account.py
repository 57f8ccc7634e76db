"""Sign-in endpoints for the office.

- POST /api/auth/login
- GET /api/auth/me
- POST /api/auth/register-admin
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlmodel import Session

from .. import models, services
from ..auth import get_current_user
from ..config import settings
from ..database import get_session
from ..errors import service_errors
from ..schemas import LoginIn, RegisterAdminIn
from ..utils.rate_limit import InMemoryRateLimiter

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger("office.auth")
_login_rate_limiter = InMemoryRateLimiter()


def _login_key(request: Request) -> str:
    return f"{request.client.host if request.client else 'unknown'}:{request.url.path}"


def _enforce_login_rate_limit(request: Request) -> None:
    allowed, retry_after = _login_rate_limiter.allow(
        _login_key(request),
        settings.LOGIN_RATE_LIMIT_PER_MIN,
        settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
    )
    if not allowed:
        logger.warning("login_rate_limited client=%s", request.client.host if request.client else "unknown")
        raise HTTPException(
            status_code=429,
            detail=f"rate limit exceeded; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )


@router.post("/login")
def login(payload: LoginIn, request: Request, db: Session = Depends(get_session)):
    """Verify email and password and return an access token with the profile."""
    _enforce_login_rate_limit(request)
    auth = services.AuthService(db)
    with service_errors():
        user = auth.authenticate(payload.email, payload.password)
    if not user:
        raise HTTPException(status_code=401, detail="invalid credentials")
    _login_rate_limiter.reset(_login_key(request))
    return {
        "access_token": auth.issue_token(user),
        "token_type": "bearer",
        "expires_in": settings.JWT_EXPIRE_HOURS * 3600,
        "user": {"id": user.id, "email": user.email},
        "profile": auth.profile(user),
    }


@router.get("/me")
def me(user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    return {
        "success": True,
        "user": {"id": user.id, "email": user.email},
        "profile": services.AuthService(db).profile(user),
    }


@router.post("/register-admin", status_code=status.HTTP_201_CREATED)
def register_admin(payload: RegisterAdminIn, db: Session = Depends(get_session)):
    """Create an admin account that stays pending until the office approves it."""
    with service_errors():
        user = services.AuthService(db).register_admin(payload.email, payload.password, payload.full_name)
    logger.info("admin_registered user_id=%s", user.id)
    return {"success": True, "user": services.user_to_dict(user)}
