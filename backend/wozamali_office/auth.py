"""Authentication helpers and FastAPI security dependency.

This module decodes bearer JWTs and exposes the `get_current_user`
dependency. Tokens are HS256 JWTs in the shape the hosted auth service
issues (`sub` = user id, `aud` = `authenticated`), so tokens minted by
`AuthService.issue_token` and tokens issued by Supabase Auth with the
same project secret are both accepted.

Token verification raises HTTPExceptions on failure so it can be used
directly inside route dependencies.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from sqlmodel import Session
from .config import settings
from .database import get_session
from . import models, repositories

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail='invalid token')


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
) -> models.User:
    """FastAPI dependency that returns the authenticated user.

    Raises HTTPException(401) when the bearer token is missing or invalid,
    or when it names a user that no longer exists. A user whose role is
    only set through `role_id` gets the catalogue name copied onto
    `users.role`, so role checks and the profile agree.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail='missing bearer token')
    payload = decode_token(credentials.credentials)
    user_id = payload.get('sub')
    if not user_id:
        raise HTTPException(status_code=401, detail='invalid token payload')
    user = repositories.UserRepository(db).get(user_id)
    if not user:
        raise HTTPException(status_code=401, detail='user not found')
    if not user.role and user.role_id:
        role_name = repositories.RoleRepository(db).role_name_for(user)
        if role_name:
            user.role = role_name
            user = repositories.UserRepository(db).save(user)
    return user
