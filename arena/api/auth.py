"""JWT authentication dependencies.

The token is read from `Authorization: Bearer <jwt>` first, then from the
httpOnly `token` cookie set at login.
"""

import logging

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import settings
from arena.database import get_db
from arena.errors import ForbiddenError, NotFoundError, UnauthorizedError
from arena.models.user import User
from arena.services.security import decode_token, token_lifetime
from arena.services.users import get_user

logger = logging.getLogger(__name__)

TOKEN_COOKIE = "token"

_bearer = HTTPBearer(auto_error=False)


def _extract_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    if credentials is not None and credentials.scheme.lower() == "bearer" and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(TOKEN_COOKIE) or None


async def _user_from_token(session: AsyncSession, token: str) -> User:
    payload = decode_token(token)
    try:
        return await get_user(session, int(payload["id"]))
    except (NotFoundError, TypeError, ValueError) as e:
        raise UnauthorizedError("User not found", "UNAUTHORIZED") from e


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Require a valid token. 401 otherwise."""
    token = _extract_token(request, credentials)
    if not token:
        raise UnauthorizedError("Authentication required", "UNAUTHORIZED")
    return await _user_from_token(db, token)


async def get_optional_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """The caller if a valid token was sent, else None. Bad tokens are ignored."""
    token = _extract_token(request, credentials)
    if not token:
        return None
    try:
        return await _user_from_token(db, token)
    except UnauthorizedError:
        return None


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        logger.warning("Non-admin user %d tried an admin route", user.id)
        raise ForbiddenError("Admin access required", "FORBIDDEN")
    return user


def set_token_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        max_age=int(token_lifetime().total_seconds()),
        httponly=True,
        secure=settings.is_production,
        samesite="none" if settings.is_production else "lax",
    )


def clear_token_cookie(response: Response) -> None:
    response.delete_cookie(
        TOKEN_COOKIE,
        httponly=True,
        secure=settings.is_production,
        samesite="none" if settings.is_production else "lax",
    )
