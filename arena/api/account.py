"""Auth API routes: register, login, logout, profile and own ledger."""

import logging
import re

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import EmailStr, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from arena.api.auth import clear_token_cookie, get_current_user, set_token_cookie
from arena.api.responses import CamelModel, paginated, success
from arena.database import get_db
from arena.models.user import User
from arena.services import users as user_service
from arena.services.rate_limit import auth_rate_limiter
from arena.services.wallet import list_transactions, transaction_to_dict

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])

_HAS_LETTER = re.compile(r"[A-Za-z]")
_HAS_DIGIT = re.compile(r"\d")


class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr = Field(..., max_length=100)
    password: str = Field(..., min_length=8, max_length=100)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be between 2 and 50 characters")
        return v

    @field_validator("password")
    @classmethod
    def _password_strength(cls, v: str) -> str:
        if not _HAS_LETTER.search(v) or not _HAS_DIGIT.search(v):
            raise ValueError("Password must contain at least one letter and one number")
        return v


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_rate_limiter)],
)
async def register(req: RegisterRequest, response: Response, db: AsyncSession = Depends(get_db)):
    user = await user_service.register_user(db, req.name, req.email, req.password)
    token = user_service.issue_token(user)
    set_token_cookie(response, token)
    return success({"token": token, "user": user_service.user_to_dict(user)})


@router.post("/login", dependencies=[Depends(auth_rate_limiter)])
async def login(req: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    token, user = await user_service.authenticate(db, req.email, req.password)
    set_token_cookie(response, token)
    return success({"token": token, "user": user_service.user_to_dict(user)})


@router.post("/logout")
async def logout(response: Response):
    clear_token_cookie(response)
    return success({"message": "Logged out successfully"})


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return success(user_service.user_to_dict(user))


@router.get("/me/transactions")
async def my_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await list_transactions(db, page=page, limit=limit, user_id=user.id)
    return paginated([transaction_to_dict(t) for t in rows], page, limit, total)
