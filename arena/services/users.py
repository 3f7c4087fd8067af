"""Accounts: registration, login, profiles and the admin user views."""

import logging

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import settings
from arena.errors import ConflictError, NotFoundError, UnauthorizedError
from arena.models.competition import Competition
from arena.models.participation import Participation
from arena.models.user import ROLE_USER, User
from arena.services.security import create_token, hash_password, verify_password
from arena.services.wallet import credit_wallet, transaction_to_dict
from arena.timeutil import isoformat

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "walletBalance": user.wallet_balance,
        "exposure": user.exposure,
        "availableBalance": user.available_balance,
        "createdAt": isoformat(user.created_at),
    }


async def get_user(session: AsyncSession, user_id: int, for_update: bool = False) -> User:
    stmt = select(User).where(User.id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    user = (await session.execute(stmt)).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found", "USER_NOT_FOUND")
    return user


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def register_user(
    session: AsyncSession, name: str, email: str, password: str, role: str = ROLE_USER
) -> User:
    email = email.strip().lower()
    if await get_user_by_email(session, email) is not None:
        raise ConflictError("Email already registered", "EMAIL_EXISTS")

    user = User(
        name=name.strip(),
        email=email,
        password_hash=hash_password(password),
        role=role,
        wallet_balance=settings.default_wallet_balance,
        exposure=0.0,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as e:
        # Lost a race with a concurrent registration for the same email
        await session.rollback()
        raise ConflictError("Email already registered", "EMAIL_EXISTS") from e
    await session.refresh(user)
    logger.info("User registered: %d (%s)", user.id, user.role)
    return user


async def authenticate(session: AsyncSession, email: str, password: str) -> tuple[str, User]:
    """Check credentials and issue a token. Unknown email and bad password look the same."""
    user = await get_user_by_email(session, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", email.strip().lower())
        raise UnauthorizedError("Invalid credentials", "INVALID_CREDENTIALS")
    return issue_token(user), user


def issue_token(user: User) -> str:
    return create_token(user.id, user.email, user.role)


async def list_users(
    session: AsyncSession,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    role: str | None = None,
) -> tuple[list[User], int]:
    page = max(1, page)
    limit = max(1, min(MAX_PAGE_SIZE, limit))

    conditions = []
    if search and search.strip():
        term = search.strip()
        conditions.append(or_(
            User.name.icontains(term, autoescape=True),
            User.email.icontains(term, autoescape=True),
        ))
    if role:
        conditions.append(User.role == role)

    stmt = (
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    users = list((await session.execute(stmt)).scalars().all())
    total = (
        await session.execute(select(func.count()).select_from(User).where(*conditions))
    ).scalar_one()
    return users, total


async def get_user_details(session: AsyncSession, user_id: int) -> dict:
    """Profile plus every competition the user joined, newest first."""
    user = await get_user(session, user_id)
    rows = (
        await session.execute(
            select(Participation, Competition)
            .outerjoin(Competition, Competition.id == Participation.competition_id)
            .where(Participation.user_id == user_id)
            .order_by(Participation.joined_at.desc(), Participation.id.desc())
        )
    ).all()

    participations = [
        {
            "id": p.id,
            "competitionId": p.competition_id,
            "competitionName": c.name if c is not None else "Unknown Competition",
            "joinedAt": isoformat(p.joined_at),
            "entryFee": (c.entry_fee if c is not None else 0) or 0,
            "prizePool": (c.prize_pool if c is not None else 0) or 0,
        }
        for p, c in rows
    ]
    data = user_to_dict(user)
    data["participations"] = participations
    data["totalParticipations"] = len(participations)
    return data


async def credit_user(
    session: AsyncSession, user_id: int, amount: float, description: str | None = None
) -> tuple[User, dict]:
    """Admin top-up. Returns the refreshed user and the ledger row."""
    user = await get_user(session, user_id, for_update=True)
    txn = credit_wallet(session, user, amount, description or "Top-up")
    await session.commit()
    await session.refresh(user)
    await session.refresh(txn)
    logger.info("Credited %.2f to user %d, wallet now %.2f", amount, user_id, user.wallet_balance)
    return user, transaction_to_dict(txn)


async def get_users_by_ids(session: AsyncSession, user_ids: set[int]) -> dict[int, User]:
    if not user_ids:
        return {}
    result = await session.execute(select(User).where(User.id.in_(user_ids)))
    return {u.id: u for u in result.scalars().all()}
