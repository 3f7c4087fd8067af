"""Builders for test data. Rows go straight to the database, skipping the API."""

import itertools
from datetime import datetime, timedelta

from arena.models.candle import Candle
from arena.models.competition import Competition
from arena.models.participation import Participation
from arena.models.user import ROLE_ADMIN, ROLE_USER, User
from arena.services.security import create_token, hash_password
from arena.timeutil import utcnow

DEFAULT_PASSWORD = "Passw0rd123"

_password_hash: str | None = None
_seq = itertools.count(1)


def _default_hash() -> str:
    # bcrypt is slow; hash once per run
    global _password_hash
    if _password_hash is None:
        _password_hash = hash_password(DEFAULT_PASSWORD)
    return _password_hash


async def make_user(session, **kwargs) -> User:
    """Persist a user with sensible defaults."""
    n = next(_seq)
    defaults = {
        "name": f"Trader {n}",
        "email": f"trader{n}@example.com",
        "password_hash": _default_hash(),
        "role": ROLE_USER,
        "wallet_balance": 100.0,
        "exposure": 0.0,
    }
    defaults.update(kwargs)
    user = User(**defaults)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def make_admin(session, **kwargs) -> User:
    kwargs.setdefault("role", ROLE_ADMIN)
    kwargs.setdefault("name", "Admin User")
    kwargs.setdefault("email", "admin@example.com")
    return await make_user(session, **kwargs)


async def make_competition(session, **kwargs) -> Competition:
    """Persist an open competition (no time window, no cap) unless overridden."""
    defaults = {
        "name": "Crypto Sprint",
        "entry_fee": 10.0,
        "prize_pool": 1000.0,
        "max_participants": None,
        "starts_at": None,
        "ends_at": None,
    }
    defaults.update(kwargs)
    competition = Competition(**defaults)
    session.add(competition)
    await session.commit()
    await session.refresh(competition)
    return competition


async def make_candles(session, competition_id: int, closes: list[tuple[int, float]]) -> list[Candle]:
    """One flat-bodied candle per (time, close); open equals close."""
    rows = [
        Candle(
            competition_id=competition_id,
            time=t,
            open=close,
            high=close,
            low=close,
            close=close,
            volume=1000,
        )
        for t, close in closes
    ]
    session.add_all(rows)
    await session.commit()
    return rows


async def make_participation(session, user_id: int, competition_id: int, joined_at: datetime) -> Participation:
    p = Participation(user_id=user_id, competition_id=competition_id, joined_at=joined_at)
    session.add(p)
    await session.commit()
    await session.refresh(p)
    return p


def auth_header(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_token(user.id, user.email, user.role)}"}


def days_ago(days: float) -> datetime:
    return utcnow() - timedelta(days=days)


def days_ahead(days: float) -> datetime:
    return utcnow() + timedelta(days=days)
