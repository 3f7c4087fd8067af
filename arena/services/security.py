"""Password hashing and JWT tokens.

Tokens carry {id, email, role, exp} signed with HS256. Lifetime comes from
JWT_EXPIRES_IN ("7d", "24h", "30m", "45s").
"""

import logging
from datetime import timedelta

from jose import JWTError, jwt
from passlib.context import CryptContext

from arena.config import settings
from arena.errors import UnauthorizedError
from arena.timeutil import utcnow

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
DEFAULT_TOKEN_LIFETIME = timedelta(days=7)

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_salt_rounds,
)


def parse_expires_in(value: str) -> timedelta:
    """Parse '<int><unit>' into a timedelta. Malformed or non-positive input gives 7 days."""
    value = (value or "").strip()
    if len(value) < 2:
        return DEFAULT_TOKEN_LIFETIME
    amount, unit = value[:-1], value[-1]
    if not amount.isdigit() or unit not in _UNIT_SECONDS:
        return DEFAULT_TOKEN_LIFETIME
    seconds = int(amount) * _UNIT_SECONDS[unit]
    if seconds <= 0:
        return DEFAULT_TOKEN_LIFETIME
    return timedelta(seconds=seconds)


def token_lifetime() -> timedelta:
    return parse_expires_in(settings.jwt_expires_in)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # Unrecognised or corrupt hash
        return False


def create_token(user_id: int, email: str, role: str) -> str:
    payload = {
        "id": user_id,
        "email": email,
        "role": role,
        "exp": utcnow() + token_lifetime(),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Verify signature and expiry. Raises UnauthorizedError on any failure."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.debug("Token rejected: %s", e)
        raise UnauthorizedError("Invalid or expired token", "UNAUTHORIZED") from e
    if "id" not in payload or "role" not in payload:
        raise UnauthorizedError("Invalid or expired token", "UNAUTHORIZED")
    return payload
