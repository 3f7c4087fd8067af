"""User account with wallet and locked exposure."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from arena.database import Base
from arena.timeutil import utcnow

ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"


class User(Base):
    """A registered user. Available balance is wallet_balance - exposure."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)  # lowercase
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(10), nullable=False, default=ROLE_USER)  # USER, ADMIN
    wallet_balance: Mapped[float] = mapped_column(Float, nullable=False, default=100.0)
    exposure: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)  # locked entry fees
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    __table_args__ = (
        CheckConstraint("wallet_balance >= 0", name="wallet_non_negative"),
        CheckConstraint("exposure >= 0", name="exposure_non_negative"),
        CheckConstraint("role IN ('USER', 'ADMIN')", name="role_valid"),
    )

    @property
    def available_balance(self) -> float:
        return (self.wallet_balance or 0.0) - (self.exposure or 0.0)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
