"""Append-only wallet ledger."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from arena.database import Base
from arena.timeutil import utcnow

DEBIT = "DEBIT"
CREDIT = "CREDIT"


class Transaction(Base):
    """Every balance-affecting event. Balances are available balance (wallet - exposure)."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(6), nullable=False)  # DEBIT, CREDIT
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    balance_before: Mapped[float | None] = mapped_column(Float, nullable=True)
    balance_after: Mapped[float | None] = mapped_column(Float, nullable=True)
    competition_id: Mapped[int | None] = mapped_column(Integer, nullable=True)  # set for joins
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("ix_transactions_user_created", "user_id", "created_at"),
        CheckConstraint("amount >= 0", name="amount_non_negative"),
        CheckConstraint("type IN ('DEBIT', 'CREDIT')", name="type_valid"),
    )
