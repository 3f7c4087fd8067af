"""Competition and declared winners."""

import re
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from arena.database import Base
from arena.timeutil import utcnow


def slugify(name: str) -> str:
    """'Crypto Sprint!! 2024' -> 'crypto-sprint-2024'."""
    slug = name.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug, flags=re.ASCII)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


class Competition(Base):
    """A priced contest. All participants trade the same synthetic candle series."""

    __tablename__ = "competitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    entry_fee: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    prize_pool: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    max_participants: Mapped[int | None] = mapped_column(Integer, nullable=True)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)  # admin user id
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    results_declared_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint("entry_fee >= 0", name="entry_fee_non_negative"),
        CheckConstraint("prize_pool >= 0", name="prize_pool_non_negative"),
        CheckConstraint(
            "max_participants IS NULL OR max_participants >= 1", name="max_participants_min"
        ),
    )

    @validates("name")
    def _regenerate_slug(self, key: str, value: str) -> str:
        # Slug follows the name on creation and on every rename
        value = value.strip()
        self.slug = slugify(value)
        return value


class CompetitionWinner(Base):
    """Top-N snapshot written once when results are declared."""

    __tablename__ = "competition_winners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    competition_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    portfolio_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    profit_loss: Mapped[float | None] = mapped_column(Float, nullable=True)  # percent

    __table_args__ = (
        Index("ix_competition_winners_comp_rank", "competition_id", "rank", unique=True),
    )
