"""A user's entry into a competition."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from arena.database import Base
from arena.timeutil import utcnow


class Participation(Base):
    """At most one per (user, competition). Never updated."""

    __tablename__ = "participations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    competition_id: Mapped[int] = mapped_column(Integer, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("ix_participations_user_comp", "user_id", "competition_id", unique=True),
        Index("ix_participations_comp", "competition_id"),
        Index("ix_participations_joined_at", "joined_at"),
    )
