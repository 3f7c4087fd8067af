"""Synthetic OHLCV candle for a competition's price series."""

from sqlalchemy import BigInteger, CheckConstraint, Float, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from arena.database import Base


class Candle(Base):
    """One bar. `time` is Unix seconds; prices are unitless floats."""

    __tablename__ = "candles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    competition_id: Mapped[int] = mapped_column(Integer, nullable=False)
    time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    open: Mapped[float] = mapped_column(Float, nullable=False)
    high: Mapped[float] = mapped_column(Float, nullable=False)
    low: Mapped[float] = mapped_column(Float, nullable=False)
    close: Mapped[float] = mapped_column(Float, nullable=False)
    volume: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_candles_comp_time", "competition_id", "time", unique=True),
        CheckConstraint("low >= 0 AND volume >= 0", name="non_negative"),
        CheckConstraint("high >= open AND high >= close", name="high_bounds"),
        CheckConstraint("low <= open AND low <= close", name="low_bounds"),
    )
