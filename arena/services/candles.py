"""Synthetic candle generation and persistence.

Each competition trades one made-up instrument. Its price series is a random
walk: every candle opens at the previous close and moves by at most
+/- volatility. With a seed the walk is reproducible (linear congruential
sequence); without one it starts from a random point in that sequence.

Writes are idempotent per (competition_id, time): duplicate rows are skipped,
any other database error propagates.
"""

import logging
import math
import random
from dataclasses import asdict, dataclass

from sqlalchemy import func, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.errors import ValidationError
from arena.models.candle import Candle
from arena.timeutil import to_unix, utcnow

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 86400  # one day
DEFAULT_BASE_PRICE = 100.0
DEFAULT_VOLATILITY = 0.02
DEFAULT_LOOKBACK = 30 * 86400  # series starts 30 days back unless told otherwise

# LCG constants (period 233280)
_LCG_A = 9301
_LCG_C = 49297
_LCG_M = 233280

_INSERT_CHUNK = 500  # rows per INSERT, keeps SQLite under its bound-parameter limit


@dataclass
class CandleData:
    """A generated bar, not yet persisted."""

    competition_id: int
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: int


class SeededRandom:
    """Deterministic uniform [0, 1) source."""

    def __init__(self, seed: float | None = None) -> None:
        self._state = float(seed) if seed is not None else random.random() * 1000

    def __call__(self) -> float:
        self._state = (self._state * _LCG_A + _LCG_C) % _LCG_M
        return self._state / _LCG_M


def check_candle(open_: float, high: float, low: float, close: float, volume: float) -> list[str]:
    """Return the list of violated price/volume rules (empty when valid)."""
    problems = []
    if min(open_, high, low, close, volume) < 0:
        problems.append("Prices and volume must be non-negative")
    if high < low:
        problems.append("High price must be >= low price")
    if high < open_ or high < close:
        problems.append("High price must be >= open and close prices")
    if low > open_ or low > close:
        problems.append("Low price must be <= open and close prices")
    return problems


def generate_candles(
    competition_id: int,
    count: int,
    start_time: int | None = None,
    interval: int = DEFAULT_INTERVAL,
    base_price: float = DEFAULT_BASE_PRICE,
    volatility: float = DEFAULT_VOLATILITY,
    seed: float | None = None,
) -> list[CandleData]:
    """Build `count` sequential candles spaced `interval` seconds apart."""
    if count < 0:
        raise ValueError("count must be non-negative")
    if volatility < 0:
        raise ValueError("volatility must be non-negative")

    rnd = SeededRandom(seed)
    start = start_time if start_time is not None else to_unix(utcnow()) - DEFAULT_LOOKBACK

    candles: list[CandleData] = []
    price = float(base_price)
    for i in range(count):
        change = (rnd() - 0.5) * 2 * volatility
        open_ = price
        close = open_ * (1 + change)

        high_change = rnd() * volatility * 0.5
        low_change = rnd() * volatility * 0.5
        top = max(open_, close)
        bottom = min(open_, close)
        # Clamp so rounding can never push a wick inside the body
        high = max(top * (1 + high_change), top)
        low = min(bottom * (1 - low_change), bottom)

        volume = math.floor(1000 + rnd() * 99000)

        candles.append(CandleData(
            competition_id=competition_id,
            time=start + i * interval,
            open=open_,
            high=high,
            low=low,
            close=close,
            volume=volume,
        ))
        price = close

    return candles


def _insert_ignoring_duplicates(session: AsyncSession, rows: list[dict]):
    dialect_insert = postgresql.insert if session.get_bind().dialect.name == "postgresql" else sqlite.insert
    return dialect_insert(Candle).values(rows).on_conflict_do_nothing(
        index_elements=["competition_id", "time"]
    )


async def save_candles(session: AsyncSession, candles: list[CandleData]) -> int:
    """Bulk insert candles, skipping (competition_id, time) pairs already stored.

    Rejects the whole batch if any candle breaks the low/high bounds.
    Returns the number of candles submitted.
    """
    if not candles:
        return 0

    for c in candles:
        problems = check_candle(c.open, c.high, c.low, c.close, c.volume)
        if problems:
            raise ValidationError(
                "Invalid candle", fields={f"candles[{c.time}]": problems}, code="INVALID_CANDLE"
            )

    rows = [asdict(c) for c in candles]
    if session.get_bind().dialect.name in ("postgresql", "sqlite"):
        for i in range(0, len(rows), _INSERT_CHUNK):
            await session.execute(_insert_ignoring_duplicates(session, rows[i:i + _INSERT_CHUNK]))
        await session.commit()
        return len(rows)

    # Generic dialect: plain insert, a duplicate key means the series already exists
    try:
        await session.execute(insert(Candle), rows)
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.info("Duplicate candles skipped for competition %s: %s", candles[0].competition_id, e.orig)
    return len(rows)


async def count_candles(session: AsyncSession, competition_id: int) -> int:
    result = await session.execute(
        select(func.count()).select_from(Candle).where(Candle.competition_id == competition_id)
    )
    return result.scalar_one()


async def generate_and_save_candles(
    session: AsyncSession,
    competition_id: int,
    count: int,
    start_time: int | None = None,
    interval: int = DEFAULT_INTERVAL,
    base_price: float = DEFAULT_BASE_PRICE,
    volatility: float = DEFAULT_VOLATILITY,
    seed: float | None = None,
) -> int:
    """Generate a series for a competition that has none. Returns candles written (0 = no-op)."""
    existing = await count_candles(session, competition_id)
    if existing > 0:
        logger.info(
            "Chart data already exists for competition %d (%d candles), skipping",
            competition_id, existing,
        )
        return 0

    candles = generate_candles(
        competition_id,
        count,
        start_time=start_time,
        interval=interval,
        base_price=base_price,
        volatility=volatility,
        seed=seed,
    )
    written = await save_candles(session, candles)
    logger.info("Generated %d candles for competition %d", written, competition_id)
    return written


async def load_candles(
    session: AsyncSession,
    competition_id: int,
    from_ts: int | None = None,
    to_ts: int | None = None,
) -> list[Candle]:
    """Candles for a competition in ascending time, optionally bounded (inclusive)."""
    stmt = select(Candle).where(Candle.competition_id == competition_id)
    if from_ts is not None:
        stmt = stmt.where(Candle.time >= from_ts)
    if to_ts is not None:
        stmt = stmt.where(Candle.time <= to_ts)
    result = await session.execute(stmt.order_by(Candle.time.asc()))
    return list(result.scalars().all())


def candle_to_dict(c: Candle) -> dict:
    return {
        "time": c.time,
        "open": c.open,
        "high": c.high,
        "low": c.low,
        "close": c.close,
        "volume": c.volume,
    }
