"""Participant ranking by portfolio value.

Every participant implicitly buys the competition's instrument with their
entry fee at the price in force when they joined, and is valued at the
latest price:

    entry price   = close of the last candle at or before join time
                    (first candle's open if they joined before the series,
                     default price if there are no candles)
    portfolio     = entry_fee * current_price / entry_price
    profit/loss % = (portfolio - entry_fee) / entry_fee * 100

Rankings are computed on read; nothing here touches the database.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from typing import Protocol, Sequence

from arena.timeutil import as_utc, to_unix

DEFAULT_PRICE = 100.0


class PricePoint(Protocol):
    time: int
    open: float | None
    close: float | None


@dataclass
class RankedParticipant:
    participation_id: int
    user_id: int
    joined_at: datetime
    entry_price: float
    portfolio_value: float
    profit_loss: float  # percent
    rank: int = 0
    name: str = ""
    email: str = ""


def round2(value: float) -> float:
    """Round half up to 2 decimals (2.345 -> 2.35, -2.345 -> -2.34).

    Works on the shortest decimal repr so 2.345 is not seen as 2.34499...
    """
    scaled = Decimal(repr(value)) * 100 + Decimal("0.5")
    return float(scaled.to_integral_value(rounding=ROUND_FLOOR) / 100)


def find_entry_index(candles: Sequence[PricePoint], join_ts: int) -> int:
    """Index of the latest candle with time <= join_ts, or -1 if none."""
    lo, hi = 0, len(candles) - 1
    idx = -1
    while lo <= hi:
        mid = (lo + hi) // 2
        if candles[mid].time <= join_ts:
            idx = mid
            lo = mid + 1
        else:
            hi = mid - 1
    return idx


def price_bounds(candles: Sequence[PricePoint]) -> tuple[float, float]:
    """(default_price, current_price) for an ascending candle series."""
    if not candles:
        return DEFAULT_PRICE, DEFAULT_PRICE
    default_price = candles[0].open or DEFAULT_PRICE
    current_price = candles[-1].close or default_price
    return default_price, current_price


def entry_price_at(candles: Sequence[PricePoint], join_ts: int, default_price: float) -> float:
    if not candles:
        return default_price
    idx = find_entry_index(candles, join_ts)
    if idx >= 0:
        c = candles[idx]
        if c.close is not None:
            return c.close
        if c.open is not None:
            return c.open
        return default_price
    first_open = candles[0].open
    return first_open if first_open is not None else default_price


def value_position(entry_fee: float, entry_price: float, current_price: float) -> tuple[float, float]:
    """(portfolio_value, profit_loss_pct), both rounded to 2 decimals."""
    base = entry_fee or 0.0
    ratio = current_price / entry_price if entry_price > 0 else 1.0
    portfolio_value = base * ratio if base > 0 else 0.0
    profit_loss = (portfolio_value - base) / base * 100 if base > 0 else 0.0
    return round2(portfolio_value), round2(profit_loss)


def rank_participants(
    candles: Sequence[PricePoint],
    entry_fee: float,
    participations: Sequence,
) -> list[RankedParticipant]:
    """Value and rank every participation.

    `candles` must be sorted by time ascending. Each participation needs `id`,
    `user_id` and `joined_at`. Ties on portfolio value go to the earlier joiner,
    then to the lower participation id.
    """
    default_price, current_price = price_bounds(candles)

    ranked = []
    for p in participations:
        entry_price = entry_price_at(candles, to_unix(p.joined_at), default_price)
        portfolio_value, profit_loss = value_position(entry_fee, entry_price, current_price)
        ranked.append(RankedParticipant(
            participation_id=p.id,
            user_id=p.user_id,
            joined_at=p.joined_at,
            entry_price=entry_price,
            portfolio_value=portfolio_value,
            profit_loss=profit_loss,
        ))

    ranked.sort(key=lambda r: (-r.portfolio_value, as_utc(r.joined_at), r.participation_id))
    for position, r in enumerate(ranked):
        r.rank = position + 1
    return ranked


def paginate_ranked(
    ranked: list[RankedParticipant], page: int | None, limit: int | None
) -> list[RankedParticipant]:
    """Slice an already-ranked list. Ranks stay global."""
    if not page or not limit:
        return ranked
    page = max(1, page)
    limit = max(1, limit)
    start = (page - 1) * limit
    return ranked[start:start + limit]
