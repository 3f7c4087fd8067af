"""Dashboard time series: per-day or per-month counts and revenue.

Buckets are formatted date strings ("2024-05-01" or "2024-05") computed in
SQL, so the grouping runs in the database rather than in Python.
"""

import logging
from datetime import datetime, timedelta
from typing import Literal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from arena.models.competition import Competition
from arena.models.participation import Participation
from arena.models.user import User
from arena.timeutil import as_utc, utcnow

logger = logging.getLogger(__name__)

Granularity = Literal["day", "month"]

DEFAULT_DAY_WINDOW = timedelta(days=30)
DEFAULT_MONTH_WINDOW = 12  # months

_PG_FORMATS = {"day": "YYYY-MM-DD", "month": "YYYY-MM"}
_SQLITE_FORMATS = {"day": "%Y-%m-%d", "month": "%Y-%m"}


def default_window(end: datetime, granularity: Granularity) -> datetime:
    """Start of the default window ending at `end`."""
    if granularity == "month":
        # First day of the month DEFAULT_MONTH_WINDOW - 1 months back
        month_index = end.year * 12 + end.month - 1 - (DEFAULT_MONTH_WINDOW - 1)
        return end.replace(
            year=month_index // 12, month=month_index % 12 + 1, day=1,
            hour=0, minute=0, second=0, microsecond=0,
        )
    return end - DEFAULT_DAY_WINDOW


def _bucket(session: AsyncSession, column, granularity: Granularity):
    if session.get_bind().dialect.name == "postgresql":
        return func.to_char(func.timezone("UTC", column), _PG_FORMATS[granularity])
    return func.strftime(_SQLITE_FORMATS[granularity], column)


async def _series(session: AsyncSession, bucket, value, where, join=None) -> list[dict]:
    stmt = select(bucket.label("day"), value.label("value"))
    if join is not None:
        stmt = stmt.select_from(join)
    stmt = stmt.where(*where).group_by("day").order_by("day")
    rows = (await session.execute(stmt)).all()
    return [{"day": day, "value": v} for day, v in rows]


async def get_timeseries(
    session: AsyncSession,
    start: datetime | None = None,
    end: datetime | None = None,
    granularity: Granularity = "day",
) -> dict[str, list[dict]]:
    """Users, competitions and participations counted per bucket, plus revenue.

    Revenue for a bucket is the sum of entry fees of the competitions joined
    in it. The window is inclusive at both ends.
    """
    if granularity not in ("day", "month"):
        granularity = "day"
    end = as_utc(end) if end is not None else utcnow()
    start = as_utc(start) if start is not None else default_window(end, granularity)

    users_day = _bucket(session, User.created_at, granularity)
    comps_day = _bucket(session, Competition.created_at, granularity)
    joins_day = _bucket(session, Participation.joined_at, granularity)

    users = await _series(
        session, users_day, func.count(User.id),
        [User.created_at >= start, User.created_at <= end],
    )
    competitions = await _series(
        session, comps_day, func.count(Competition.id),
        [Competition.created_at >= start, Competition.created_at <= end],
    )
    join_window = [Participation.joined_at >= start, Participation.joined_at <= end]
    participations = await _series(session, joins_day, func.count(Participation.id), join_window)
    revenue = await _series(
        session,
        joins_day,
        func.coalesce(func.sum(func.coalesce(Competition.entry_fee, 0.0)), 0.0),
        join_window,
        join=Participation.__table__.join(
            Competition.__table__, Competition.id == Participation.competition_id
        ),
    )

    logger.debug(
        "Time series %s..%s by %s: %d users, %d competitions, %d joins",
        start, end, granularity, len(users), len(competitions), len(participations),
    )
    return {
        "users": users,
        "competitions": competitions,
        "participations": participations,
        "revenue": revenue,
    }
