"""Competition lifecycle: CRUD, joining, ranking and results.

Join is the only path that moves money. It checks eligibility in a fixed
order, then inserts the participation, locks the entry fee as exposure and
appends the ledger row in one database transaction. The competition and user
rows are read FOR UPDATE so concurrent joins on the same competition queue up
behind each other, which keeps max_participants a hard cap on PostgreSQL.
The unique (user_id, competition_id) index is the last line of defence
against double joins.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.config import settings
from arena.errors import AppError, BadRequestError, ConflictError, NotFoundError, ValidationError
from arena.models.candle import Candle
from arena.models.competition import Competition, CompetitionWinner
from arena.models.participation import Participation
from arena.models.user import User
from arena.services import candles as candle_service
from arena.services import ranking
from arena.services.patch import CLEAR, UNSET, FieldUpdate, Set
from arena.services.wallet import available_balance, lock_entry_fee
from arena.timeutil import as_utc, isoformat, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 3

# ?sort=<key>[:asc|desc]
SORT_FIELDS = {
    "prize": Competition.prize_pool,
    "fee": Competition.entry_fee,
    "name": Competition.name,
    "created": Competition.created_at,
}


@dataclass
class NewCompetition:
    name: str
    entry_fee: float
    prize_pool: float
    description: str | None = None
    max_participants: int | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None


@dataclass
class CompetitionUpdate:
    name: FieldUpdate = UNSET
    description: FieldUpdate = UNSET
    entry_fee: FieldUpdate = UNSET
    prize_pool: FieldUpdate = UNSET
    max_participants: FieldUpdate = UNSET
    starts_at: FieldUpdate = UNSET
    ends_at: FieldUpdate = UNSET


def _check_window(starts_at: datetime | None, ends_at: datetime | None) -> None:
    if starts_at is not None and ends_at is not None and as_utc(ends_at) <= as_utc(starts_at):
        raise ValidationError(fields={"endsAt": ["End date must be after start date"]})


async def _get_or_404(session: AsyncSession, competition_id: int, for_update: bool = False) -> Competition:
    stmt = select(Competition).where(Competition.id == competition_id)
    if for_update:
        stmt = stmt.with_for_update()
    competition = (await session.execute(stmt)).scalar_one_or_none()
    if competition is None:
        raise NotFoundError("Competition not found", "COMPETITION_NOT_FOUND")
    return competition


async def count_participants(session: AsyncSession, competition_id: int) -> int:
    result = await session.execute(
        select(func.count()).select_from(Participation)
        .where(Participation.competition_id == competition_id)
    )
    return result.scalar_one()


async def has_joined(session: AsyncSession, user_id: int, competition_id: int) -> bool:
    result = await session.execute(
        select(Participation.id).where(
            Participation.user_id == user_id,
            Participation.competition_id == competition_id,
        )
    )
    return result.first() is not None


async def get_winners(session: AsyncSession, competition_id: int) -> list[CompetitionWinner]:
    result = await session.execute(
        select(CompetitionWinner)
        .where(CompetitionWinner.competition_id == competition_id)
        .order_by(CompetitionWinner.rank)
    )
    return list(result.scalars().all())


def competition_to_dict(
    c: Competition,
    participant_count: int | None = None,
    joined: bool | None = None,
    winners: list[CompetitionWinner] | None = None,
) -> dict:
    data = {
        "id": c.id,
        "name": c.name,
        "slug": c.slug,
        "description": c.description,
        "entryFee": c.entry_fee,
        "prizePool": c.prize_pool,
        "maxParticipants": c.max_participants,
        "startsAt": isoformat(c.starts_at),
        "endsAt": isoformat(c.ends_at),
        "createdBy": c.created_by,
        "createdAt": isoformat(c.created_at),
        "resultsDeclaredAt": isoformat(c.results_declared_at),
    }
    if participant_count is not None:
        data["participantCount"] = participant_count
    if joined is not None:
        data["joined"] = joined
    if winners is not None:
        data["winners"] = [
            {
                "userId": w.user_id,
                "rank": w.rank,
                "portfolioValue": w.portfolio_value,
                "profitLoss": w.profit_loss,
            }
            for w in winners
        ]
    return data


def participant_to_dict(p: ranking.RankedParticipant, competition_id: int) -> dict:
    return {
        "id": p.participation_id,
        "user": {"id": p.user_id, "name": p.name, "email": p.email},
        "competitionId": competition_id,
        "joinedAt": isoformat(p.joined_at),
        "rank": p.rank,
        "entryPrice": p.entry_price,
        "portfolioValue": p.portfolio_value,
        "profitLoss": p.profit_loss,
    }


def _sort_clause(sort: str | None):
    if not sort:
        return Competition.created_at.desc()
    key, _, order = sort.partition(":")
    column = SORT_FIELDS.get(key, Competition.created_at)
    return column.asc() if order == "asc" else column.desc()


async def list_competitions(
    session: AsyncSession,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    sort: str | None = None,
    joined: bool | None = None,
    user_id: int | None = None,
) -> tuple[list[dict], int]:
    """One page of competitions with participant counts and the caller's joined flag."""
    conditions = []
    if search:
        conditions.append(Competition.name.icontains(search.strip(), autoescape=True))

    if joined is not None and user_id is not None:
        mine = select(Participation.competition_id).where(Participation.user_id == user_id)
        conditions.append(Competition.id.in_(mine) if joined else Competition.id.not_in(mine))

    stmt = (
        select(Competition)
        .where(*conditions)
        .order_by(_sort_clause(sort), Competition.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    competitions = list((await session.execute(stmt)).scalars().all())
    total = (
        await session.execute(select(func.count()).select_from(Competition).where(*conditions))
    ).scalar_one()

    ids = [c.id for c in competitions]
    counts: dict[int, int] = {}
    joined_ids: set[int] = set()
    if ids:
        rows = await session.execute(
            select(Participation.competition_id, func.count())
            .where(Participation.competition_id.in_(ids))
            .group_by(Participation.competition_id)
        )
        counts = {cid: n for cid, n in rows.all()}
        if user_id is not None:
            rows = await session.execute(
                select(Participation.competition_id).where(
                    Participation.user_id == user_id,
                    Participation.competition_id.in_(ids),
                )
            )
            joined_ids = set(rows.scalars().all())

    data = [
        competition_to_dict(c, participant_count=counts.get(c.id, 0), joined=c.id in joined_ids)
        for c in competitions
    ]
    return data, total


async def get_competition(
    session: AsyncSession, competition_id: int, user_id: int | None = None
) -> dict:
    competition = await _get_or_404(session, competition_id)
    participant_count = await count_participants(session, competition_id)
    joined = await has_joined(session, user_id, competition_id) if user_id is not None else None
    winners = await get_winners(session, competition_id) if competition.results_declared_at else None
    return competition_to_dict(competition, participant_count, joined, winners)


async def create_competition(
    session: AsyncSession,
    data: NewCompetition,
    created_by: int | None = None,
    with_candles: bool | None = None,
) -> Competition:
    """Insert a competition. `with_candles=None` follows the auto_generate_candles setting."""
    _check_window(data.starts_at, data.ends_at)

    description = data.description.strip() if data.description else None
    competition = Competition(
        name=data.name,
        description=description or None,
        entry_fee=data.entry_fee,
        prize_pool=data.prize_pool,
        max_participants=data.max_participants,
        starts_at=data.starts_at,
        ends_at=data.ends_at,
        created_by=created_by,
    )
    session.add(competition)
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.info("Competition create rejected, duplicate slug: %s", e.orig)
        raise ConflictError("slug already exists", "DUPLICATE_KEY") from e
    await session.refresh(competition)

    logger.info("Competition created: %d %r (by %s)", competition.id, competition.slug, created_by)

    if with_candles is None:
        with_candles = settings.auto_generate_candles
    if with_candles:
        try:
            await candle_service.generate_and_save_candles(
                session,
                competition.id,
                count=settings.candle_count,
                interval=settings.candle_interval,
                volatility=settings.candle_volatility,
            )
        except (AppError, ValueError):
            await session.rollback()
            await session.execute(delete(Competition).where(Competition.id == competition.id))
            await session.commit()
            logger.warning("Competition %d removed, candle generation failed", competition.id)
            raise
    return competition


async def update_competition(
    session: AsyncSession, competition_id: int, update: CompetitionUpdate
) -> Competition:
    """Apply a partial update. Required fields ignore Clear."""
    competition = await _get_or_404(session, competition_id)

    if isinstance(update.name, Set):
        competition.name = update.name.value  # slug follows
    if isinstance(update.description, Set):
        competition.description = str(update.description.value).strip() or None
    elif update.description is CLEAR:
        competition.description = None
    if isinstance(update.entry_fee, Set):
        competition.entry_fee = update.entry_fee.value
    if isinstance(update.prize_pool, Set):
        competition.prize_pool = update.prize_pool.value
    for field in ("max_participants", "starts_at", "ends_at"):
        value = getattr(update, field)
        if isinstance(value, Set):
            setattr(competition, field, value.value)
        elif value is CLEAR:
            setattr(competition, field, None)

    try:
        _check_window(competition.starts_at, competition.ends_at)
    except ValidationError:
        await session.rollback()
        raise

    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise ConflictError("slug already exists", "DUPLICATE_KEY") from e
    await session.refresh(competition)
    logger.info("Competition updated: %d", competition.id)
    return competition


async def delete_competition(session: AsyncSession, competition_id: int) -> None:
    """Remove a competition with its participations, candles and winners."""
    competition = await _get_or_404(session, competition_id)
    await session.execute(delete(Participation).where(Participation.competition_id == competition_id))
    await session.execute(delete(Candle).where(Candle.competition_id == competition_id))
    await session.execute(
        delete(CompetitionWinner).where(CompetitionWinner.competition_id == competition_id)
    )
    await session.delete(competition)
    await session.commit()
    logger.info("Competition deleted: %d", competition_id)


async def join_competition(session: AsyncSession, user_id: int, competition_id: int) -> int:
    """Enter a user into a competition. Returns the new participation id."""
    competition = await _get_or_404(session, competition_id, for_update=True)

    if await has_joined(session, user_id, competition_id):
        raise ConflictError("Already joined", "ALREADY_JOINED")

    if competition.max_participants:
        current = await count_participants(session, competition_id)
        if current >= competition.max_participants:
            raise BadRequestError("Competition is full", "COMPETITION_FULL")

    now = utcnow()
    if competition.ends_at is not None and now > as_utc(competition.ends_at):
        raise BadRequestError("Competition has ended", "COMPETITION_ENDED")
    if competition.starts_at is not None and now < as_utc(competition.starts_at):
        raise BadRequestError("Competition has not started yet", "COMPETITION_NOT_STARTED")

    user = (
        await session.execute(select(User).where(User.id == user_id).with_for_update())
    ).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found", "USER_NOT_FOUND")

    entry_fee = competition.entry_fee or 0.0
    if entry_fee > available_balance(user):
        raise BadRequestError("Insufficient balance", "INSUFFICIENT_BALANCE")

    participation = Participation(user_id=user_id, competition_id=competition_id, joined_at=now)
    session.add(participation)
    try:
        await session.flush()
        lock_entry_fee(session, user, entry_fee, competition_id)
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.warning("Duplicate join for user %d competition %d", user_id, competition_id)
        raise ConflictError("Already joined", "ALREADY_JOINED") from e
    except AppError:
        await session.rollback()
        raise

    logger.info(
        "User %d joined competition %d (fee %.2f, exposure now %.2f)",
        user_id, competition_id, entry_fee, user.exposure,
    )
    return participation.id


async def get_competition_participants(
    session: AsyncSession,
    competition_id: int,
    page: int | None = None,
    limit: int | None = None,
) -> list[ranking.RankedParticipant]:
    """Ranked participants. With page and limit, a slice of the global ranking."""
    competition = await _get_or_404(session, competition_id)
    series = await candle_service.load_candles(session, competition_id)

    rows = (
        await session.execute(
            select(Participation, User)
            .outerjoin(User, User.id == Participation.user_id)
            .where(Participation.competition_id == competition_id)
        )
    ).all()
    users = {p.id: u for p, u in rows}

    ranked = ranking.rank_participants(series, competition.entry_fee, [p for p, _ in rows])
    for r in ranked:
        user = users.get(r.participation_id)
        if user is not None:
            r.name = user.name
            r.email = user.email
    return ranking.paginate_ranked(ranked, page, limit)


async def declare_results(
    session: AsyncSession, competition_id: int, top_n: int | None = None
) -> tuple[Competition, list[CompetitionWinner]]:
    """Freeze the top-N of the current ranking. One shot per competition."""
    competition = await _get_or_404(session, competition_id, for_update=True)

    if competition.ends_at is not None and utcnow() < as_utc(competition.ends_at):
        raise BadRequestError("Competition has not ended yet", "COMPETITION_NOT_ENDED")
    if competition.results_declared_at is not None:
        raise ConflictError("Results already declared", "RESULTS_ALREADY_DECLARED")

    participants = await get_competition_participants(session, competition_id)
    if not participants:
        raise BadRequestError("No participants to rank", "NO_PARTICIPANTS")

    top_n = max(1, top_n if top_n is not None else DEFAULT_TOP_N)
    winners = [
        CompetitionWinner(
            competition_id=competition_id,
            user_id=p.user_id,
            rank=p.rank,
            portfolio_value=p.portfolio_value,
            profit_loss=p.profit_loss,
        )
        for p in participants[:top_n]
    ]
    session.add_all(winners)
    competition.results_declared_at = utcnow()
    await session.commit()
    await session.refresh(competition)

    logger.info(
        "Results declared for competition %d: %d winners of %d participants",
        competition_id, len(winners), len(participants),
    )
    return competition, winners


async def get_chart_data(
    session: AsyncSession,
    competition_id: int,
    from_ts: int | None = None,
    to_ts: int | None = None,
    res: str | None = None,
) -> list[dict]:
    """Candles for the chart. `res` is accepted for future resampling and ignored."""
    await _get_or_404(session, competition_id)
    series = await candle_service.load_candles(session, competition_id, from_ts, to_ts)
    return [candle_service.candle_to_dict(c) for c in series]
