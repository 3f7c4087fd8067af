"""Competition API routes: browse, create, join, ranking and chart."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field, field_validator, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from arena.api.auth import get_current_user, get_optional_user
from arena.api.responses import CamelModel, paginated, success
from arena.database import get_db
from arena.errors import UnauthorizedError
from arena.models.user import User
from arena.services import competitions as competition_service
from arena.services.patch import field_update
from arena.services.ranking import paginate_ranked
from arena.timeutil import as_utc

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/competitions", tags=["competitions"])

_WINDOW_ERROR = "End date must be after start date"


def _check_dates(starts_at: datetime | None, ends_at: datetime | None) -> None:
    if starts_at is not None and ends_at is not None and as_utc(ends_at) <= as_utc(starts_at):
        raise ValueError(_WINDOW_ERROR)


class CompetitionCreateRequest(CamelModel):
    """Body for creating a competition."""

    name: str = Field(..., min_length=3, max_length=100)
    description: str | None = Field(None, max_length=500)
    entry_fee: float = Field(..., ge=0)
    prize_pool: float = Field(..., ge=0)
    max_participants: int | None = Field(None, ge=1)
    starts_at: datetime | None = None
    ends_at: datetime | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Name must be between 3 and 100 characters")
        return v

    @model_validator(mode="after")
    def _window(self) -> "CompetitionCreateRequest":
        _check_dates(self.starts_at, self.ends_at)
        return self

    def to_new_competition(self) -> competition_service.NewCompetition:
        return competition_service.NewCompetition(
            name=self.name,
            description=self.description,
            entry_fee=self.entry_fee,
            prize_pool=self.prize_pool,
            max_participants=self.max_participants,
            starts_at=self.starts_at,
            ends_at=self.ends_at,
        )


class CompetitionUpdateRequest(CamelModel):
    """Partial update. Omitted fields are untouched; null or "" clears optional ones."""

    name: str | None = Field(None, min_length=3, max_length=100)
    description: str | None = Field(None, max_length=500)
    entry_fee: float | None = Field(None, ge=0)
    prize_pool: float | None = Field(None, ge=0)
    max_participants: int | None = Field(None, ge=1)
    starts_at: datetime | None = None
    ends_at: datetime | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_is_null(cls, v):
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Name must be between 3 and 100 characters")
        return v

    @model_validator(mode="after")
    def _window(self) -> "CompetitionUpdateRequest":
        _check_dates(self.starts_at, self.ends_at)
        return self

    def to_update(self) -> competition_service.CompetitionUpdate:
        return competition_service.CompetitionUpdate(
            name=field_update(self, "name"),
            description=field_update(self, "description"),
            entry_fee=field_update(self, "entry_fee"),
            prize_pool=field_update(self, "prize_pool"),
            max_participants=field_update(self, "max_participants"),
            starts_at=field_update(self, "starts_at"),
            ends_at=field_update(self, "ends_at"),
        )


@router.get("")
async def list_competitions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = Query(None, max_length=100),
    sort: str | None = Query(None, max_length=20),
    joined: bool | None = None,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """List competitions. `joined` filters by the caller's entries and needs a login."""
    if joined is not None and user is None:
        raise UnauthorizedError("Authentication required to filter by joined", "UNAUTHORIZED")
    data, total = await competition_service.list_competitions(
        db,
        page=page,
        limit=limit,
        search=search,
        sort=sort,
        joined=joined,
        user_id=user.id if user else None,
    )
    return paginated(data, page, limit, total)


@router.get("/{competition_id}")
async def get_competition(
    competition_id: int,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    data = await competition_service.get_competition(
        db, competition_id, user_id=user.id if user else None
    )
    return success(data)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_competition(
    req: CompetitionCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Any signed-in user may create; the creator is only recorded on the admin route."""
    competition = await competition_service.create_competition(db, req.to_new_competition())
    logger.info("Competition %d created via public route by user %d", competition.id, user.id)
    return success(competition_service.competition_to_dict(competition, participant_count=0))


@router.post("/{competition_id}/join")
async def join_competition(
    competition_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    participation_id = await competition_service.join_competition(db, user.id, competition_id)
    return success({
        "participationId": participation_id,
        "message": "Successfully joined competition",
    })


@router.get("/{competition_id}/participants")
async def list_participants(
    competition_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Ranked participants. Ranks are global, so page 2 starts at limit + 1."""
    ranked = await competition_service.get_competition_participants(db, competition_id)
    page_rows = paginate_ranked(ranked, page, limit)
    return paginated(
        [competition_service.participant_to_dict(p, competition_id) for p in page_rows],
        page,
        limit,
        len(ranked),
    )


@router.get("/{competition_id}/chart")
async def get_chart(
    competition_id: int,
    from_: int | None = Query(None, alias="from", ge=0),
    to: int | None = Query(None, ge=0),
    res: str | None = Query(None, max_length=10),
    db: AsyncSession = Depends(get_db),
):
    """Candles between `from` and `to` (Unix seconds, inclusive)."""
    candles = await competition_service.get_chart_data(db, competition_id, from_, to, res)
    return success({"candles": candles})
