"""Admin API routes: competition management, results, users, ledger and metrics."""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from arena.api.auth import require_admin
from arena.api.competitions import CompetitionCreateRequest, CompetitionUpdateRequest
from arena.api.responses import CamelModel, paginated, success
from arena.config import settings
from arena.database import get_db
from arena.models.user import User
from arena.services import candles as candle_service
from arena.services import competitions as competition_service
from arena.services import metrics as metrics_service
from arena.services import users as user_service
from arena.services.wallet import list_transactions, transaction_to_dict
from arena.timeutil import from_unix

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class DeclareResultsRequest(CamelModel):
    top_n: int | None = Field(None, ge=1, le=100)


class GenerateCandlesRequest(CamelModel):
    """Every field optional; unset ones fall back to the configured defaults."""

    count: int | None = Field(None, ge=1, le=5000)
    start_time: int | None = Field(None, ge=0)
    interval: int | None = Field(None, ge=1)
    base_price: float = Field(candle_service.DEFAULT_BASE_PRICE, gt=0)
    volatility: float | None = Field(None, ge=0, le=1)
    seed: float | None = None


class CreditRequest(CamelModel):
    amount: float = Field(..., gt=0)
    description: str | None = Field(None, max_length=200)


# --- Competitions ---


@router.post("/competitions", status_code=status.HTTP_201_CREATED)
async def create_competition(
    req: CompetitionCreateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    competition = await competition_service.create_competition(
        db, req.to_new_competition(), created_by=admin.id
    )
    return success(competition_service.competition_to_dict(competition, participant_count=0))


@router.put("/competitions/{competition_id}")
async def update_competition(
    competition_id: int,
    req: CompetitionUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    competition = await competition_service.update_competition(db, competition_id, req.to_update())
    return success(competition_service.competition_to_dict(competition))


@router.delete("/competitions/{competition_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_competition(competition_id: int, db: AsyncSession = Depends(get_db)):
    await competition_service.delete_competition(db, competition_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/competitions/{competition_id}/participants")
async def competition_participants(competition_id: int, db: AsyncSession = Depends(get_db)):
    """Full ranking, no pagination."""
    ranked = await competition_service.get_competition_participants(db, competition_id)
    return success([competition_service.participant_to_dict(p, competition_id) for p in ranked])


@router.post("/competitions/{competition_id}/results")
async def declare_results(
    competition_id: int,
    req: DeclareResultsRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    top_n = req.top_n if req is not None else None
    competition, winners = await competition_service.declare_results(db, competition_id, top_n)
    return success(competition_service.competition_to_dict(competition, winners=winners))


@router.post("/competitions/{competition_id}/candles")
async def generate_candles(
    competition_id: int,
    req: GenerateCandlesRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Generate the chart series if the competition has none yet."""
    req = req or GenerateCandlesRequest()
    # 404 before generating anything
    await competition_service.get_competition(db, competition_id)
    written = await candle_service.generate_and_save_candles(
        db,
        competition_id,
        count=req.count or settings.candle_count,
        start_time=req.start_time,
        interval=req.interval or settings.candle_interval,
        base_price=req.base_price,
        volatility=req.volatility if req.volatility is not None else settings.candle_volatility,
        seed=req.seed,
    )
    total = await candle_service.count_candles(db, competition_id)
    return success({"generated": written, "total": total})


# --- Users ---


@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = Query(None, max_length=100),
    role: Literal["USER", "ADMIN"] | None = None,
    db: AsyncSession = Depends(get_db),
):
    users, total = await user_service.list_users(db, page=page, limit=limit, search=search, role=role)
    return paginated([user_service.user_to_dict(u) for u in users], page, limit, total)


@router.get("/users/{user_id}")
async def user_details(user_id: int, db: AsyncSession = Depends(get_db)):
    return success(await user_service.get_user_details(db, user_id))


@router.post("/users/{user_id}/credit")
async def credit_user(user_id: int, req: CreditRequest, db: AsyncSession = Depends(get_db)):
    user, txn = await user_service.credit_user(db, user_id, req.amount, req.description)
    return success({"user": user_service.user_to_dict(user), "transaction": txn})


# --- Ledger & metrics ---


@router.get("/transactions")
async def all_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: int | None = Query(None, alias="userId"),
    type_: Literal["DEBIT", "CREDIT"] | None = Query(None, alias="type"),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await list_transactions(db, page=page, limit=limit, user_id=user_id, txn_type=type_)
    owners = await user_service.get_users_by_ids(db, {t.user_id for t in rows})
    return paginated(
        [transaction_to_dict(t, owners.get(t.user_id)) for t in rows], page, limit, total
    )


@router.get("/metrics/timeseries")
async def timeseries(
    from_: int | None = Query(None, alias="from", ge=0, description="epoch milliseconds"),
    to: int | None = Query(None, ge=0, description="epoch milliseconds"),
    granularity: Literal["day", "month"] = "day",
    db: AsyncSession = Depends(get_db),
):
    data = await metrics_service.get_timeseries(
        db,
        start=from_unix(from_ / 1000) if from_ is not None else None,
        end=from_unix(to / 1000) if to is not None else None,
        granularity=granularity,
    )
    return success(data)
