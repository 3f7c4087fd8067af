"""Tests for ranking on stored data and results declaration."""

import pytest

from arena.errors import BadRequestError, ConflictError, NotFoundError
from arena.services.competitions import (
    declare_results,
    get_competition,
    get_competition_participants,
    get_winners,
)
from arena.timeutil import from_unix
from tests.helpers import days_ago, days_ahead, make_candles, make_competition, make_participation, make_user

pytestmark = pytest.mark.asyncio


async def make_field(session, comp, n: int):
    """n participants joining one candle apart, so earlier joiners bought cheaper."""
    users = []
    for i in range(n):
        user = await make_user(session)
        await make_participation(session, user.id, comp.id, from_unix(i * 100 + 50))
        users.append(user)
    return users


class TestParticipantsFromDatabase:
    async def test_ranked_with_user_info(self, session):
        comp = await make_competition(session, entry_fee=100.0)
        await make_candles(session, comp.id, [(0, 100.0), (100, 120.0)])
        user = await make_user(session, name="Ada")
        await make_participation(session, user.id, comp.id, from_unix(50))

        ranked = await get_competition_participants(session, comp.id)

        assert len(ranked) == 1
        assert ranked[0].portfolio_value == 120.0
        assert ranked[0].profit_loss == 20.0
        assert ranked[0].name == "Ada"

    async def test_pagination_keeps_global_rank(self, session):
        comp = await make_competition(session)
        await make_candles(session, comp.id, [(i * 100, 100.0 + i) for i in range(6)])
        await make_field(session, comp, 5)
        page = await get_competition_participants(session, comp.id, page=2, limit=2)
        assert [p.rank for p in page] == [3, 4]

    async def test_unknown_competition(self, session):
        with pytest.raises(NotFoundError):
            await get_competition_participants(session, 4242)


class TestDeclareResults:
    async def test_top_three_of_five(self, session):
        comp = await make_competition(session, ends_at=days_ago(1))
        await make_candles(session, comp.id, [(i * 100, 100.0 + 10 * i) for i in range(6)])
        await make_field(session, comp, 5)
        expected = (await get_competition_participants(session, comp.id))[:3]

        competition, winners = await declare_results(session, comp.id, top_n=3)

        assert competition.results_declared_at is not None
        assert len(winners) == 3
        assert [(w.user_id, w.rank, w.portfolio_value) for w in winners] == [
            (p.user_id, p.rank, p.portfolio_value) for p in expected
        ]
        stored = await get_winners(session, comp.id)
        assert [w.rank for w in stored] == [1, 2, 3]

    async def test_before_end(self, session):
        comp = await make_competition(session, ends_at=days_ahead(1))
        with pytest.raises(BadRequestError) as exc:
            await declare_results(session, comp.id)
        assert exc.value.code == "COMPETITION_NOT_ENDED"

    async def test_twice(self, session):
        comp = await make_competition(session, ends_at=days_ago(1))
        await make_field(session, comp, 2)
        await declare_results(session, comp.id)
        with pytest.raises(ConflictError) as exc:
            await declare_results(session, comp.id)
        assert exc.value.code == "RESULTS_ALREADY_DECLARED"

    async def test_no_participants(self, session):
        comp = await make_competition(session, ends_at=days_ago(1))
        with pytest.raises(BadRequestError) as exc:
            await declare_results(session, comp.id)
        assert exc.value.code == "NO_PARTICIPANTS"

    async def test_open_ended_competition_can_be_declared(self, session):
        comp = await make_competition(session, ends_at=None)
        await make_field(session, comp, 1)
        _, winners = await declare_results(session, comp.id)
        assert len(winners) == 1

    async def test_top_n_larger_than_field(self, session):
        comp = await make_competition(session, ends_at=days_ago(1))
        await make_field(session, comp, 2)
        _, winners = await declare_results(session, comp.id, top_n=10)
        assert len(winners) == 2

    async def test_top_n_clamped_to_one(self, session):
        comp = await make_competition(session, ends_at=days_ago(1))
        await make_field(session, comp, 3)
        _, winners = await declare_results(session, comp.id, top_n=0)
        assert len(winners) == 1

    async def test_detail_shows_winners(self, session):
        comp = await make_competition(session, ends_at=days_ago(1))
        await make_field(session, comp, 2)
        await declare_results(session, comp.id, top_n=2)
        data = await get_competition(session, comp.id)
        assert [w["rank"] for w in data["winners"]] == [1, 2]
        assert data["resultsDeclaredAt"] is not None
