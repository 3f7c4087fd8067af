"""Tests for the join flow: eligibility checks, uniqueness and wallet accounting."""

import pytest
from sqlalchemy import func, select

from arena.errors import BadRequestError, ConflictError, NotFoundError
from arena.models.participation import Participation
from arena.models.transaction import DEBIT, Transaction
from arena.models.user import User
from arena.services import competitions as competitions_service
from arena.services.competitions import join_competition
from arena.services.wallet import available_balance, credit_wallet
from tests.helpers import days_ago, days_ahead, make_competition, make_participation, make_user

pytestmark = pytest.mark.asyncio


async def participation_count(session, competition_id: int) -> int:
    result = await session.execute(
        select(func.count()).select_from(Participation).where(Participation.competition_id == competition_id)
    )
    return result.scalar_one()


class TestJoinSuccess:
    async def test_join_locks_fee_and_writes_debit(self, session):
        user = await make_user(session, wallet_balance=100.0, exposure=5.0)
        comp = await make_competition(session, entry_fee=10.0)

        participation_id = await join_competition(session, user.id, comp.id)

        assert participation_id > 0
        refreshed = await session.get(User, user.id)
        assert refreshed.wallet_balance == 100.0
        assert refreshed.exposure == 15.0
        assert available_balance(refreshed) == 85.0

        txn = (await session.execute(select(Transaction))).scalar_one()
        assert txn.type == DEBIT
        assert txn.amount == 10.0
        assert txn.balance_before == 95.0
        assert txn.balance_after == 85.0
        assert txn.competition_id == comp.id
        assert txn.user_id == user.id

    async def test_free_competition(self, session):
        user = await make_user(session, wallet_balance=0.0)
        comp = await make_competition(session, entry_fee=0.0)
        await join_competition(session, user.id, comp.id)
        assert await participation_count(session, comp.id) == 1

    async def test_exact_balance_is_enough(self, session):
        user = await make_user(session, wallet_balance=10.0)
        comp = await make_competition(session, entry_fee=10.0)
        await join_competition(session, user.id, comp.id)
        refreshed = await session.get(User, user.id)
        assert available_balance(refreshed) == 0.0

    async def test_within_time_window(self, session):
        user = await make_user(session)
        comp = await make_competition(session, starts_at=days_ago(1), ends_at=days_ahead(1))
        await join_competition(session, user.id, comp.id)
        assert await participation_count(session, comp.id) == 1


class TestJoinRejections:
    async def test_unknown_competition(self, session):
        user = await make_user(session)
        with pytest.raises(NotFoundError) as exc:
            await join_competition(session, user.id, 9999)
        assert exc.value.code == "COMPETITION_NOT_FOUND"

    async def test_unknown_user(self, session):
        comp = await make_competition(session)
        with pytest.raises(NotFoundError) as exc:
            await join_competition(session, 9999, comp.id)
        assert exc.value.code == "USER_NOT_FOUND"

    async def test_join_twice(self, session):
        user = await make_user(session)
        comp = await make_competition(session)
        await join_competition(session, user.id, comp.id)
        with pytest.raises(ConflictError) as exc:
            await join_competition(session, user.id, comp.id)
        assert exc.value.code == "ALREADY_JOINED"
        assert await participation_count(session, comp.id) == 1
        refreshed = await session.get(User, user.id)
        assert refreshed.exposure == 10.0

    async def test_unique_index_catches_a_lost_race(self, session, monkeypatch):
        async def never_joined(*args, **kwargs):
            return False

        monkeypatch.setattr(competitions_service, "has_joined", never_joined)
        user = await make_user(session, wallet_balance=100.0)
        comp = await make_competition(session, entry_fee=10.0)
        await join_competition(session, user.id, comp.id)

        with pytest.raises(ConflictError) as exc:
            await join_competition(session, user.id, comp.id)

        assert exc.value.code == "ALREADY_JOINED"
        assert await participation_count(session, comp.id) == 1
        debits = (await session.execute(select(Transaction).where(Transaction.type == DEBIT))).scalars().all()
        assert len(debits) == 1
        refreshed = await session.get(User, user.id)
        assert refreshed.exposure == 10.0

    async def test_capacity(self, session):
        first = await make_user(session)
        second = await make_user(session)
        comp = await make_competition(session, max_participants=1)
        await join_competition(session, first.id, comp.id)
        with pytest.raises(BadRequestError) as exc:
            await join_competition(session, second.id, comp.id)
        assert exc.value.code == "COMPETITION_FULL"

    async def test_ended(self, session):
        user = await make_user(session)
        comp = await make_competition(session, starts_at=days_ago(10), ends_at=days_ago(1))
        with pytest.raises(BadRequestError) as exc:
            await join_competition(session, user.id, comp.id)
        assert exc.value.code == "COMPETITION_ENDED"

    async def test_not_started(self, session):
        user = await make_user(session)
        comp = await make_competition(session, starts_at=days_ahead(1))
        with pytest.raises(BadRequestError) as exc:
            await join_competition(session, user.id, comp.id)
        assert exc.value.code == "COMPETITION_NOT_STARTED"

    async def test_insufficient_balance_leaves_no_trace(self, session):
        user = await make_user(session, wallet_balance=20.0, exposure=15.0)
        comp = await make_competition(session, entry_fee=10.0)
        with pytest.raises(BadRequestError) as exc:
            await join_competition(session, user.id, comp.id)
        assert exc.value.code == "INSUFFICIENT_BALANCE"
        assert await participation_count(session, comp.id) == 0
        assert (await session.execute(select(Transaction))).first() is None
        refreshed = await session.get(User, user.id)
        assert refreshed.exposure == 15.0

    async def test_duplicate_checked_before_capacity(self, session):
        user = await make_user(session)
        comp = await make_competition(session, max_participants=1)
        await make_participation(session, user.id, comp.id, days_ago(1))
        with pytest.raises(ConflictError):
            await join_competition(session, user.id, comp.id)

    async def test_full_checked_before_ended(self, session):
        user = await make_user(session)
        other = await make_user(session)
        comp = await make_competition(session, max_participants=1, ends_at=days_ago(1))
        await make_participation(session, other.id, comp.id, days_ago(2))
        with pytest.raises(BadRequestError) as exc:
            await join_competition(session, user.id, comp.id)
        assert exc.value.code == "COMPETITION_FULL"


class TestWalletCredit:
    async def test_credit_appends_ledger_row(self, session):
        user = await make_user(session, wallet_balance=50.0, exposure=20.0)
        txn = credit_wallet(session, user, 25.0, "Top-up")
        await session.commit()
        assert user.wallet_balance == 75.0
        assert txn.balance_before == 30.0
        assert txn.balance_after == 55.0

    async def test_credit_must_be_positive(self, session):
        from arena.errors import ValidationError

        user = await make_user(session)
        with pytest.raises(ValidationError):
            credit_wallet(session, user, 0, "Top-up")
