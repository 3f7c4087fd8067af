"""Wallet and exposure bookkeeping.

Joining a competition does not spend the wallet. The entry fee is locked as
exposure and the spendable (available) balance drops accordingly:

    available = wallet_balance - exposure

Every balance movement appends exactly one ledger row, whose before/after
snapshots are in available-balance terms. Callers own the commit so the lock
and the ledger row land in the same database transaction as whatever
triggered them.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from arena.errors import BadRequestError, ValidationError
from arena.models.transaction import CREDIT, DEBIT, Transaction
from arena.models.user import User
from arena.timeutil import isoformat

logger = logging.getLogger(__name__)


def available_balance(user: User) -> float:
    return (user.wallet_balance or 0.0) - (user.exposure or 0.0)


def lock_entry_fee(
    session: AsyncSession, user: User, fee: float, competition_id: int
) -> Transaction:
    """Move `fee` from available balance into exposure and record a DEBIT."""
    fee = fee or 0.0
    before = available_balance(user)
    if fee > before:
        raise BadRequestError("Insufficient balance", "INSUFFICIENT_BALANCE")

    user.exposure = (user.exposure or 0.0) + fee

    txn = Transaction(
        user_id=user.id,
        type=DEBIT,
        amount=fee,
        balance_before=before,
        balance_after=before - fee,
        competition_id=competition_id,
        description="Joined competition and entry fee debited",
    )
    session.add(txn)
    return txn


def credit_wallet(
    session: AsyncSession, user: User, amount: float, description: str = "Top-up"
) -> Transaction:
    """Add funds to the wallet and record a CREDIT."""
    if amount is None or amount <= 0:
        raise ValidationError(fields={"amount": ["Amount must be greater than 0"]})

    before = available_balance(user)
    user.wallet_balance = (user.wallet_balance or 0.0) + amount

    txn = Transaction(
        user_id=user.id,
        type=CREDIT,
        amount=amount,
        balance_before=before,
        balance_after=before + amount,
        description=description,
    )
    session.add(txn)
    return txn


async def list_transactions(
    session: AsyncSession,
    page: int = 1,
    limit: int = 10,
    user_id: int | None = None,
    txn_type: str | None = None,
) -> tuple[list[Transaction], int]:
    """Newest-first page of ledger rows plus the total matching count."""
    stmt = select(Transaction)
    count_stmt = select(func.count()).select_from(Transaction)
    if user_id is not None:
        stmt = stmt.where(Transaction.user_id == user_id)
        count_stmt = count_stmt.where(Transaction.user_id == user_id)
    if txn_type is not None:
        stmt = stmt.where(Transaction.type == txn_type)
        count_stmt = count_stmt.where(Transaction.type == txn_type)

    stmt = (
        stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await session.execute(stmt)).scalars().all()
    total = (await session.execute(count_stmt)).scalar_one()
    return list(rows), total


def transaction_to_dict(t: Transaction, user: User | None = None) -> dict:
    data = {
        "id": t.id,
        "userId": t.user_id,
        "type": t.type,
        "amount": t.amount,
        "balanceBefore": t.balance_before,
        "balanceAfter": t.balance_after,
        "competitionId": t.competition_id,
        "description": t.description,
        "createdAt": isoformat(t.created_at),
    }
    if user is not None:
        data["user"] = {"id": user.id, "name": user.name, "email": user.email}
    return data
