"""Create initial tables: users, competitions, competition_winners, candles, participations, transactions.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("email", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(10), nullable=False, server_default="USER"),
        sa.Column("wallet_balance", sa.Float(), nullable=False, server_default="100"),
        sa.Column("exposure", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("wallet_balance >= 0", name="ck_users_wallet_non_negative"),
        sa.CheckConstraint("exposure >= 0", name="ck_users_exposure_non_negative"),
        sa.CheckConstraint("role IN ('USER', 'ADMIN')", name="ck_users_role_valid"),
    )
    op.create_index("ix_users_created_at", "users", ["created_at"])

    op.create_table(
        "competitions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("slug", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("entry_fee", sa.Float(), nullable=False, server_default="0"),
        sa.Column("prize_pool", sa.Float(), nullable=False, server_default="0"),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("results_declared_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_competitions"),
        sa.UniqueConstraint("slug", name="uq_competitions_slug"),
        sa.CheckConstraint("entry_fee >= 0", name="ck_competitions_entry_fee_non_negative"),
        sa.CheckConstraint("prize_pool >= 0", name="ck_competitions_prize_pool_non_negative"),
        sa.CheckConstraint(
            "max_participants IS NULL OR max_participants >= 1",
            name="ck_competitions_max_participants_min",
        ),
    )
    op.create_index("ix_competitions_created_at", "competitions", ["created_at"])

    op.create_table(
        "competition_winners",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("competition_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("portfolio_value", sa.Float(), nullable=True),
        sa.Column("profit_loss", sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_competition_winners"),
    )
    op.create_index(
        "ix_competition_winners_comp_rank", "competition_winners", ["competition_id", "rank"], unique=True
    )

    op.create_table(
        "candles",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("competition_id", sa.Integer(), nullable=False),
        sa.Column("time", sa.BigInteger(), nullable=False),
        sa.Column("open", sa.Float(), nullable=False),
        sa.Column("high", sa.Float(), nullable=False),
        sa.Column("low", sa.Float(), nullable=False),
        sa.Column("close", sa.Float(), nullable=False),
        sa.Column("volume", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_candles"),
        sa.CheckConstraint("low >= 0 AND volume >= 0", name="ck_candles_non_negative"),
        sa.CheckConstraint("high >= open AND high >= close", name="ck_candles_high_bounds"),
        sa.CheckConstraint("low <= open AND low <= close", name="ck_candles_low_bounds"),
    )
    op.create_index("ix_candles_comp_time", "candles", ["competition_id", "time"], unique=True)

    op.create_table(
        "participations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("competition_id", sa.Integer(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_participations"),
    )
    op.create_index(
        "ix_participations_user_comp", "participations", ["user_id", "competition_id"], unique=True
    )
    op.create_index("ix_participations_comp", "participations", ["competition_id"])
    op.create_index("ix_participations_joined_at", "participations", ["joined_at"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(6), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("balance_before", sa.Float(), nullable=True),
        sa.Column("balance_after", sa.Float(), nullable=True),
        sa.Column("competition_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_transactions"),
        sa.CheckConstraint("amount >= 0", name="ck_transactions_amount_non_negative"),
        sa.CheckConstraint("type IN ('DEBIT', 'CREDIT')", name="ck_transactions_type_valid"),
    )
    op.create_index("ix_transactions_user_created", "transactions", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_table("transactions")
    op.drop_table("participations")
    op.drop_table("candles")
    op.drop_table("competition_winners")
    op.drop_table("competitions")
    op.drop_table("users")
