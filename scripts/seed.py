"""CLI for seeding demo data.

Usage:
    python scripts/seed.py                        # admin, 50 users, default competitions
    python scripts/seed.py --reset --users 200    # wipe everything first
    python scripts/seed.py --create-tables        # create tables without running alembic
"""

import argparse
import asyncio
import logging
import random
import sys
from datetime import timedelta

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

# name, entry fee, prize pool, max participants
DEFAULT_COMPETITIONS = [
    ("Crypto Sprint", 10, 1000, 100),
    ("Altcoin Rush", 20, 1500, 200),
    ("DeFi Dash", 5, 500, 50),
    ("NFT Frenzy", 15, 1200, 150),
    ("Bitcoin Blitz", 25, 2000, 100),
    ("Ethereum Elite", 30, 2500, 150),
    ("Solana Sprint", 12, 800, 80),
    ("Polygon Power", 8, 600, 60),
]

FIRST_NAMES = ["Aisha", "Omar", "Rohan", "Fatima", "Noah", "Liam", "Emma", "Ava", "Mia", "Sophia"]
LAST_NAMES = ["Khan", "Patel", "Ali", "Hussain", "Ahmed", "Singh", "Sharma", "Farooq", "Rahman", "Mirza"]
EMAIL_DOMAINS = ["example.com", "mail.test", "demo.local"]


async def reset(session) -> None:
    """Delete every row, children first."""
    from sqlalchemy import delete

    from arena.database import Base

    for table in reversed(Base.metadata.sorted_tables):
        await session.execute(delete(table))
    await session.commit()
    logger.info("Cleared %d tables", len(Base.metadata.sorted_tables))


async def create_tables() -> None:
    from arena.database import Base, engine
    import arena.models  # noqa: F401  registers the tables

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tables created")


async def seed_users(session, count: int, password: str, history_days: int, rng: random.Random) -> list:
    from arena.models.user import ROLE_ADMIN
    from arena.services import users as user_service
    from arena.services.wallet import credit_wallet
    from arena.timeutil import utcnow

    if await user_service.get_user_by_email(session, "admin@example.com") is None:
        await user_service.register_user(session, "Admin User", "admin@example.com", "Admin123!", ROLE_ADMIN)
        logger.info("Created admin: admin@example.com")

    created = []
    for i in range(count):
        email = f"user{i + 1}@{EMAIL_DOMAINS[i % len(EMAIL_DOMAINS)]}"
        if await user_service.get_user_by_email(session, email) is not None:
            continue
        name = f"{FIRST_NAMES[i % len(FIRST_NAMES)]} {LAST_NAMES[(i // len(FIRST_NAMES)) % len(LAST_NAMES)]}"
        user = await user_service.register_user(session, name, email, password)

        user.created_at = utcnow() - timedelta(days=rng.randint(0, history_days))
        txn = credit_wallet(session, user, rng.randint(50, 5000), "Initial wallet funding")
        txn.created_at = user.created_at
        for _ in range(rng.randint(0, 3)):
            credit_wallet(session, user, rng.randint(10, 200), "Top-up")
        await session.commit()
        created.append(user)

    logger.info("Created %d users", len(created))
    return created


async def seed_competitions(session, candle_count: int) -> list:
    from sqlalchemy import select

    from arena.models.competition import Competition, slugify
    from arena.services import candles as candle_service
    from arena.services.competitions import NewCompetition, create_competition

    created = []
    for i, (name, fee, prize, max_participants) in enumerate(DEFAULT_COMPETITIONS):
        existing = await session.execute(select(Competition.id).where(Competition.slug == slugify(name)))
        if existing.first() is not None:
            logger.info("Competition already exists: %s", name)
            continue
        competition = await create_competition(
            session,
            NewCompetition(name=name, entry_fee=fee, prize_pool=prize, max_participants=max_participants),
            with_candles=False,
        )
        await candle_service.generate_and_save_candles(
            session,
            competition.id,
            count=candle_count,
            interval=86400,
            base_price=100 + i * 10,
            volatility=0.02 + i * 0.005,
            seed=i * 1000,
        )
        created.append(competition)
    logger.info("Created %d competitions", len(created))
    return created


async def seed_participations(session, users: list, competitions: list, rng: random.Random) -> int:
    """Join random affordable users through the normal join path."""
    from arena.errors import AppError
    from arena.services.competitions import join_competition

    joined = 0
    for competition in competitions:
        cap = competition.max_participants or len(users)
        target = rng.randint(max(1, int(cap * 0.3)), max(1, int(cap * 0.6)))
        for user in rng.sample(users, k=len(users)):
            if target <= 0:
                break
            if user.available_balance < (competition.entry_fee or 0):
                continue
            try:
                await join_competition(session, user.id, competition.id)
            except AppError as e:
                logger.info("Skipped %s -> %s: %s", user.email, competition.name, e.code)
                continue
            joined += 1
            target -= 1
    logger.info("Created %d participations", joined)
    return joined


async def do_seed(args: argparse.Namespace) -> None:
    from arena.database import async_session, engine

    rng = random.Random(args.seed)
    if args.create_tables:
        await create_tables()

    async with async_session() as session:
        if args.reset:
            await reset(session)
        users = await seed_users(session, args.users, args.password, args.history_days, rng)
        competitions = await seed_competitions(session, args.candles)
        joined = 0
        if not args.no_participations and users:
            joined = await seed_participations(session, users, competitions, rng)

    await engine.dispose()

    print("\n=== Seed Results ===")
    print(f"  users:          {len(users):,}")
    print(f"  competitions:   {len(competitions):,}")
    print(f"  participations: {joined:,}")
    print("====================\n")


def main() -> None:
    parser = argparse.ArgumentParser(description="Trading Arena demo data")
    parser.add_argument("--users", type=int, default=50, help="Number of regular users to create")
    parser.add_argument("--password", default="User1234", help="Password for every seeded user")
    parser.add_argument("--history-days", type=int, default=365, help="Spread signups over this many days")
    parser.add_argument("--candles", type=int, default=120, help="Candles per competition")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible data")
    parser.add_argument("--reset", action="store_true", help="Delete all existing data first")
    parser.add_argument("--create-tables", action="store_true", help="Create tables before seeding")
    parser.add_argument("--no-participations", action="store_true", help="Skip joining users")
    args = parser.parse_args()

    if args.users < 0 or args.candles < 1:
        parser.print_help()
        sys.exit(1)

    asyncio.run(do_seed(args))


if __name__ == "__main__":
    main()
