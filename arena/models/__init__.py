"""SQLAlchemy models for the trading arena."""

from arena.models.candle import Candle
from arena.models.competition import Competition, CompetitionWinner
from arena.models.participation import Participation
from arena.models.transaction import Transaction
from arena.models.user import User

__all__ = ["Candle", "Competition", "CompetitionWinner", "Participation", "Transaction", "User"]
