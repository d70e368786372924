"""SQLAlchemy models package."""

from treasury_ingest.models.account import Account
from treasury_ingest.models.budget import Budget, BudgetLine, BudgetStatus
from treasury_ingest.models.import_log import ImportLog, ImportOutcome, ImportSource
from treasury_ingest.models.matching_config import MatchingConfiguration
from treasury_ingest.models.movement import Movement, MovementSource, MovementStatus, TransferState

__all__ = [
    "Account",
    "Budget",
    "BudgetLine",
    "BudgetStatus",
    "ImportLog",
    "ImportOutcome",
    "ImportSource",
    "MatchingConfiguration",
    "Movement",
    "MovementSource",
    "MovementStatus",
    "TransferState",
]
