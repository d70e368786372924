"""Abstract store interfaces the pipeline reads from and writes to.

Stores are generic object stores: ``add`` assigns an auto-incrementing id,
``put`` replaces an existing record. Implementations live in
``treasury_ingest.stores.memory`` and ``treasury_ingest.stores.sql``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from treasury_ingest.models import Account, Budget, BudgetLine, ImportLog, MatchingConfiguration, Movement
from treasury_ingest.schemas.statement import ParsedStatement, StatementFile


class AccountStore(ABC):
    """Registered bank accounts."""

    @abstractmethod
    async def get_accounts(self) -> list[Account]:
        """Return every account, active or not."""

    @abstractmethod
    async def get_account(self, account_id: int) -> Account | None:
        """Return one account or None."""

    @abstractmethod
    async def create_account(self, account: Account) -> Account:
        """Add an account and return it with its id."""


class MovementStore(ABC):
    """Persisted movements."""

    @abstractmethod
    async def get_all(self) -> list[Movement]:
        """Return every stored movement."""

    @abstractmethod
    async def add(self, movement: Movement) -> Movement:
        """Insert a movement and return it with its id."""

    @abstractmethod
    async def put(self, movement: Movement) -> Movement:
        """Replace a stored movement (matched by id)."""

    @abstractmethod
    async def get(self, movement_id: int) -> Movement | None:
        """Return one movement or None."""

    @abstractmethod
    async def get_pending_transfers(self) -> list[Movement]:
        """Return movements flagged as transfer legs still awaiting their pair."""


class BudgetStore(ABC):
    """Budgets and their lines."""

    @abstractmethod
    async def get_active_budget(self, year: int) -> Budget | None:
        """Return the active budget of ``year`` or None."""

    @abstractmethod
    async def get_lines(self, budget_id: int) -> list[BudgetLine]:
        """Return the lines of one budget."""


class ImportLogStore(ABC):
    """Append-only import audit trail."""

    @abstractmethod
    async def add(self, log: ImportLog) -> ImportLog:
        """Insert a log record and return it with its id."""

    @abstractmethod
    async def list_recent(self, limit: int = 50) -> list[ImportLog]:
        """Return the most recent logs, newest first."""


class MatchingConfigStore(ABC):
    """Persisted matching configurations."""

    @abstractmethod
    async def get_active(self) -> MatchingConfiguration | None:
        """Return the row flagged active, or None."""

    @abstractmethod
    async def save(self, config: MatchingConfiguration) -> MatchingConfiguration:
        """Insert or replace a configuration row.

        Saving an active row deactivates every other row.
        """


class StatementParser(ABC):
    """Bank-specific file parser, external to the pipeline."""

    @abstractmethod
    async def parse(self, file: StatementFile) -> ParsedStatement:
        """Parse a raw file. Raise ``StatementParseError`` when it cannot be read."""


@dataclass
class Stores:
    """The stores one pipeline instance works against."""

    accounts: AccountStore
    movements: MovementStore
    budgets: BudgetStore
    import_logs: ImportLogStore
    matching_configs: MatchingConfigStore | None = None
