"""In-process store implementations.

Records are kept as transient model instances; ``add`` assigns
auto-incrementing ids the way a database sequence would.
"""

import itertools
from datetime import UTC, datetime

from treasury_ingest.models import (
    Account,
    Budget,
    BudgetLine,
    BudgetStatus,
    ImportLog,
    MatchingConfiguration,
    Movement,
    TransferState,
)
from treasury_ingest.schemas.statement import ParsedStatement, StatementFile
from treasury_ingest.stores.interface import (
    AccountStore,
    BudgetStore,
    ImportLogStore,
    MatchingConfigStore,
    MovementStore,
    StatementParser,
    Stores,
)
from treasury_ingest.utils.exceptions import PersistenceError, StatementParseError


def _touch(record: object, *, created: bool) -> None:
    now = datetime.now(UTC)
    if created and getattr(record, "created_at", None) is None and hasattr(record, "created_at"):
        record.created_at = now  # type: ignore[attr-defined]
    if hasattr(record, "updated_at"):
        record.updated_at = now  # type: ignore[attr-defined]


class InMemoryAccountStore(AccountStore):
    def __init__(self, accounts: list[Account] | None = None) -> None:
        self._accounts: dict[int, Account] = {}
        self._ids = itertools.count(1)
        for account in accounts or []:
            self._insert(account)

    def _insert(self, account: Account) -> Account:
        if account.id is None:
            account.id = next(self._ids)
        else:
            self._ids = itertools.count(max(account.id, *self._accounts.keys(), 0) + 1)
        if account.is_active is None:
            account.is_active = True
        _touch(account, created=True)
        self._accounts[account.id] = account
        return account

    async def get_accounts(self) -> list[Account]:
        return list(self._accounts.values())

    async def get_account(self, account_id: int) -> Account | None:
        return self._accounts.get(account_id)

    async def create_account(self, account: Account) -> Account:
        return self._insert(account)


class InMemoryMovementStore(MovementStore):
    def __init__(self) -> None:
        self._movements: dict[int, Movement] = {}
        self._ids = itertools.count(1)

    async def get_all(self) -> list[Movement]:
        return list(self._movements.values())

    async def get(self, movement_id: int) -> Movement | None:
        return self._movements.get(movement_id)

    async def add(self, movement: Movement) -> Movement:
        if movement.id is not None and movement.id in self._movements:
            raise PersistenceError(f"Movement {movement.id} already exists")
        movement.id = next(self._ids)
        _touch(movement, created=True)
        self._movements[movement.id] = movement
        return movement

    async def put(self, movement: Movement) -> Movement:
        if movement.id is None or movement.id not in self._movements:
            raise PersistenceError(f"Movement {movement.id} does not exist")
        _touch(movement, created=False)
        self._movements[movement.id] = movement
        return movement

    async def get_pending_transfers(self) -> list[Movement]:
        return [m for m in self._movements.values() if m.is_transfer and m.transfer_state == TransferState.PENDING]


class InMemoryBudgetStore(BudgetStore):
    def __init__(self, budgets: list[Budget] | None = None, lines: list[BudgetLine] | None = None) -> None:
        self._budgets = list(budgets or [])
        self._lines = list(lines or [])

    def add_budget(self, budget: Budget, lines: list[BudgetLine] | None = None) -> Budget:
        if budget.id is None:
            budget.id = max((b.id for b in self._budgets), default=0) + 1
        self._budgets.append(budget)
        next_line_id = max((line.id or 0 for line in self._lines), default=0) + 1
        for line in lines or []:
            line.budget_id = budget.id
            if line.id is None:
                line.id = next_line_id
                next_line_id += 1
            self._lines.append(line)
        return budget

    async def get_active_budget(self, year: int) -> Budget | None:
        active = [b for b in self._budgets if b.year == year and b.status == BudgetStatus.ACTIVE]
        return max(active, key=lambda b: b.id or 0, default=None)

    async def get_lines(self, budget_id: int) -> list[BudgetLine]:
        return [line for line in self._lines if line.budget_id == budget_id]


class InMemoryImportLogStore(ImportLogStore):
    def __init__(self) -> None:
        self._logs: list[ImportLog] = []
        self._ids = itertools.count(1)

    @property
    def logs(self) -> list[ImportLog]:
        return list(self._logs)

    async def add(self, log: ImportLog) -> ImportLog:
        log.id = next(self._ids)
        self._logs.append(log)
        return log

    async def list_recent(self, limit: int = 50) -> list[ImportLog]:
        ordered = sorted(self._logs, key=lambda log: (log.imported_at, log.id), reverse=True)
        return ordered[:limit]


class InMemoryMatchingConfigStore(MatchingConfigStore):
    def __init__(self) -> None:
        self._rows: dict[int, MatchingConfiguration] = {}
        self._ids = itertools.count(1)

    async def get_active(self) -> MatchingConfiguration | None:
        active = [row for row in self._rows.values() if row.is_active]
        return max(active, key=lambda row: row.id, default=None)

    async def save(self, config: MatchingConfiguration) -> MatchingConfiguration:
        if config.id is None:
            config.id = next(self._ids)
        if config.is_active:
            for row in self._rows.values():
                if row.id != config.id:
                    row.is_active = False
        _touch(config, created=True)
        self._rows[config.id] = config
        return config


class StaticStatementParser(StatementParser):
    """Returns a fixed parse result, or raises a fixed error."""

    def __init__(self, statement: ParsedStatement | None = None, error: str | None = None) -> None:
        self._statement = statement
        self._error = error

    async def parse(self, file: StatementFile) -> ParsedStatement:
        if self._error is not None or self._statement is None:
            raise StatementParseError(self._error or f"No parser output for {file.file_name}")
        return self._statement


def in_memory_stores(accounts: list[Account] | None = None) -> Stores:
    """A fresh set of empty in-memory stores."""
    return Stores(
        accounts=InMemoryAccountStore(accounts),
        movements=InMemoryMovementStore(),
        budgets=InMemoryBudgetStore(),
        import_logs=InMemoryImportLogStore(),
        matching_configs=InMemoryMatchingConfigStore(),
    )
