"""Store interfaces and implementations."""

from treasury_ingest.stores.interface import (
    AccountStore,
    BudgetStore,
    ImportLogStore,
    MatchingConfigStore,
    MovementStore,
    StatementParser,
    Stores,
)
from treasury_ingest.stores.memory import (
    InMemoryAccountStore,
    InMemoryBudgetStore,
    InMemoryImportLogStore,
    InMemoryMatchingConfigStore,
    InMemoryMovementStore,
    StaticStatementParser,
    in_memory_stores,
)
from treasury_ingest.stores.sql import sql_stores

__all__ = [
    "AccountStore",
    "BudgetStore",
    "ImportLogStore",
    "InMemoryAccountStore",
    "InMemoryBudgetStore",
    "InMemoryImportLogStore",
    "InMemoryMatchingConfigStore",
    "InMemoryMovementStore",
    "MatchingConfigStore",
    "MovementStore",
    "StatementParser",
    "StaticStatementParser",
    "Stores",
    "in_memory_stores",
    "sql_stores",
]
