"""SQLAlchemy-backed stores sharing one ``AsyncSession``.

Each write is flushed and, with ``autocommit`` on, committed on its own, so
a failure part way through a batch leaves the earlier rows in place and
the caller can report exactly what was written.
"""

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from treasury_ingest.logger import get_logger
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
from treasury_ingest.stores.interface import (
    AccountStore,
    BudgetStore,
    ImportLogStore,
    MatchingConfigStore,
    MovementStore,
    Stores,
)
from treasury_ingest.utils.exceptions import PersistenceError, StoreReadError

logger = get_logger(__name__)


class _SqlStore:
    def __init__(self, session: AsyncSession, autocommit: bool = True) -> None:
        self.session = session
        self.autocommit = autocommit

    async def _write(self, record: object, *, merge: bool = False) -> object:
        try:
            if merge:
                record = await self.session.merge(record)
            else:
                self.session.add(record)
            await self.session.flush()
            if self.autocommit:
                await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error(
                "Store write failed",
                record_type=type(record).__name__,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PersistenceError(f"Failed to write {type(record).__name__}: {exc}") from exc
        return record

    async def _scalars(self, stmt) -> list:
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreReadError(str(exc)) from exc
        return list(result.scalars().all())


class SqlAccountStore(_SqlStore, AccountStore):
    async def get_accounts(self) -> list[Account]:
        return await self._scalars(select(Account).order_by(Account.id))

    async def get_account(self, account_id: int) -> Account | None:
        return await self.session.get(Account, account_id)

    async def create_account(self, account: Account) -> Account:
        return await self._write(account)  # type: ignore[return-value]


class SqlMovementStore(_SqlStore, MovementStore):
    async def get_all(self) -> list[Movement]:
        return await self._scalars(select(Movement).order_by(Movement.id))

    async def get(self, movement_id: int) -> Movement | None:
        return await self.session.get(Movement, movement_id)

    async def add(self, movement: Movement) -> Movement:
        return await self._write(movement)  # type: ignore[return-value]

    async def put(self, movement: Movement) -> Movement:
        if movement.id is None:
            raise PersistenceError("Cannot replace a movement without id")
        return await self._write(movement, merge=True)  # type: ignore[return-value]

    async def get_pending_transfers(self) -> list[Movement]:
        return await self._scalars(
            select(Movement)
            .where(Movement.is_transfer.is_(True))
            .where(Movement.transfer_state == TransferState.PENDING)
            .order_by(Movement.txn_date, Movement.id)
        )


class SqlBudgetStore(_SqlStore, BudgetStore):
    async def get_active_budget(self, year: int) -> Budget | None:
        budgets = await self._scalars(
            select(Budget)
            .where(Budget.year == year)
            .where(Budget.status == BudgetStatus.ACTIVE)
            .order_by(Budget.id.desc())
            .limit(1)
        )
        return budgets[0] if budgets else None

    async def get_lines(self, budget_id: int) -> list[BudgetLine]:
        return await self._scalars(select(BudgetLine).where(BudgetLine.budget_id == budget_id).order_by(BudgetLine.id))


class SqlImportLogStore(_SqlStore, ImportLogStore):
    async def add(self, log: ImportLog) -> ImportLog:
        return await self._write(log)  # type: ignore[return-value]

    async def list_recent(self, limit: int = 50) -> list[ImportLog]:
        return await self._scalars(
            select(ImportLog).order_by(ImportLog.imported_at.desc(), ImportLog.id.desc()).limit(limit)
        )


class SqlMatchingConfigStore(_SqlStore, MatchingConfigStore):
    async def get_active(self) -> MatchingConfiguration | None:
        rows = await self._scalars(
            select(MatchingConfiguration)
            .where(MatchingConfiguration.is_active.is_(True))
            .order_by(MatchingConfiguration.id.desc())
            .limit(1)
        )
        return rows[0] if rows else None

    async def save(self, config: MatchingConfiguration) -> MatchingConfiguration:
        if config.is_active:
            stmt = update(MatchingConfiguration).where(MatchingConfiguration.is_active.is_(True))
            if config.id is not None:
                stmt = stmt.where(MatchingConfiguration.id != config.id)
            await self.session.execute(stmt.values(is_active=False))
        return await self._write(config, merge=config.id is not None)  # type: ignore[return-value]


def sql_stores(session: AsyncSession, autocommit: bool = True) -> Stores:
    """All stores bound to one session."""
    return Stores(
        accounts=SqlAccountStore(session, autocommit),
        movements=SqlMovementStore(session, autocommit),
        budgets=SqlBudgetStore(session, autocommit),
        import_logs=SqlImportLogStore(session, autocommit),
        matching_configs=SqlMatchingConfigStore(session, autocommit),
    )
