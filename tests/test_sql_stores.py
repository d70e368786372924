"""Tests for the SQLAlchemy stores over aiosqlite.

GIVEN: An in-memory SQLite database created from the models
WHEN: Reading and writing through sql_stores
THEN: The stores honor the same contract as the in-memory ones
"""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tests.factories import MAIN_IBAN, SAVINGS_IBAN, BudgetLineFactory, ParsedStatementFactory
from treasury_ingest.models import (
    Account,
    Budget,
    BudgetStatus,
    ImportLog,
    ImportOutcome,
    ImportSource,
    MatchingConfiguration,
    Movement,
    MovementStatus,
    TransferState,
)
from treasury_ingest.schemas.statement import StatementFile
from treasury_ingest.services.matching_config import DEFAULT_MATCHING_CONFIG
from treasury_ingest.services.pipeline import ImportPipeline, ImportRequest
from treasury_ingest.stores import sql_stores
from treasury_ingest.utils.exceptions import PersistenceError


def movement(**overrides) -> Movement:
    values = {
        "account_id": 1,
        "txn_date": date(2025, 3, 10),
        "amount": Decimal("-100.00"),
        "description": "RECIBO LUZ",
        "normalized_description": "RECIBO LUZ",
        "status": MovementStatus.NO_PLANIFICADO,
        "is_transfer": False,
        "dedup_hash": "hash-1",
    }
    values.update(overrides)
    return Movement(**values)


async def seed_accounts(stores) -> None:
    await stores.accounts.create_account(Account(name="Cuenta principal", iban=MAIN_IBAN, currency="EUR"))
    await stores.accounts.create_account(Account(name="Cuenta ahorro", iban=SAVINGS_IBAN, currency="EUR"))


class TestSqlAccountStore:
    @pytest.mark.asyncio
    async def test_create_and_read(self, db_session):
        stores = sql_stores(db_session)
        await seed_accounts(stores)

        accounts = await stores.accounts.get_accounts()
        assert [a.name for a in accounts] == ["Cuenta principal", "Cuenta ahorro"]
        assert all(a.is_active for a in accounts)
        assert (await stores.accounts.get_account(accounts[1].id)).iban == SAVINGS_IBAN
        assert await stores.accounts.get_account(999) is None


class TestSqlMovementStore:
    @pytest.mark.asyncio
    async def test_add_get_put(self, db_session):
        stores = sql_stores(db_session)
        row = await stores.movements.add(movement())

        assert row.id is not None
        row.status = MovementStatus.CONFIRMADO
        await stores.movements.put(row)

        fetched = await stores.movements.get(row.id)
        assert fetched.status == MovementStatus.CONFIRMADO
        assert len(await stores.movements.get_all()) == 1

    @pytest.mark.asyncio
    async def test_put_without_id_fails(self, db_session):
        with pytest.raises(PersistenceError):
            await sql_stores(db_session).movements.put(movement())

    @pytest.mark.asyncio
    async def test_duplicate_hash_rejected(self, db_session):
        """GIVEN: A stored movement
        WHEN: Adding another with the same account and hash
        THEN: The unique constraint surfaces as PersistenceError"""
        stores = sql_stores(db_session)
        await stores.movements.add(movement())

        with pytest.raises(PersistenceError):
            await stores.movements.add(movement())

        count = await db_session.scalar(select(func.count()).select_from(Movement))
        assert count == 1

    @pytest.mark.asyncio
    async def test_pending_transfers(self, db_session):
        stores = sql_stores(db_session)
        await stores.movements.add(movement())
        pending = await stores.movements.add(
            movement(
                dedup_hash="hash-2",
                is_transfer=True,
                transfer_state=TransferState.PENDING,
                transfer_group_id="TRF-2025-03-10-100.00",
            )
        )

        assert [m.id for m in await stores.movements.get_pending_transfers()] == [pending.id]


class TestSqlBudgetStore:
    @pytest.mark.asyncio
    async def test_active_budget_and_lines(self, db_session):
        db_session.add_all(
            [
                Budget(year=2025, name="Borrador", status=BudgetStatus.DRAFT),
                Budget(year=2025, name="Activo", status=BudgetStatus.ACTIVE),
            ]
        )
        await db_session.flush()
        stores = sql_stores(db_session)
        budget = await stores.budgets.get_active_budget(2025)
        await BudgetLineFactory.create_async(db_session, id=10, amount="-100.00", budget_id=budget.id)
        await db_session.commit()

        assert budget.name == "Activo"
        lines = await stores.budgets.get_lines(budget.id)
        assert [line.id for line in lines] == [10]
        assert lines[0].amount_for_month(3) == Decimal("-100.00")
        assert await stores.budgets.get_active_budget(2024) is None


class TestSqlImportLogStore:
    @pytest.mark.asyncio
    async def test_add_and_list_recent(self, db_session):
        stores = sql_stores(db_session)
        for batch_id, hour in (("b1", 9), ("b2", 10)):
            await stores.import_logs.add(
                ImportLog(
                    batch_id=batch_id,
                    file_name="extracto.csv",
                    imported_at=datetime(2025, 3, 10, hour, tzinfo=UTC),
                    source=ImportSource.TREASURY_IMPORT,
                    outcome=ImportOutcome.COMPLETED,
                    error_details=[],
                )
            )

        logs = await stores.import_logs.list_recent()
        assert [log.batch_id for log in logs] == ["b2", "b1"]


class TestSqlMatchingConfigStore:
    @pytest.mark.asyncio
    async def test_save_keeps_single_active_row(self, db_session):
        stores = sql_stores(db_session)
        await stores.matching_configs.save(
            MatchingConfiguration(name="a", is_active=True, overrides={"date_window": 1})
        )
        await stores.matching_configs.save(
            MatchingConfiguration(name="b", is_active=True, overrides={"date_window": 2})
        )

        active = await stores.matching_configs.get_active()
        assert active.name == "b"
        assert active.overrides == {"date_window": 2}
        count = await db_session.scalar(
            select(func.count()).select_from(MatchingConfiguration).where(MatchingConfiguration.is_active.is_(True))
        )
        assert count == 1


class TestPipelineOverSql:
    @pytest.mark.asyncio
    async def test_import_and_transfer_completion(self, db_session):
        """GIVEN: Accounts and an active budget in SQLite
        WHEN: Importing both legs of a transfer in two runs
        THEN: Movements, import logs and the completed pair are persisted"""
        stores = sql_stores(db_session)
        await seed_accounts(stores)
        budget = Budget(year=2025, status=BudgetStatus.ACTIVE)
        db_session.add(budget)
        await db_session.flush()
        await BudgetLineFactory.create_async(
            db_session, id=10, amount="-100.00", budget_id=budget.id, account_id=1, provider_name="Iberdrola"
        )
        await db_session.commit()

        pipeline = ImportPipeline(stores, config=DEFAULT_MATCHING_CONFIG)
        first = await pipeline.run(
            ImportRequest(
                file=StatementFile(file_name="principal.csv"),
                statement=ParsedStatementFactory.with_rows(
                    {
                        "txn_date": date(2025, 3, 10),
                        "amount": "-100.00",
                        "description": "RECIBO",
                        "counterparty": "Iberdrola",
                    },
                    {"txn_date": date(2025, 3, 12), "amount": "-500.00", "description": "TRASPASO A AHORRO"},
                    header_lines=[f"IBAN {MAIN_IBAN}"],
                ),
            )
        )
        second = await pipeline.run(
            ImportRequest(
                file=StatementFile(file_name="ahorro.csv"),
                statement=ParsedStatementFactory.with_rows(
                    {"txn_date": date(2025, 3, 13), "amount": "500.00", "description": "TRASPASO RECIBIDO"},
                    header_lines=[f"IBAN {SAVINGS_IBAN}"],
                ),
            )
        )

        assert first.success and second.success
        assert first.summary.created == 2
        assert first.summary.conciliated == 1
        assert second.account_id == 2
        assert second.summary.completed_pending == 1

        rows = (await db_session.execute(select(Movement).order_by(Movement.id))).scalars().all()
        assert len(rows) == 3
        assert rows[0].status == MovementStatus.CONCILIADO
        assert rows[0].plan_match_id == 10
        assert {r.transfer_state for r in rows[1:]} == {TransferState.PAIRED}
        assert {r.transfer_group_id for r in rows[1:]} == {"TRF-2025-03-12-500.00"}

        logs = (await db_session.execute(select(ImportLog))).scalars().all()
        assert sorted(log.batch_id for log in logs) == sorted([first.batch_id, second.batch_id])
