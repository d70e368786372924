"""Test fixtures and configuration."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from tests.factories import MAIN_IBAN, SAVINGS_IBAN, AccountFactory, BudgetLineFactory
from treasury_ingest.database import create_session_maker, init_db
from treasury_ingest.models import Account, Budget, BudgetStatus
from treasury_ingest.schemas.statement import StatementFile
from treasury_ingest.services.matching_config import DEFAULT_MATCHING_CONFIG
from treasury_ingest.stores import in_memory_stores


@pytest.fixture
def matching_config():
    return DEFAULT_MATCHING_CONFIG


@pytest.fixture
def accounts() -> list[Account]:
    return [
        AccountFactory.build(id=1, name="Cuenta principal", iban=MAIN_IBAN),
        AccountFactory.build(id=2, name="Cuenta ahorro", iban=SAVINGS_IBAN),
    ]


@pytest.fixture
def stores(accounts):
    """In-memory stores seeded with two active accounts."""
    return in_memory_stores(accounts)


@pytest.fixture
def budget_2025(stores):
    """Active 2025 budget with an electricity line on account 1, planned on day 10."""
    lines = [
        BudgetLineFactory.build(
            id=10,
            amount="-100.00",
            account_id=1,
            label="Recibo luz Iberdrola",
            provider_name="Iberdrola",
        )
    ]
    stores.budgets.add_budget(Budget(year=2025, name="Presupuesto 2025", status=BudgetStatus.ACTIVE), lines)
    return lines


@pytest.fixture
def statement_file():
    return StatementFile(file_name="extracto_marzo.csv", content=b"fecha;importe;concepto\n")


# --- SQLite (aiosqlite) fixtures ---
@pytest_asyncio.fixture
async def sqlite_engine():
    """In-memory SQLite engine with the schema created from the models."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(sqlite_engine):
    maker = create_session_maker(sqlite_engine)
    async with maker() as session:
        yield session
