"""Tests for the in-memory stores."""

from datetime import date
from decimal import Decimal

import pytest

from tests.factories import BudgetLineFactory
from treasury_ingest.models import Account, Budget, BudgetStatus, Movement, MovementStatus
from treasury_ingest.schemas.statement import StatementFile
from treasury_ingest.stores import InMemoryAccountStore, InMemoryBudgetStore, StaticStatementParser, in_memory_stores
from treasury_ingest.utils.exceptions import PersistenceError, StatementParseError


def movement() -> Movement:
    return Movement(
        account_id=1,
        txn_date=date(2025, 3, 10),
        amount=Decimal("-1.00"),
        description="X",
        status=MovementStatus.NO_PLANIFICADO,
        is_transfer=False,
        dedup_hash="h",
    )


@pytest.mark.asyncio
async def test_account_ids_continue_after_seeded_ids():
    store = InMemoryAccountStore([Account(id=5, name="Seeded", is_active=True)])
    created = await store.create_account(Account(name="Nueva"))

    assert created.id == 6
    assert created.is_active is True
    assert created.created_at is not None


@pytest.mark.asyncio
async def test_movement_ids_are_sequential():
    stores = in_memory_stores()
    first = await stores.movements.add(movement())
    second = await stores.movements.add(movement())

    assert (first.id, second.id) == (1, 2)


@pytest.mark.asyncio
async def test_put_unknown_movement_fails():
    stores = in_memory_stores()
    row = movement()
    row.id = 7
    with pytest.raises(PersistenceError):
        await stores.movements.put(row)


@pytest.mark.asyncio
async def test_active_budget_per_year():
    store = InMemoryBudgetStore()
    draft_line = BudgetLineFactory.build(id=None, amount="-1")
    active_line = BudgetLineFactory.build(id=None, amount="-2")
    store.add_budget(Budget(year=2025, status=BudgetStatus.DRAFT), [draft_line])
    active = store.add_budget(Budget(year=2025, status=BudgetStatus.ACTIVE), [active_line])

    assert await store.get_active_budget(2025) is active
    assert await store.get_active_budget(2026) is None
    lines = await store.get_lines(active.id)
    assert [line.amount_for_month(1) for line in lines] == [Decimal("-2")]
    assert lines[0].id == 2


@pytest.mark.asyncio
async def test_static_parser():
    file = StatementFile(file_name="a.csv", content=b"abc")
    with pytest.raises(StatementParseError, match="a.csv"):
        await StaticStatementParser().parse(file)
    with pytest.raises(StatementParseError, match="broken"):
        await StaticStatementParser(error="broken").parse(file)
    assert file.file_size == 3
