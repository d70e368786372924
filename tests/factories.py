"""Test data factories using factory_boy pattern.

Usage:
    # Working record for the matcher and the transfer detector
    movement = MovementCandidateFactory.build(amount="-150.00")

    # Budget line planning -100.00 in every month
    line = BudgetLineFactory.build(id=10, amount="-100.00", account_id=1)

    # Parser output from plain row dicts
    statement = ParsedStatementFactory.with_rows({"description": "X"}, header_lines=[...])

    # Create and flush to DB (transaction not committed)
    account = await AccountFactory.create_async(db, iban=MAIN_IBAN)
"""

from datetime import date
from decimal import Decimal
from typing import TypeVar

import factory
from sqlalchemy.ext.asyncio import AsyncSession

from treasury_ingest.models import Account, BudgetLine
from treasury_ingest.schemas.statement import ParsedMovement, ParsedStatement
from treasury_ingest.services.normalization import MovementCandidate

T = TypeVar("T")

MAIN_IBAN = "ES9121000418450200051332"
SAVINGS_IBAN = "ES7921000813610123456789"


class AsyncFactoryMixin:
    """Async database persistence for factories of mapped models."""

    @classmethod
    async def create_async(cls, db: AsyncSession, **kwargs) -> T:
        """Create and flush to database (transaction not committed)."""
        instance = cls.build(**kwargs)
        db.add(instance)
        await db.flush()
        await db.refresh(instance)
        return instance


class AccountFactory(factory.Factory, AsyncFactoryMixin):
    class Meta:
        model = Account

    id = factory.Sequence(lambda n: n + 1)
    name = factory.Sequence(lambda n: f"Cuenta {n}")
    bank = "CaixaBank"
    iban = None
    currency = "EUR"
    is_active = True


class BudgetLineFactory(factory.Factory, AsyncFactoryMixin):
    """Budget line planning ``amount`` in each of ``months`` and zero elsewhere."""

    class Meta:
        model = BudgetLine

    class Params:
        amount = "-100.00"
        months = tuple(range(1, 13))

    id = factory.Sequence(lambda n: n + 1)
    budget_id = 1
    account_id = None
    category = "Suministros"
    subcategory = None
    label = "Suministro electrico"
    provider_name = None
    day_of_month = 10
    amount_by_month = factory.LazyAttribute(
        lambda o: [o.amount if month in o.months else "0" for month in range(1, 13)]
    )


class MovementCandidateFactory(factory.Factory):
    class Meta:
        model = MovementCandidate

    account_id = 1
    txn_date = date(2025, 3, 10)
    amount = Decimal("-100.00")
    description = "RECIBO LUZ"

    @classmethod
    def _adjust_kwargs(cls, **kwargs):
        if isinstance(kwargs.get("amount"), str):
            kwargs["amount"] = Decimal(kwargs["amount"])
        return kwargs


class ParsedMovementFactory(factory.Factory):
    class Meta:
        model = ParsedMovement

    txn_date = date(2025, 3, 10)
    amount = Decimal("-100.00")
    description = "RECIBO LUZ"
    row_index = None


class ParsedStatementFactory(factory.Factory):
    class Meta:
        model = ParsedStatement

    movements = factory.LazyFunction(list)
    header_lines = factory.LazyFunction(list)
    detected_iban = None

    @classmethod
    def with_rows(cls, *rows: dict, **kwargs) -> ParsedStatement:
        """Statement whose movements are built from ``rows``; keys missing from a row stay empty."""
        movements = [ParsedMovement(**row) for row in rows]
        return cls.build(movements=movements, **kwargs)
