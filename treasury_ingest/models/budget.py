"""Budget (presupuesto) and budget line models."""

from decimal import Decimal, InvalidOperation
from enum import Enum

from sqlalchemy import JSON, Enum as SQLEnum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from treasury_ingest.database import Base
from treasury_ingest.models.base import IntegerIDMixin, TimestampMixin


class BudgetStatus(str, Enum):
    """Budget lifecycle."""

    DRAFT = "Borrador"
    ACTIVE = "Activo"
    CLOSED = "Cerrado"


class Budget(Base, IntegerIDMixin, TimestampMixin):
    """Yearly budget. Only the active budget of a year takes part in matching."""

    __tablename__ = "budgets"

    year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[BudgetStatus] = mapped_column(
        SQLEnum(
            BudgetStatus,
            name="budget_status_enum",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
        default=BudgetStatus.DRAFT,
    )


class BudgetLine(Base, IntegerIDMixin, TimestampMixin):
    """
    A planned monthly amount forecast.

    ``amount_by_month`` holds 12 signed amounts (January first) stored as
    decimal strings so JSON round-trips keep exact cents.
    """

    __tablename__ = "budget_lines"

    budget_id: Mapped[int] = mapped_column(Integer, ForeignKey("budgets.id"), nullable=False, index=True)
    account_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("accounts.id"), nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    provider_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    amount_by_month: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    def amount_for_month(self, month: int) -> Decimal:
        """Planned amount for a 1-based month; missing or malformed slots count as zero."""
        slots = self.amount_by_month or []
        if not 1 <= month <= len(slots):
            return Decimal("0")
        raw = slots[month - 1]
        if raw is None:
            return Decimal("0")
        try:
            return Decimal(str(raw))
        except InvalidOperation:
            return Decimal("0")

    def __repr__(self) -> str:
        return f"<BudgetLine {self.id} {self.label}>"
