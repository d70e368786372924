"""Imported bank movement model."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from treasury_ingest.database import Base
from treasury_ingest.models.base import IntegerIDMixin, TimestampMixin


class MovementStatus(str, Enum):
    """Reconciliation status of a movement against the budget."""

    CONCILIADO = "conciliado"
    CONFIRMADO = "confirmado"
    NO_PLANIFICADO = "no_planificado"
    # Manual terminal states, never assigned by the import pipeline
    CONFIRMADO_MANUAL = "confirmado_manual"
    RECHAZADO = "rechazado"


class TransferState(str, Enum):
    """Lifecycle of a transfer leg."""

    PENDING = "pending"
    PAIRED = "paired"


class MovementSource(str, Enum):
    """Origin of a movement record."""

    IMPORT = "import"
    MANUAL = "manual"
    INBOX = "inbox"


class Movement(Base, IntegerIDMixin, TimestampMixin):
    """
    A single bank transaction line.

    Write-once: the import pipeline adds rows and never rewrites them, except
    for completing a pending transfer leg when its counterpart arrives.

    Deduplication: SHA256(account_id|date|amount|normalized_description|reference)
    """

    __tablename__ = "movements"
    __table_args__ = (UniqueConstraint("account_id", "dedup_hash", name="uq_movements_account_dedup_hash"),)

    account_id: Mapped[int] = mapped_column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    txn_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, comment="Signed, negative is a debit")
    description: Mapped[str] = mapped_column(Text, nullable=False)
    normalized_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    counterparty: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True, comment="Bank reference")
    iban_detected: Mapped[str | None] = mapped_column(String(34), nullable=True)
    category_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category_subtype: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[MovementStatus] = mapped_column(
        SQLEnum(
            MovementStatus,
            name="movement_status_enum",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
        default=MovementStatus.NO_PLANIFICADO,
    )
    plan_match_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("budget_lines.id"), nullable=True)
    match_confidence: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    match_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_transfer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    transfer_group_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    transfer_state: Mapped[TransferState | None] = mapped_column(
        SQLEnum(
            TransferState,
            name="transfer_state_enum",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=True,
        index=True,
    )

    dedup_hash: Mapped[str] = mapped_column(String(64), nullable=False, comment="SHA256 content hash")
    import_batch: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    row_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source: Mapped[MovementSource] = mapped_column(
        SQLEnum(
            MovementSource,
            name="movement_source_enum",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
        default=MovementSource.IMPORT,
    )

    def __repr__(self) -> str:
        return f"<Movement {self.id} {self.txn_date} {self.amount} ({self.status})>"
