"""Import log model: append-only audit trail of pipeline runs."""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, Enum as SQLEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from treasury_ingest.database import Base
from treasury_ingest.models.base import IntegerIDMixin


class ImportSource(str, Enum):
    """Where an import run was triggered from."""

    TREASURY_IMPORT = "treasury_import"
    INBOX_AUTO = "inbox_auto"


class ImportOutcome(str, Enum):
    """Final state of an import run."""

    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    REQUIRES_ACCOUNT_SELECTION = "requires_account_selection"
    FAILED = "failed"


class ImportLog(Base, IntegerIDMixin):
    """One record per pipeline run, success or failure. Never updated."""

    __tablename__ = "import_logs"

    batch_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    imported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    detected_iban: Mapped[str | None] = mapped_column(String(34), nullable=True)
    source: Mapped[ImportSource] = mapped_column(
        SQLEnum(
            ImportSource,
            name="import_source_enum",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
    )
    outcome: Mapped[ImportOutcome] = mapped_column(
        SQLEnum(
            ImportOutcome,
            name="import_outcome_enum",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
    )
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    valid_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invalid_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conciliated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unplanned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="Duplicates")
    transfers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_details: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<ImportLog {self.batch_id} {self.outcome}>"
