"""Bank account model."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from treasury_ingest.database import Base
from treasury_ingest.models.base import IntegerIDMixin, TimestampMixin


class Account(Base, IntegerIDMixin, TimestampMixin):
    """A bank account movements are imported into.

    Only the IBAN and the active flag matter to the ingestion pipeline;
    everything else is descriptive.
    """

    __tablename__ = "accounts"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    bank: Mapped[str | None] = mapped_column(String(255), nullable=True)
    iban: Mapped[str | None] = mapped_column(String(34), nullable=True, index=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Account {self.id} {self.name}>"
