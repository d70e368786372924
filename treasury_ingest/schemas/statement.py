"""Statement parser input/output schemas.

The statement parser is an external collaborator; these schemas are the
contract between it and the pipeline. Fields are optional on purpose so
malformed lines reach the pipeline and are reported rather than rejected
by validation.
"""

from datetime import date
from decimal import Decimal

from pydantic import Field, computed_field

from treasury_ingest.schemas.base import BaseSchema


class StatementFile(BaseSchema):
    """Raw uploaded file."""

    file_name: str
    content: bytes = b""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def file_size(self) -> int:
        return len(self.content)


class ParsedMovement(BaseSchema):
    """One normalized line produced by a statement parser."""

    txn_date: date | None = None
    amount: Decimal | None = None
    description: str | None = None
    reference: str | None = None
    counterparty: str | None = None
    detected_iban: str | None = None
    category_type: str | None = None
    category_subtype: str | None = None
    row_index: int | None = None


class ParsedStatement(BaseSchema):
    """Parser output: movements plus whatever metadata helps resolve the account."""

    movements: list[ParsedMovement] = Field(default_factory=list)
    header_lines: list[str] = Field(default_factory=list)
    detected_iban: str | None = Field(default=None, description="IBAN found in a data column")
    bank: str | None = None
