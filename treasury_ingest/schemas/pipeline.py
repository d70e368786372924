"""Import pipeline result schemas."""

from pydantic import Field

from treasury_ingest.models import ImportOutcome
from treasury_ingest.schemas.base import BaseSchema


class ErrorDetail(BaseSchema):
    """A per-line problem. ``line`` is the 1-based input row, 0 for run-level errors."""

    line: int
    error: str


class AccountCandidate(BaseSchema):
    """An account the user may pick when the IBAN did not resolve to one account."""

    id: int
    name: str
    bank: str | None = None
    iban_masked: str | None = None
    match_type: str = "none"  # exact | last4 | none
    confidence: float = 0.0


class ImportSummary(BaseSchema):
    """Counters of one run.

    ``created + duplicates == valid_rows`` on every completed run.
    """

    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    created: int = 0
    duplicates: int = 0
    conciliated: int = 0
    confirmed: int = 0
    unplanned: int = 0
    transfers: int = 0
    pending_transfers: int = 0
    completed_pending: int = 0
    errors: int = 0


class ImportResult(BaseSchema):
    """Outcome of ``ImportPipeline.run``."""

    batch_id: str
    success: bool
    outcome: ImportOutcome
    account_id: int | None = None
    detected_iban: str | None = None
    requires_account_selection: bool = False
    account_candidates: list[AccountCandidate] = Field(default_factory=list)
    blocking_reason: str | None = None
    summary: ImportSummary = Field(default_factory=ImportSummary)
    error_details: list[ErrorDetail] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    movement_ids: list[int] = Field(default_factory=list)
    import_log_id: int | None = None
