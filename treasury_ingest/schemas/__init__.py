"""Pydantic schemas package."""

from treasury_ingest.schemas.pipeline import AccountCandidate, ErrorDetail, ImportResult, ImportSummary
from treasury_ingest.schemas.statement import ParsedMovement, ParsedStatement, StatementFile

__all__ = [
    "AccountCandidate",
    "ErrorDetail",
    "ImportResult",
    "ImportSummary",
    "ParsedMovement",
    "ParsedStatement",
    "StatementFile",
]
