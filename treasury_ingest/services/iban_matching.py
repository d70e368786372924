"""Destination account resolution from IBANs found in a statement."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from treasury_ingest.logger import get_logger
from treasury_ingest.models import Account
from treasury_ingest.schemas.pipeline import AccountCandidate
from treasury_ingest.schemas.statement import ParsedStatement

logger = get_logger(__name__)

HEADER_CONFIDENCE = 0.9
COLUMN_CONFIDENCE = 0.8
FILENAME_CONFIDENCE = 0.7
EXACT_MATCH_CONFIDENCE = 0.95
LAST4_MATCH_CONFIDENCE = 0.7

IBAN_LENGTHS = {"ES": 24, "PT": 25, "FR": 27, "DE": 22, "IT": 27, "GB": 22, "NL": 18, "BE": 16, "AD": 24}

_FULL_IBAN_RE = re.compile(r"(?<![A-Z0-9])[A-Z]{2}\d{2}(?:[ \-]?[A-Z0-9]{4}){2,7}(?:[ \-]?[A-Z0-9]{1,3})?")
_MASKED_IBAN_RE = re.compile(r"[*xX•]{2,}[\s*xX•]*(\d{4})(?!\d)")
# Excludes digits glued to other digits or date separators
_FOUR_DIGITS_RE = re.compile(r"(?<![\d/\-])\d{4}(?![\d/\-])")


@dataclass
class IbanExtraction:
    """What could be learned about the destination IBAN."""

    iban: str | None = None
    last4: str | None = None
    confidence: float = 0.0
    source: str = "none"  # header | column | filename | none

    @property
    def found(self) -> bool:
        return bool(self.iban or self.last4)


@dataclass
class AccountMatchResult:
    account_id: int | None = None
    match_type: str = "none"  # exact | last4 | none
    confidence: float = 0.0
    requires_selection: bool = False
    candidates: list[AccountCandidate] = field(default_factory=list)
    reason: str | None = None


def normalize_iban(value: str | None) -> str:
    if not value:
        return ""
    return re.sub(r"[\s\-]", "", value).upper()


def is_valid_iban(value: str | None) -> bool:
    """ISO 13616 mod-97 check."""
    iban = normalize_iban(value)
    if not re.fullmatch(r"[A-Z]{2}\d{2}[A-Z0-9]{11,30}", iban):
        return False
    expected = IBAN_LENGTHS.get(iban[:2])
    if expected is not None and len(iban) != expected:
        return False
    rearranged = iban[4:] + iban[:4]
    digits = "".join(str(int(char, 36)) for char in rearranged)
    return int(digits) % 97 == 1


def mask_iban(value: str | None) -> str:
    """``ES12 **** **** 1234``."""
    iban = normalize_iban(value)
    if len(iban) < 8:
        return iban
    return f"{iban[:4]} **** **** {iban[-4:]}"


def _resolve_full_iban(raw: str) -> str | None:
    compact = normalize_iban(raw)
    expected = IBAN_LENGTHS.get(compact[:2])
    if expected is not None:
        # Known country: trailing text glued by the regex is cut at the fixed length
        return compact[:expected] if len(compact) >= expected else None
    for length in range(min(34, len(compact)), 14, -1):
        if is_valid_iban(compact[:length]):
            return compact[:length]
    return None


def extract_iban_from_text(text: str | None, allow_bare_digits: bool = False) -> IbanExtraction | None:
    """Full IBAN first, then a masked IBAN, then (if allowed) a lone 4-digit group.

    Confidence and source are left for the caller to fill in.
    """
    if not text:
        return None
    upper = text.upper()

    for match in _FULL_IBAN_RE.finditer(upper):
        iban = _resolve_full_iban(match.group(0))
        if iban:
            return IbanExtraction(iban=iban, last4=iban[-4:])

    masked = _MASKED_IBAN_RE.search(upper)
    if masked:
        return IbanExtraction(last4=masked.group(1))

    if not allow_bare_digits:
        return None
    # Years are not account digits
    groups = [g for g in _FOUR_DIGITS_RE.findall(upper) if not 1900 <= int(g) <= 2099]
    if len(groups) == 1:
        return IbanExtraction(last4=groups[0])
    return None


def extract_iban_from_statement(statement: ParsedStatement, file_name: str | None = None) -> IbanExtraction:
    """Search header lines, then IBAN columns, then the file name."""
    header = extract_iban_from_text("\n".join(statement.header_lines))
    if header:
        header.confidence, header.source = HEADER_CONFIDENCE, "header"
        return header

    column_values = [statement.detected_iban] + [m.detected_iban for m in statement.movements]
    for value in column_values:
        column = extract_iban_from_text(value)
        if column:
            column.confidence, column.source = COLUMN_CONFIDENCE, "column"
            return column

    from_name = extract_iban_from_text(file_name, allow_bare_digits=True)
    if from_name:
        from_name.confidence, from_name.source = FILENAME_CONFIDENCE, "filename"
        return from_name

    return IbanExtraction()


def _candidate(account: Account, match_type: str, confidence: float) -> AccountCandidate:
    return AccountCandidate(
        id=account.id,
        name=account.name,
        bank=account.bank,
        iban_masked=mask_iban(account.iban) if account.iban else None,
        match_type=match_type,
        confidence=confidence,
    )


def match_account_by_iban(extraction: IbanExtraction, accounts: Sequence[Account]) -> AccountMatchResult:
    """Resolve one active account, or report the candidates to choose from.

    Exact IBAN wins; otherwise the last four digits must single out one
    account. Anything else requires an explicit selection.
    """
    active = [account for account in accounts if account.is_active]

    if extraction.iban:
        exact = [a for a in active if normalize_iban(a.iban) == extraction.iban]
        if len(exact) == 1:
            return AccountMatchResult(
                account_id=exact[0].id,
                match_type="exact",
                confidence=EXACT_MATCH_CONFIDENCE,
            )
        if len(exact) > 1:
            return AccountMatchResult(
                match_type="exact",
                requires_selection=True,
                candidates=[_candidate(a, "exact", EXACT_MATCH_CONFIDENCE) for a in exact],
                reason=f"Varias cuentas tienen el IBAN {mask_iban(extraction.iban)}. Selecciona la cuenta de destino.",
            )

    last4 = extraction.last4 or (extraction.iban[-4:] if extraction.iban else None)
    if last4:
        partial = [a for a in active if a.iban and normalize_iban(a.iban)[-4:] == last4]
        if len(partial) == 1:
            return AccountMatchResult(
                account_id=partial[0].id,
                match_type="last4",
                confidence=LAST4_MATCH_CONFIDENCE,
            )
        if len(partial) > 1:
            logger.info("Ambiguous last-4 IBAN match", last4=last4, candidates=len(partial))
            return AccountMatchResult(
                match_type="last4",
                requires_selection=True,
                candidates=[_candidate(a, "last4", LAST4_MATCH_CONFIDENCE) for a in partial],
                reason=f"Varias cuentas terminan en {last4}. Selecciona la cuenta de destino.",
            )

    reason = (
        "No se encontró ninguna cuenta con el IBAN detectado. Selecciona la cuenta de destino."
        if extraction.found
        else "No se detectó IBAN en el archivo. Selecciona la cuenta de destino."
    )
    return AccountMatchResult(
        requires_selection=True,
        candidates=[_candidate(a, "none", 0.0) for a in active],
        reason=reason,
    )
