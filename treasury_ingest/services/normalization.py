"""Movement normalization: canonical descriptions, amounts and candidate records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from treasury_ingest.models import Movement, MovementStatus, TransferState
from treasury_ingest.schemas.statement import ParsedMovement

STOP_WORDS = frozenset({"THE", "EL", "LA", "DE", "DEL", "Y", "AND", "&"})

CENT = Decimal("0.01")
REQUIRED_FIELDS = ("account_id", "txn_date", "amount", "description")

_WHITESPACE_RE = re.compile(r"\s+")
# Unicode-aware: accented letters are word characters and survive
_NON_ALNUM_RE = re.compile(r"[^\w\s]|_")


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()


def normalize_description(value: str | None) -> str:
    """Canonical description used for hashing and comparison.

    Trim, collapse whitespace, uppercase, drop anything that is not a letter,
    digit or space, then drop stop words. Accents are kept, so ``ENERGÍA``
    and ``ENERGIA`` stay distinct.
    """
    if not value:
        return ""
    text = collapse_whitespace(value).upper()
    text = _NON_ALNUM_RE.sub("", text)
    words = [word for word in text.split(" ") if word and word not in STOP_WORDS]
    return " ".join(words)


def quantize_amount(value: Decimal | int | float | str) -> Decimal:
    """Round to cents. Floats go through ``str`` so 0.1 stays 0.10."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    """Exactly two decimals, e.g. ``-123.45``."""
    return f"{quantize_amount(value):.2f}"


def significant_words(value: str | None, min_length: int = 4) -> list[str]:
    """Lowercased whitespace tokens at least ``min_length`` characters long."""
    if not value:
        return []
    return [word for word in value.lower().split() if len(word) >= min_length]


@dataclass
class MovementCandidate:
    """A movement under evaluation by the pipeline.

    Built from parser output, annotated by the matcher and the transfer
    detector, then turned into a ``Movement`` row. ``id`` is only set for
    legs loaded back from the store.
    """

    account_id: int | None
    txn_date: date | None
    amount: Decimal | None
    description: str | None
    reference: str | None = None
    counterparty: str | None = None
    iban_detected: str | None = None
    category_type: str | None = None
    category_subtype: str | None = None
    row_index: int | None = None
    id: int | None = None

    normalized_description: str = ""
    dedup_hash: str | None = None

    status: MovementStatus = MovementStatus.NO_PLANIFICADO
    plan_match_id: int | None = None
    match_confidence: float | None = None
    match_reason: str | None = None

    is_transfer: bool = False
    transfer_group_id: str | None = None
    transfer_state: TransferState | None = None
    transfer_counterpart: MovementCandidate | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.description and not self.normalized_description:
            self.normalized_description = normalize_description(self.description)

    def missing_fields(self) -> list[str]:
        """Required fields that are absent. ``account_id`` 0 counts as absent."""
        missing = []
        if not self.account_id:
            missing.append("account_id")
        if self.txn_date is None:
            missing.append("txn_date")
        if self.amount is None:
            missing.append("amount")
        if not self.description or not self.description.strip():
            missing.append("description")
        return missing

    @property
    def is_valid(self) -> bool:
        return not self.missing_fields()


def candidate_from_parsed(
    parsed: ParsedMovement,
    account_id: int | None,
    row_index: int | None = None,
) -> MovementCandidate:
    """Normalize one parser line into a candidate for ``account_id``."""
    amount: Decimal | None = None
    if parsed.amount is not None:
        try:
            amount = quantize_amount(parsed.amount)
        except InvalidOperation:
            amount = None

    description = collapse_whitespace(parsed.description) if parsed.description else parsed.description
    return MovementCandidate(
        account_id=account_id,
        txn_date=parsed.txn_date,
        amount=amount,
        description=description,
        reference=(parsed.reference or "").strip() or None,
        counterparty=(parsed.counterparty or "").strip() or None,
        iban_detected=parsed.detected_iban,
        category_type=parsed.category_type,
        category_subtype=parsed.category_subtype,
        row_index=parsed.row_index if parsed.row_index is not None else row_index,
    )


def candidate_from_movement(movement: Movement) -> MovementCandidate:
    """Rebuild a candidate from a stored row (used for pending transfer legs)."""
    return MovementCandidate(
        id=movement.id,
        account_id=movement.account_id,
        txn_date=movement.txn_date,
        amount=quantize_amount(movement.amount),
        description=movement.description,
        reference=movement.reference,
        counterparty=movement.counterparty,
        iban_detected=movement.iban_detected,
        category_type=movement.category_type,
        category_subtype=movement.category_subtype,
        row_index=movement.row_index,
        normalized_description=movement.normalized_description or normalize_description(movement.description),
        dedup_hash=movement.dedup_hash,
        status=movement.status,
        plan_match_id=movement.plan_match_id,
        match_confidence=float(movement.match_confidence) if movement.match_confidence is not None else None,
        match_reason=movement.match_reason,
        is_transfer=bool(movement.is_transfer),
        transfer_group_id=movement.transfer_group_id,
        transfer_state=movement.transfer_state,
    )
