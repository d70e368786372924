"""Internal transfer detection between the user's own accounts.

A transfer is a pair of movements on different accounts with opposite
signs and equal magnitude, close in date. A movement whose description
carries a transfer keyword is treated as a transfer leg even before its
counterpart shows up; it stays pending until a later import brings the
other leg.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from treasury_ingest.logger import get_logger
from treasury_ingest.models import MovementStatus, TransferState
from treasury_ingest.services.matching_config import DEFAULT_MATCHING_CONFIG, MatchingConfig
from treasury_ingest.services.normalization import MovementCandidate, format_amount, normalize_description
from treasury_ingest.stores.interface import MovementStore

logger = get_logger(__name__)

SYMMETRIC_AMOUNT_POINTS = 40.0
OPPOSITE_SIGN_POINTS = 30.0
DATE_POINTS = 20.0
DATE_EDGE_POINTS = 10.0
KEYWORD_POINTS = 10.0
REFERENCE_POINTS = 15.0
PENDING_LEG_CONFIDENCE = 70.0


@dataclass
class TransferPair:
    """Two legs of one internal transfer."""

    outgoing: MovementCandidate
    incoming: MovementCandidate
    confidence: float
    date_distance: int
    has_keyword: bool
    group_id: str | None = None
    breakdown: dict[str, float] = field(default_factory=dict)


@dataclass
class TransferDetectionResult:
    pairs: list[TransferPair] = field(default_factory=list)
    pending: list[MovementCandidate] = field(default_factory=list)
    completed_pending: list[MovementCandidate] = field(default_factory=list)

    @property
    def transfer_count(self) -> int:
        """New movements flagged as transfer legs (paired or pending)."""
        new_paired = sum(
            1 for pair in self.pairs for leg in (pair.outgoing, pair.incoming) if leg.id is None
        )
        return new_paired + len(self.pending)


def has_transfer_keyword(description: str | None, keywords: Iterable[str]) -> bool:
    """Case-insensitive keyword containment, tolerant to punctuation."""
    if not description:
        return False
    upper = description.upper()
    normalized = normalize_description(description)
    for keyword in keywords:
        keyword_upper = keyword.upper()
        if keyword_upper in upper:
            return True
        keyword_normalized = normalize_description(keyword)
        if keyword_normalized and keyword_normalized in normalized:
            return True
    return False


def transfer_group_key(movement: MovementCandidate, other: MovementCandidate | None = None) -> str:
    """``TRF-<earliest date>-<absolute amount>``; identical for both legs of a pair."""
    if movement.txn_date is None or movement.amount is None:
        raise ValueError("transfer legs need a date and an amount")
    earliest = movement.txn_date
    if other is not None and other.txn_date is not None and other.txn_date < earliest:
        earliest = other.txn_date
    return f"TRF-{earliest.isoformat()}-{format_amount(abs(movement.amount))}"


def score_transfer_date(days: int, window: int) -> float:
    if days == 0 or window == 0:
        return DATE_POINTS
    return DATE_POINTS - (days / window) * (DATE_POINTS - DATE_EDGE_POINTS)


def evaluate_transfer_pair(
    first: MovementCandidate,
    second: MovementCandidate,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
    account_ids: Collection[int] | None = None,
) -> TransferPair | None:
    """Return the pair when the two movements form a valid transfer, else None."""
    if first.account_id == second.account_id:
        return None
    if account_ids is not None and (first.account_id not in account_ids or second.account_id not in account_ids):
        return None
    if first.amount is None or second.amount is None or first.txn_date is None or second.txn_date is None:
        return None
    if first.amount * second.amount >= 0:
        return None
    if abs(abs(first.amount) - abs(second.amount)) > config.transfer_amount_tolerance:
        return None

    has_keyword = has_transfer_keyword(first.description, config.transfer_keywords) or has_transfer_keyword(
        second.description, config.transfer_keywords
    )
    window = config.transfer_keyword_date_window if has_keyword else config.transfer_date_window
    days = abs((first.txn_date - second.txn_date).days)
    if days > window:
        return None

    breakdown = {
        "amount": SYMMETRIC_AMOUNT_POINTS,
        "sign": OPPOSITE_SIGN_POINTS,
        "date": round(score_transfer_date(days, window), 2),
        "keyword": KEYWORD_POINTS if has_keyword else 0.0,
        "reference": 0.0,
    }
    if first.reference and second.reference and first.reference.strip() == second.reference.strip():
        breakdown["reference"] = REFERENCE_POINTS

    outgoing, incoming = (first, second) if first.amount < 0 else (second, first)
    return TransferPair(
        outgoing=outgoing,
        incoming=incoming,
        confidence=min(100.0, round(sum(breakdown.values()), 2)),
        date_distance=days,
        has_keyword=has_keyword,
        breakdown=breakdown,
    )


def _sort_key(movement: MovementCandidate) -> tuple:
    return (
        movement.txn_date,
        movement.account_id,
        movement.amount,
        movement.normalized_description,
        movement.reference or "",
        movement.row_index if movement.row_index is not None else -1,
    )


def _unique_key(base: str, used: set[str]) -> str:
    key = base
    suffix = 2
    while key in used:
        key = f"{base}-{suffix}"
        suffix += 1
    used.add(key)
    return key


def _mark_leg(
    leg: MovementCandidate,
    group_id: str,
    state: TransferState,
    confidence: float,
    reason: str,
    config: MatchingConfig,
) -> None:
    leg.is_transfer = True
    leg.transfer_group_id = group_id
    leg.transfer_state = state
    if config.transfer_overrides_budget or leg.status == MovementStatus.NO_PLANIFICADO:
        leg.status = MovementStatus.CONFIRMADO
        leg.plan_match_id = None
        leg.match_confidence = confidence
        leg.match_reason = reason


def detect_transfers(
    movements: Sequence[MovementCandidate],
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
    pending_legs: Sequence[MovementCandidate] = (),
    account_ids: Collection[int] | None = None,
    reserved_keys: Iterable[str] = (),
) -> TransferDetectionResult:
    """Pair transfer legs among ``movements`` and previously stored pending legs.

    Movements are visited in a fixed order (date, account, amount,
    description) so the outcome does not depend on input order. Each
    unpaired movement takes its best valid partner. Keyword legs left
    without a partner become pending. Stored pending legs that get paired
    are listed in ``completed_pending``; writing them back is the caller's
    follow-up step.
    """
    result = TransferDetectionResult()
    used_keys = set(reserved_keys)
    used_keys.update(leg.transfer_group_id for leg in pending_legs if leg.transfer_group_id)

    ordered = sorted((m for m in movements if m.is_valid), key=_sort_key)
    available_pending = sorted((leg for leg in pending_legs if leg.is_valid), key=_sort_key)
    paired: set[int] = set()

    for movement in ordered:
        if id(movement) in paired:
            continue

        best: TransferPair | None = None
        best_partner: MovementCandidate | None = None
        for partner in ordered + available_pending:
            if partner is movement or id(partner) in paired:
                continue
            pair = evaluate_transfer_pair(movement, partner, config, account_ids)
            if pair is None:
                continue
            if best is None or (pair.confidence, -pair.date_distance) > (best.confidence, -best.date_distance):
                best, best_partner = pair, partner

        if best is None or best_partner is None:
            continue

        paired.update({id(movement), id(best_partner)})
        if best_partner.id is not None and best_partner.transfer_group_id:
            group_id = best_partner.transfer_group_id
        else:
            group_id = _unique_key(transfer_group_key(movement, best_partner), used_keys)
        best.group_id = group_id

        reason = f"Internal transfer (confidence {best.confidence:g})"
        for leg in (best.outgoing, best.incoming):
            _mark_leg(leg, group_id, TransferState.PAIRED, best.confidence, reason, config)
            leg.transfer_counterpart = best.incoming if leg is best.outgoing else best.outgoing
        if best_partner.id is not None:
            result.completed_pending.append(best_partner)
        result.pairs.append(best)

    for movement in ordered:
        if id(movement) in paired:
            continue
        if not has_transfer_keyword(movement.description, config.transfer_keywords):
            continue
        group_id = _unique_key(transfer_group_key(movement), used_keys)
        _mark_leg(
            movement,
            group_id,
            TransferState.PENDING,
            PENDING_LEG_CONFIDENCE,
            "Transfer keyword, awaiting counterpart",
            config,
        )
        result.pending.append(movement)

    logger.info(
        "Transfer detection finished",
        movements=len(ordered),
        pairs=len(result.pairs),
        pending=len(result.pending),
        completed_pending=len(result.completed_pending),
    )
    return result


async def complete_pending_transfers(
    legs: Sequence[MovementCandidate],
    store: MovementStore,
) -> int:
    """Write pairing of previously stored pending legs back to the store.

    Idempotent: legs already paired in the store are left untouched.
    Returns the number of rows updated.
    """
    updated = 0
    for leg in legs:
        if leg.id is None:
            continue
        row = await store.get(leg.id)
        if row is None:
            logger.warning("Pending transfer leg no longer stored", movement_id=leg.id)
            continue
        if row.transfer_state == TransferState.PAIRED:
            continue

        row.is_transfer = True
        row.transfer_state = TransferState.PAIRED
        row.transfer_group_id = leg.transfer_group_id
        row.status = leg.status
        row.plan_match_id = leg.plan_match_id
        row.match_confidence = Decimal(str(leg.match_confidence)) if leg.match_confidence is not None else None
        row.match_reason = leg.match_reason
        await store.put(row)
        updated += 1
        logger.info(
            "Pending transfer leg completed",
            movement_id=row.id,
            transfer_group_id=row.transfer_group_id,
        )
    return updated
