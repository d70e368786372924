"""Budget matching engine: score movements against planned budget lines."""

from __future__ import annotations

import calendar
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from treasury_ingest.logger import get_logger
from treasury_ingest.models import BudgetLine, MovementStatus
from treasury_ingest.services.matching_config import DEFAULT_MATCHING_CONFIG, MatchingConfig
from treasury_ingest.services.normalization import MovementCandidate, significant_words

logger = get_logger(__name__)

AMOUNT_POINTS = 40.0
AMOUNT_EDGE_POINTS = 20.0
DATE_POINTS = 20.0
DATE_EDGE_POINTS = 10.0
PROVIDER_POINTS = 20.0
DESCRIPTION_POINTS_PER_WORD = 5.0
DESCRIPTION_MAX_POINTS = 15.0
CATEGORY_POINTS = 10.0
MAX_SCORE = 100.0


@dataclass
class MatchCandidate:
    """Score of one (movement, budget line) pair."""

    budget_line: BudgetLine
    # Score components are 0-100 points, not monetary values.
    score: float
    date_distance: int
    amount_difference_percent: float
    criteria: list[str] = field(default_factory=list)
    breakdown: dict[str, float] = field(default_factory=dict)


@dataclass
class MatchResult:
    """Per-movement matching outcome."""

    status: MovementStatus
    confidence: float
    reason: str
    candidate: MatchCandidate | None = None
    candidates_considered: int = 0

    @property
    def plan_match_id(self) -> int | None:
        if self.candidate is None or self.status == MovementStatus.NO_PLANIFICADO:
            return None
        return self.candidate.budget_line.id


def expected_date(line: BudgetLine, movement_date: date) -> date | None:
    """The line's planned day within the movement's month, clamped to month length."""
    if not line.day_of_month:
        return None
    last_day = calendar.monthrange(movement_date.year, movement_date.month)[1]
    day = min(max(line.day_of_month, 1), last_day)
    return movement_date.replace(day=day)


def find_budget_candidates(
    movement: MovementCandidate,
    budget_lines: Iterable[BudgetLine],
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> list[BudgetLine]:
    """Lines eligible for ``movement``: same account (when enabled) and a non-zero planned month.

    Date and amount precision is left to scoring.
    """
    if movement.txn_date is None:
        return []
    month = movement.txn_date.month
    eligible = []
    for line in budget_lines:
        if config.use_account_matching and line.account_id is not None and line.account_id != movement.account_id:
            continue
        if line.amount_for_month(month) == 0:
            continue
        eligible.append(line)
    return eligible


def amount_difference_percent(movement_amount: Decimal, planned_amount: Decimal, config: MatchingConfig) -> float:
    """Percentage difference relative to the planned amount.

    Differences within the fixed tolerance count as exact.
    """
    difference = abs(movement_amount - planned_amount)
    if difference <= config.amount_tolerance_fixed:
        return 0.0
    if planned_amount == 0:
        return float("inf")
    return float(difference / abs(planned_amount) * 100)


def score_amount(difference_percent: float, config: MatchingConfig) -> float:
    """40 points at 0% difference decaying to 20 at the tolerance edge, 0 beyond."""
    tolerance = float(config.amount_tolerance_percent)
    if difference_percent == 0:
        return AMOUNT_POINTS
    if tolerance == 0 or difference_percent > tolerance:
        return 0.0
    return AMOUNT_POINTS - (difference_percent / tolerance) * (AMOUNT_POINTS - AMOUNT_EDGE_POINTS)


def score_date(distance_days: int, config: MatchingConfig) -> float:
    """20 points on the planned day decaying to 10 at the window edge, 0 beyond."""
    if distance_days == 0:
        return DATE_POINTS
    window = config.date_window
    if window == 0 or distance_days > window:
        return 0.0
    return DATE_POINTS - (distance_days / window) * (DATE_POINTS - DATE_EDGE_POINTS)


def score_provider(counterparty: str | None, provider_name: str | None) -> float:
    """Flat points when one name contains the other, case-insensitively."""
    if not counterparty or not provider_name:
        return 0.0
    a = counterparty.strip().lower()
    b = provider_name.strip().lower()
    if not a or not b:
        return 0.0
    return PROVIDER_POINTS if a in b or b in a else 0.0


def score_description(description: str | None, label: str | None) -> tuple[float, list[str]]:
    """5 points per significant movement word found in the label (or vice versa), max 15."""
    movement_words = significant_words(description)
    label_words = significant_words(label)
    if not movement_words or not label_words:
        return 0.0, []
    matched = [word for word in movement_words if any(word in other or other in word for other in label_words)]
    return min(DESCRIPTION_MAX_POINTS, len(matched) * DESCRIPTION_POINTS_PER_WORD), matched


def score_category(movement: MovementCandidate, line: BudgetLine) -> float:
    def _same(a: str | None, b: str | None) -> bool:
        return bool(a and b and a.strip() and a.strip().lower() == b.strip().lower())

    if _same(movement.category_type, line.category) or _same(movement.category_subtype, line.subcategory):
        return CATEGORY_POINTS
    return 0.0


def calculate_match_score(
    movement: MovementCandidate,
    line: BudgetLine,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> MatchCandidate:
    """Score one budget line for ``movement`` (0-100)."""
    if movement.txn_date is None or movement.amount is None:
        raise ValueError("movement needs a date and an amount to be scored")

    planned = line.amount_for_month(movement.txn_date.month)
    difference = amount_difference_percent(movement.amount, planned, config)
    planned_date = expected_date(line, movement.txn_date)
    distance = abs((movement.txn_date - planned_date).days) if planned_date else 0

    breakdown = {
        "amount": score_amount(difference, config),
        "date": score_date(distance, config),
        "provider": 0.0,
        "description": 0.0,
        "category": 0.0,
    }
    if config.use_provider_matching:
        breakdown["provider"] = score_provider(movement.counterparty, line.provider_name)
    if config.use_description_matching:
        breakdown["description"], _ = score_description(movement.description, line.label)
    if config.use_category_matching:
        breakdown["category"] = score_category(movement, line)

    criteria = [name for name, points in breakdown.items() if points > 0]
    total = min(MAX_SCORE, round(sum(breakdown.values()), 2))
    return MatchCandidate(
        budget_line=line,
        score=total,
        date_distance=distance,
        amount_difference_percent=round(difference, 2) if difference != float("inf") else difference,
        criteria=criteria,
        breakdown={name: round(points, 2) for name, points in breakdown.items()},
    )


def status_for_score(score: float, config: MatchingConfig) -> tuple[MovementStatus, str]:
    if score >= config.conciliated_threshold:
        return MovementStatus.CONCILIADO, "High confidence match"
    if score >= config.good_match_threshold:
        return MovementStatus.CONFIRMADO, "Good match"
    if score >= config.acceptable_match_threshold:
        return MovementStatus.CONFIRMADO, "Acceptable match"
    return MovementStatus.NO_PLANIFICADO, "Low match score"


def match_movement(
    movement: MovementCandidate,
    budget_lines: Sequence[BudgetLine],
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> MatchResult:
    """Assign a reconciliation status to one movement.

    Never raises: a scoring failure degrades to ``no_planificado`` with
    confidence 0.
    """
    try:
        eligible = find_budget_candidates(movement, budget_lines, config)
        if not eligible:
            return MatchResult(
                status=MovementStatus.NO_PLANIFICADO,
                confidence=float(config.no_candidates_confidence),
                reason="No budget candidates found",
            )

        scored = sorted(
            (calculate_match_score(movement, line, config) for line in eligible),
            key=lambda candidate: (-candidate.score, candidate.date_distance, candidate.budget_line.id or 0),
        )
        best = scored[0]

        strong = [candidate for candidate in scored if candidate.score >= config.ambiguity_min_score]
        if len(strong) > 1 and strong[0].score - strong[1].score < config.ambiguity_gap:
            return MatchResult(
                status=MovementStatus.NO_PLANIFICADO,
                confidence=float(config.ambiguity_confidence),
                reason=(
                    f"Ambiguous match: {len(strong)} candidates scored >= {config.ambiguity_min_score} "
                    f"(top {strong[0].score:g} vs {strong[1].score:g})"
                ),
                candidate=best,
                candidates_considered=len(scored),
            )

        status, label = status_for_score(best.score, config)
        confidence = best.score if status != MovementStatus.NO_PLANIFICADO else round(MAX_SCORE - best.score, 2)
        return MatchResult(
            status=status,
            confidence=confidence,
            reason=f"{label} (score {best.score:g}: {', '.join(best.criteria) or 'no criteria'})",
            candidate=best,
            candidates_considered=len(scored),
        )
    except Exception as e:
        logger.warning(
            "Budget matching failed for movement",
            row_index=movement.row_index,
            error=str(e),
            error_type=type(e).__name__,
        )
        return MatchResult(
            status=MovementStatus.NO_PLANIFICADO,
            confidence=0.0,
            reason=f"Matching error: {e}",
        )


def apply_match_result(movement: MovementCandidate, result: MatchResult) -> MovementCandidate:
    """Copy the outcome onto the movement."""
    movement.status = result.status
    movement.plan_match_id = result.plan_match_id
    movement.match_confidence = result.confidence
    movement.match_reason = result.reason
    return movement


def match_movements(
    movements: Sequence[MovementCandidate],
    budget_lines: Sequence[BudgetLine],
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> list[MatchResult]:
    """Match each movement independently, preserving input order."""
    results = [match_movement(movement, budget_lines, config) for movement in movements]
    logger.info(
        "Budget matching finished",
        movements=len(movements),
        budget_lines=len(budget_lines),
        conciliated=sum(1 for r in results if r.status == MovementStatus.CONCILIADO),
        confirmed=sum(1 for r in results if r.status == MovementStatus.CONFIRMADO),
        unplanned=sum(1 for r in results if r.status == MovementStatus.NO_PLANIFICADO),
    )
    return results
