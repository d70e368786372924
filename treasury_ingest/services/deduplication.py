"""Content-hash deduplication of imported movements."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from treasury_ingest.logger import get_logger
from treasury_ingest.models import Movement
from treasury_ingest.services.normalization import (
    MovementCandidate,
    format_amount,
    normalize_description,
    quantize_amount,
)
from treasury_ingest.stores.interface import MovementStore

logger = get_logger(__name__)

POTENTIAL_DUPLICATE_LIMIT = 50


@dataclass
class SkippedCandidate:
    """An input dropped before hashing because required fields are missing."""

    index: int
    row_index: int | None
    missing_fields: list[str]


@dataclass
class DeduplicationResult:
    """Partition of a batch into unique and duplicate candidates."""

    unique: list[MovementCandidate] = field(default_factory=list)
    duplicates: list[MovementCandidate] = field(default_factory=list)
    duplicate_hashes: list[str] = field(default_factory=list)
    skipped: list[SkippedCandidate] = field(default_factory=list)

    @property
    def summary(self) -> dict[str, int]:
        return {
            "total": len(self.unique) + len(self.duplicates) + len(self.skipped),
            "unique": len(self.unique),
            "duplicates": len(self.duplicates),
            "skipped": len(self.skipped),
        }


@dataclass
class PotentialDuplicate:
    """Two stored movements that look alike but hash differently."""

    original: Any
    duplicate: Any
    confidence: float
    reasons: list[str]


class DeduplicationService:
    """Hash-based duplicate detection for bank movements."""

    @staticmethod
    def calculate_movement_hash(
        account_id: int,
        txn_date: date,
        amount: Decimal,
        description: str,
        reference: str | None = None,
    ) -> str:
        """Calculate deduplication hash for a movement.

        Hash = SHA256(account_id|date|amount|normalized_description|reference)
        """
        components = [
            str(account_id),
            txn_date.isoformat(),
            format_amount(amount),
            normalize_description(description),
            (reference or "").strip(),
        ]
        hash_input = "|".join(components).encode("utf-8")
        return hashlib.sha256(hash_input).hexdigest()

    def hash_candidate(self, candidate: MovementCandidate) -> str:
        """Compute and store the candidate's hash."""
        missing = candidate.missing_fields()
        if missing:
            raise ValueError(f"Cannot hash movement without {', '.join(missing)}")
        candidate.dedup_hash = self.calculate_movement_hash(
            candidate.account_id,
            candidate.txn_date,
            candidate.amount,
            candidate.description or "",
            candidate.reference,
        )
        return candidate.dedup_hash

    def deduplicate(
        self,
        candidates: Sequence[MovementCandidate],
        existing_hashes: Iterable[str] = (),
    ) -> DeduplicationResult:
        """Split candidates into unique and duplicates.

        A candidate is a duplicate when its hash is already persisted or was
        seen earlier in the same batch (first occurrence wins). Candidates
        missing required fields are reported in ``skipped`` and counted in
        neither partition.
        """
        persisted = set(existing_hashes)
        seen: set[str] = set()
        result = DeduplicationResult()

        for index, candidate in enumerate(candidates):
            missing = candidate.missing_fields()
            if missing:
                result.skipped.append(
                    SkippedCandidate(index=index, row_index=candidate.row_index, missing_fields=missing)
                )
                logger.warning(
                    "Skipping movement with missing required fields",
                    index=index,
                    row_index=candidate.row_index,
                    missing_fields=missing,
                )
                continue

            dedup_hash = self.hash_candidate(candidate)
            if dedup_hash in persisted or dedup_hash in seen:
                result.duplicates.append(candidate)
                result.duplicate_hashes.append(dedup_hash)
                continue

            seen.add(dedup_hash)
            result.unique.append(candidate)

        logger.info("Deduplication finished", **result.summary)
        return result

    def existing_hashes(self, movements: Iterable[Movement], account_id: int | None = None) -> set[str]:
        """Hashes of stored movements, optionally limited to one account.

        Rows without a stored hash are rehashed from their fields.
        """
        hashes: set[str] = set()
        for movement in movements:
            if account_id is not None and movement.account_id != account_id:
                continue
            if movement.dedup_hash:
                hashes.add(movement.dedup_hash)
                continue
            hashes.add(
                self.calculate_movement_hash(
                    movement.account_id,
                    movement.txn_date,
                    movement.amount,
                    movement.description,
                    movement.reference,
                )
            )
        return hashes

    async def load_existing_hashes(self, store: MovementStore, account_id: int | None = None) -> set[str]:
        """``existing_hashes`` over everything in the store."""
        return self.existing_hashes(await store.get_all(), account_id=account_id)

    async def is_duplicate_movement(self, candidate: MovementCandidate, store: MovementStore) -> bool:
        """Check a single candidate against the store."""
        if not candidate.is_valid:
            return False
        existing = await self.load_existing_hashes(store, account_id=candidate.account_id)
        return self.hash_candidate(candidate) in existing

    async def get_duplicate_statistics(self, store: MovementStore) -> dict[str, Any]:
        """Share of stored movements that share a content hash with another row."""
        movements = await store.get_all()
        hashes = [
            movement.dedup_hash
            or self.calculate_movement_hash(
                movement.account_id,
                movement.txn_date,
                movement.amount,
                movement.description,
                movement.reference,
            )
            for movement in movements
        ]
        total = len(hashes)
        unique = len(set(hashes))
        return {
            "total_movements": total,
            "unique_hashes": unique,
            "duplicate_rate": round((total - unique) / total * 100, 2) if total else 0.0,
        }

    def find_potential_duplicates(
        self,
        movements: Sequence[Any],
        days: int = 1,
        amount_tolerance: Decimal = Decimal("0.01"),
    ) -> list[PotentialDuplicate]:
        """Near-identical movements for manual review.

        Same account, dates within ``days``, amounts within
        ``amount_tolerance`` and one normalized description equal to or
        containing the other.
        """
        matches: list[PotentialDuplicate] = []
        ordered = sorted(movements, key=lambda m: (m.account_id, m.txn_date))

        for i, first in enumerate(ordered):
            first_desc = normalize_description(first.description)
            for second in ordered[i + 1 :]:
                if second.account_id != first.account_id:
                    break
                days_diff = abs((second.txn_date - first.txn_date).days)
                if days_diff > days:
                    break
                amount_diff = abs(quantize_amount(second.amount) - quantize_amount(first.amount))
                if amount_diff > amount_tolerance:
                    continue
                second_desc = normalize_description(second.description)
                if not first_desc or not second_desc:
                    continue
                if first_desc == second_desc:
                    similarity = 1.0
                elif first_desc in second_desc or second_desc in first_desc:
                    similarity = min(len(first_desc), len(second_desc)) / max(len(first_desc), len(second_desc))
                else:
                    continue

                reasons = []
                if days_diff == 0:
                    reasons.append("same_date")
                if amount_diff == 0:
                    reasons.append("same_amount")
                reasons.append("same_description" if similarity == 1.0 else "similar_description")

                date_part = (1 - days_diff / days) * 30 if days else 30.0
                amount_part = float(1 - amount_diff / amount_tolerance) * 40 if amount_tolerance else 40.0
                confidence = min(100.0, round(date_part + amount_part + similarity * 30, 2))
                matches.append(
                    PotentialDuplicate(original=first, duplicate=second, confidence=confidence, reasons=reasons)
                )

        matches.sort(key=lambda match: match.confidence, reverse=True)
        return matches[:POTENTIAL_DUPLICATE_LIMIT]


def deduplicate(
    candidates: Sequence[MovementCandidate],
    existing_hashes: Iterable[str] = (),
) -> DeduplicationResult:
    """Module-level shortcut for ``DeduplicationService().deduplicate``."""
    return DeduplicationService().deduplicate(candidates, existing_hashes)
