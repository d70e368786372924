"""Services package."""

from treasury_ingest.services.budget_matching import (
    MatchCandidate,
    MatchResult,
    calculate_match_score,
    find_budget_candidates,
    match_movement,
    match_movements,
)
from treasury_ingest.services.deduplication import DeduplicationResult, DeduplicationService, deduplicate
from treasury_ingest.services.iban_matching import (
    extract_iban_from_statement,
    extract_iban_from_text,
    mask_iban,
    match_account_by_iban,
)
from treasury_ingest.services.matching_config import (
    DEFAULT_MATCHING_CONFIG,
    MatchingConfig,
    default_matching_config,
    load_matching_config,
    resolve_active_config,
    update_matching_configuration,
)
from treasury_ingest.services.normalization import MovementCandidate, normalize_description
from treasury_ingest.services.pipeline import (
    ImportPipeline,
    ImportRequest,
    format_import_summary,
    get_import_logs,
    import_messages,
)
from treasury_ingest.services.transfer_detection import (
    TransferDetectionResult,
    TransferPair,
    complete_pending_transfers,
    detect_transfers,
)

__all__ = [
    "DEFAULT_MATCHING_CONFIG",
    "DeduplicationResult",
    "DeduplicationService",
    "ImportPipeline",
    "ImportRequest",
    "MatchCandidate",
    "MatchResult",
    "MatchingConfig",
    "MovementCandidate",
    "TransferDetectionResult",
    "TransferPair",
    "calculate_match_score",
    "complete_pending_transfers",
    "deduplicate",
    "default_matching_config",
    "detect_transfers",
    "extract_iban_from_statement",
    "extract_iban_from_text",
    "find_budget_candidates",
    "format_import_summary",
    "get_import_logs",
    "import_messages",
    "load_matching_config",
    "mask_iban",
    "match_account_by_iban",
    "match_movement",
    "match_movements",
    "normalize_description",
    "resolve_active_config",
    "update_matching_configuration",
]
