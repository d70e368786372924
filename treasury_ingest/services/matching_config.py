"""Matching configuration: defaults, YAML loading, stored active row."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, fields, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from treasury_ingest.config import Settings, settings
from treasury_ingest.logger import get_logger
from treasury_ingest.models import MatchingConfiguration
from treasury_ingest.stores.interface import MatchingConfigStore
from treasury_ingest.utils.exceptions import ConfigurationError

logger = get_logger(__name__)

DEFAULT_TRANSFER_KEYWORDS: tuple[str, ...] = (
    "TRASPASO",
    "TRANSFERENCIA",
    "ENVÍO ENTRE CUENTAS",
    "TRANSFER",
    "ENVIO",
)


@dataclass(frozen=True)
class MatchingConfig:
    """Runtime configuration for budget matching and transfer detection.

    Passed explicitly into every matching call; there is no process-wide
    instance to mutate.
    """

    # Budget matching
    date_window: int = 5
    amount_tolerance_percent: Decimal = Decimal("15")
    amount_tolerance_fixed: Decimal = Decimal("0")
    use_account_matching: bool = True
    use_provider_matching: bool = True
    use_description_matching: bool = True
    use_category_matching: bool = True
    conciliated_threshold: int = 80
    good_match_threshold: int = 60
    acceptable_match_threshold: int = 40
    ambiguity_min_score: int = 60
    ambiguity_gap: int = 20
    ambiguity_confidence: int = 50
    no_candidates_confidence: int = 100

    # Transfer detection
    transfer_date_window: int = 2
    transfer_keyword_date_window: int = 7
    transfer_amount_tolerance: Decimal = Decimal("0.005")
    transfer_keywords: tuple[str, ...] = DEFAULT_TRANSFER_KEYWORDS
    transfer_overrides_budget: bool = True

    def __post_init__(self) -> None:
        for name in (
            "date_window",
            "amount_tolerance_percent",
            "amount_tolerance_fixed",
            "ambiguity_gap",
            "transfer_date_window",
            "transfer_keyword_date_window",
            "transfer_amount_tolerance",
        ):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")
        if not (
            0 <= self.acceptable_match_threshold <= self.good_match_threshold <= self.conciliated_threshold <= 100
        ):
            raise ConfigurationError("thresholds must satisfy 0 <= acceptable <= good <= conciliated <= 100")
        if self.transfer_keyword_date_window < self.transfer_date_window:
            raise ConfigurationError("transfer_keyword_date_window must be >= transfer_date_window")


DEFAULT_MATCHING_CONFIG = MatchingConfig()


def default_matching_config() -> MatchingConfig:
    """Return the built-in defaults."""
    return DEFAULT_MATCHING_CONFIG


_FIELD_TYPES = {f.name: f.type for f in fields(MatchingConfig)}


def _coerce(name: str, value: Any) -> Any:
    field_type = _FIELD_TYPES[name]
    try:
        if field_type == "Decimal":
            return Decimal(str(value))
        if field_type == "int":
            return int(value)
        if field_type == "bool":
            if isinstance(value, str):
                return value.strip().lower() in {"1", "true", "yes", "on"}
            return bool(value)
        if name == "transfer_keywords":
            if isinstance(value, str):
                value = value.split(",")
            return tuple(str(item).strip().upper() for item in value if str(item).strip())
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from exc
    return value


def config_from_mapping(values: dict[str, Any], base: MatchingConfig | None = None) -> MatchingConfig:
    """Apply flat ``{field: value}`` overrides on top of ``base``."""
    base = base or DEFAULT_MATCHING_CONFIG
    unknown = sorted(set(values) - set(_FIELD_TYPES))
    if unknown:
        raise ConfigurationError(f"Unknown matching configuration keys: {', '.join(unknown)}")
    return replace(base, **{name: _coerce(name, value) for name, value in values.items()})


def config_to_mapping(config: MatchingConfig, *, only_changed: bool = False) -> dict[str, Any]:
    """JSON-friendly flat mapping. Decimals become strings."""
    result: dict[str, Any] = {}
    for name, value in dataclasses.asdict(config).items():
        if only_changed and value == getattr(DEFAULT_MATCHING_CONFIG, name):
            continue
        if isinstance(value, Decimal):
            value = str(value)
        elif isinstance(value, tuple):
            value = list(value)
        result[name] = value
    return result


def _flatten_yaml(raw: dict[str, Any]) -> dict[str, Any]:
    matching = raw.get("budget_matching", {}) or {}
    tolerance = matching.get("amount_tolerance", {}) or {}
    criteria = matching.get("criteria", {}) or {}
    thresholds = matching.get("thresholds", {}) or {}
    ambiguity = matching.get("ambiguity", {}) or {}
    transfers = raw.get("transfers", {}) or {}

    mapping = {
        "date_window": matching.get("date_window_days"),
        "amount_tolerance_percent": tolerance.get("percent"),
        "amount_tolerance_fixed": tolerance.get("fixed"),
        "use_account_matching": criteria.get("account"),
        "use_provider_matching": criteria.get("provider"),
        "use_description_matching": criteria.get("description"),
        "use_category_matching": criteria.get("category"),
        "conciliated_threshold": thresholds.get("conciliated"),
        "good_match_threshold": thresholds.get("good_match"),
        "acceptable_match_threshold": thresholds.get("acceptable_match"),
        "ambiguity_min_score": ambiguity.get("min_score"),
        "ambiguity_gap": ambiguity.get("gap"),
        "ambiguity_confidence": ambiguity.get("confidence"),
        "no_candidates_confidence": matching.get("no_candidates_confidence"),
        "transfer_date_window": transfers.get("date_window_days"),
        "transfer_keyword_date_window": transfers.get("keyword_date_window_days"),
        "transfer_amount_tolerance": transfers.get("amount_tolerance"),
        "transfer_keywords": transfers.get("keywords"),
        "transfer_overrides_budget": transfers.get("overrides_budget"),
    }
    return {name: value for name, value in mapping.items() if value is not None}


def load_matching_config(path: str | Path | None = None, config: Settings | None = None) -> MatchingConfig:
    """Load matching configuration from YAML if available, then apply env overrides.

    A missing or unreadable file falls back to the defaults with a warning.
    """
    config = config or settings
    result = DEFAULT_MATCHING_CONFIG
    config_path = Path(path or config.matching_config_path)

    if config_path.exists():
        try:
            raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
            result = config_from_mapping(_flatten_yaml(raw))
        except (yaml.YAMLError, OSError, ConfigurationError) as e:
            logger.warning(
                "Failed to load matching config - using defaults",
                config_path=str(config_path),
                error=str(e),
                error_type=type(e).__name__,
            )
    else:
        logger.debug("Matching config file not found - using defaults", config_path=str(config_path))

    if config.matching_conciliated_threshold is not None:
        result = replace(result, conciliated_threshold=config.matching_conciliated_threshold)
    if config.matching_ambiguity_gap is not None:
        result = replace(result, ambiguity_gap=config.matching_ambiguity_gap)
    if config.transfer_keywords is not None:
        result = replace(result, transfer_keywords=_coerce("transfer_keywords", config.transfer_keywords))
    return result


async def resolve_active_config(
    store: MatchingConfigStore | None,
    base: MatchingConfig | None = None,
) -> MatchingConfig:
    """The configuration for one pipeline run.

    The stored row flagged active overrides ``base``. A broken row is
    logged and ignored.
    """
    base = base or DEFAULT_MATCHING_CONFIG
    if store is None:
        return base

    row = await store.get_active()
    if row is None:
        return base
    try:
        return config_from_mapping(row.overrides or {}, base)
    except ConfigurationError as e:
        logger.warning(
            "Active matching configuration is invalid - using base config",
            config_id=row.id,
            error=str(e),
        )
        return base


async def update_matching_configuration(
    store: MatchingConfigStore,
    updates: dict[str, Any],
    *,
    name: str = "default",
) -> MatchingConfig:
    """Merge ``updates`` into the active configuration and save it as the active row."""
    current = await store.get_active()
    merged = dict(current.overrides or {}) if current else {}
    merged.update(updates)
    new_config = config_from_mapping(merged)

    row = current or MatchingConfiguration(name=name)
    row.overrides = config_to_mapping(new_config, only_changed=True)
    row.is_active = True
    await store.save(row)
    logger.info("Matching configuration updated", keys=sorted(updates))
    return new_config
