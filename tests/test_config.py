"""Tests for configuration helpers."""

from treasury_ingest.config import DEFAULT_MATCHING_CONFIG_PATH, Settings, parse_comma_list, parse_key_value_pairs


def test_parse_comma_list_defaults() -> None:
    assert parse_comma_list(None, ["a"]) == ["a"]


def test_parse_comma_list_accepts_list() -> None:
    assert parse_comma_list(["x", "y"], ["a"]) == ["x", "y"]


def test_parse_comma_list_splits_string() -> None:
    assert parse_comma_list("x, y, ,z", ["a"]) == ["x", "y", "z"]


def test_parse_key_value_pairs() -> None:
    assert parse_key_value_pairs("service=treasury, region=es,bad,=x,y=") == {"service": "treasury", "region": "es"}
    assert parse_key_value_pairs(None) == {}


def test_settings_defaults(monkeypatch) -> None:
    for name in ("TRANSFER_KEYWORDS", "MATCHING_CONFIG_PATH", "ENVIRONMENT", "ENV"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings(_env_file=None)

    assert settings.environment == "development"
    assert settings.matching_config_path == str(DEFAULT_MATCHING_CONFIG_PATH)
    assert settings.transfer_keywords is None


def test_settings_from_env(monkeypatch) -> None:
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("TRANSFER_KEYWORDS", "TRASPASO, BIZUM")
    monkeypatch.setenv("MATCHING_CONCILIATED_THRESHOLD", "85")
    settings = Settings(_env_file=None)

    assert settings.environment == "production"
    assert settings.transfer_keywords == ["TRASPASO", "BIZUM"]
    assert settings.matching_conciliated_threshold == 85


def test_default_matching_file_ships_with_repo() -> None:
    assert DEFAULT_MATCHING_CONFIG_PATH.exists()
