"""Tests for configuration loading."""

from __future__ import annotations

from fleetpath.config import load_config


def test_defaults_without_file(tmp_path):
    config = load_config(tmp_path / "missing.yaml")
    assert config.server.port == 8000
    assert config.limits.max_records_per_request == 5000
    assert config.logging.format == "console"


def test_yaml_sections(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "server:\n"
        "  port: 9100\n"
        "limits:\n"
        "  max_vehicles_per_query: 12\n"
        "  unknown_key: 1\n"
        "logging:\n"
        "  format: json\n"
    )
    config = load_config(path)
    assert config.server.port == 9100
    assert config.limits.max_vehicles_per_query == 12
    assert not hasattr(config.limits, "unknown_key")
    assert config.logging.format == "json"


def test_env_overrides_win(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("storage:\n  base_dir: /from/yaml\n")
    monkeypatch.setenv("FLEETPATH_STORAGE_BASE_DIR", "/from/env")
    monkeypatch.setenv("FLEETPATH_LIMITS_QUERY_TIMEOUT", "2.5")

    config = load_config(path)
    assert config.storage.base_dir == "/from/env"
    assert config.limits.query_timeout_seconds == 2.5


def test_config_path_from_env(tmp_path, monkeypatch):
    path = tmp_path / "custom.yaml"
    path.write_text("server:\n  env: prod\n")
    monkeypatch.setenv("FLEETPATH_CONFIG", str(path))
    assert load_config().server.env == "prod"
