from __future__ import annotations

import pytest

from fleetsync.config import FleetSyncConfig, OperationTimeouts


def test_defaults() -> None:
    config = FleetSyncConfig()
    assert config.timeouts == OperationTimeouts(query=20.0, insert=30.0, update=30.0, delete=20.0, upload=60.0, default=30.0)
    assert config.upload_delay == 0.1
    assert config.max_image_bytes == 10 * 1024 * 1024
    assert config.min_model_year == 1990
    assert config.rollback_partial_create is True
    assert "CUSTOM_PICKUP" in config.sentinel_location_markers


def test_from_env_reads_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLEETSYNC_BASE_URL", "https://db.example.com")
    monkeypatch.setenv("FLEETSYNC_API_KEY", "service-key")
    monkeypatch.setenv("FLEETSYNC_STORAGE_BUCKET", "cars")
    monkeypatch.setenv("FLEETSYNC_TIMEOUT_UPLOAD", "120")
    monkeypatch.setenv("FLEETSYNC_UPLOAD_DELAY", "0.5")
    monkeypatch.setenv("FLEETSYNC_ROLLBACK_PARTIAL_CREATE", "off")

    config = FleetSyncConfig.from_env()

    assert config.base_url == "https://db.example.com"
    assert config.api_key == "service-key"
    assert config.storage_bucket == "cars"
    assert config.timeouts.upload == 120.0
    assert config.timeouts.query == 20.0
    assert config.upload_delay == 0.5
    assert config.rollback_partial_create is False


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLEETSYNC_UPLOAD_DELAY", "0.5")
    monkeypatch.setenv("FLEETSYNC_TIMEOUT_QUERY", "5")

    config = FleetSyncConfig.from_env(upload_delay=0.0, timeouts={"insert": 1.0}, rollback_partial_create=False)

    assert config.upload_delay == 0.0
    assert config.timeouts.query == 5.0
    assert config.timeouts.insert == 1.0
    assert config.rollback_partial_create is False
