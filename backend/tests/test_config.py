from __future__ import annotations

import pytest

from analyst.config import load_settings


def test_defaults(monkeypatch):
    for name in ("ENVIRONMENT", "MARKET_DATA_PROVIDER", "ANALYSIS_MAX_TURNS", "ANTHROPIC_MAX_TOKENS"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.analysis_max_turns == 3
    assert settings.anthropic_max_tokens == 64000
    assert settings.market_data_provider == "fmp"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("MARKET_DATA_PROVIDER", "Polygon")
    monkeypatch.setenv("ANALYSIS_MAX_TURNS", "5")
    monkeypatch.setenv("ANTHROPIC_MAX_TOKENS", "not-a-number")
    settings = load_settings()
    assert settings.market_data_provider == "polygon"
    assert settings.analysis_max_turns == 5
    assert settings.anthropic_max_tokens == 64000


def test_production_requires_model_key(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    with pytest.raises(RuntimeError, match="ANTHROPIC_API_KEY"):
        load_settings()


def test_invalid_provider_and_turns_are_rejected(monkeypatch):
    monkeypatch.setenv("MARKET_DATA_PROVIDER", "yahoo")
    with pytest.raises(RuntimeError, match="MARKET_DATA_PROVIDER"):
        load_settings()
    monkeypatch.setenv("MARKET_DATA_PROVIDER", "fmp")
    monkeypatch.setenv("ANALYSIS_MAX_TURNS", "0")
    with pytest.raises(RuntimeError, match="ANALYSIS_MAX_TURNS"):
        load_settings()
