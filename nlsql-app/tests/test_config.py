from __future__ import annotations

import logging

from backend.config import get_settings


def _fresh(monkeypatch, **env):
    for name, value in env.items():
        monkeypatch.setenv(name, value)
    get_settings.cache_clear()
    return get_settings()


def test_defaults(monkeypatch):
    settings = _fresh(monkeypatch)
    assert settings.db_cache_ttl == 300
    assert settings.analyze_cache_ttl == 60
    assert settings.command_max_rows == 10
    assert settings.cache_clear_on_ddl is False
    assert settings.sql_transactional is False


def test_analyze_ttl_follows_db_ttl(monkeypatch):
    assert _fresh(monkeypatch, DB_CACHE_TTL="120").analyze_cache_ttl == 120
    assert _fresh(monkeypatch, DB_CACHE_TTL="120", ANALYZE_CACHE_TTL="30").analyze_cache_ttl == 30


def test_invalid_numbers_fall_back(monkeypatch):
    settings = _fresh(monkeypatch, DB_CACHE_TTL="-5", COMMAND_MAX_ROWS="many", CACHE_CLEAR_ON_DDL="yes")
    assert settings.db_cache_ttl == 300
    assert settings.command_max_rows == 10
    assert settings.cache_clear_on_ddl is True


def test_invalid_numbers_are_logged(monkeypatch, caplog):
    with caplog.at_level(logging.WARNING, logger="backend.config"):
        settings = _fresh(monkeypatch, LLM_TIMEOUT="abc")
    assert settings.llm_timeout == 300.0
    assert "Ignoring invalid LLM_TIMEOUT='abc'; using 300" in caplog.text
