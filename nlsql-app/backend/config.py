"""Runtime configuration read from the environment."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using %s", name, raw, default)
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _positive(value: int, fallback: int) -> int:
    return value if value > 0 else fallback


@dataclass(frozen=True)
class Settings:
    llm_driver: str
    ollama_base_url: str
    ollama_model: str
    openai_api_key: Optional[str]
    openai_base_url: str
    openai_model: str
    llm_timeout: float
    answer_language: str

    duckdb_base_dir: str
    duckdb_filename: str

    cache_backend: str
    redis_url: str
    cache_prefix: str
    db_cache_ttl: int
    analyze_cache_ttl: int
    cache_clear_on_ddl: bool
    select_cache_max_rows: int

    sql_transactional: bool
    command_max_rows: int
    insight_max_rows: int
    insight_table_rows: int
    insight_max_chars: int
    table_data_limit: int
    stream_queue_size: int

    crud_output_dir: str
    log_dir: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    db_cache_ttl = _positive(_env_int("DB_CACHE_TTL", 300), 300)
    # ANALYZE_CACHE_TTL falls back to DB_CACHE_TTL, then to one minute.
    analyze_default = _env_int("DB_CACHE_TTL", 60)
    analyze_cache_ttl = _positive(_env_int("ANALYZE_CACHE_TTL", analyze_default), 60)

    return Settings(
        llm_driver=os.getenv("LLM_DRIVER", "openai").strip().lower(),
        ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
        ollama_model=os.getenv("OLLAMA_MODEL", "llama3"),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        llm_timeout=float(_positive(_env_int("LLM_TIMEOUT", 300), 300)),
        answer_language=os.getenv("ANSWER_LANGUAGE", "English"),
        duckdb_base_dir=os.getenv("DUCKDB_BASE_DIR", "data"),
        duckdb_filename=os.getenv("DUCKDB_FILENAME", "gateway.duckdb"),
        cache_backend=os.getenv("CACHE_BACKEND", "memory").strip().lower(),
        redis_url=os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0"),
        cache_prefix=os.getenv("CACHE_PREFIX", "db-cache:"),
        db_cache_ttl=db_cache_ttl,
        analyze_cache_ttl=analyze_cache_ttl,
        cache_clear_on_ddl=_env_bool("CACHE_CLEAR_ON_DDL"),
        select_cache_max_rows=_env_int("SELECT_CACHE_MAX_ROWS", 5000),
        sql_transactional=_env_bool("SQL_TRANSACTIONAL"),
        command_max_rows=_positive(_env_int("COMMAND_MAX_ROWS", 10), 10),
        insight_max_rows=_positive(_env_int("INSIGHT_MAX_ROWS", 15), 15),
        insight_table_rows=_positive(_env_int("INSIGHT_TABLE_ROWS", 10), 10),
        insight_max_chars=_positive(_env_int("INSIGHT_MAX_CHARS", 6000), 6000),
        table_data_limit=_positive(_env_int("TABLE_DATA_LIMIT", 500), 500),
        stream_queue_size=max(_env_int("STREAM_QUEUE_SIZE", 0), 0),
        crud_output_dir=os.getenv("CRUD_OUTPUT_DIR", "generated"),
        log_dir=os.getenv("LOG_DIR", "logs"),
    )
