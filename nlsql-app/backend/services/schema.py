"""Catalog introspection: schema text, table lists, samples and key metadata."""
from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, List, Optional

from ..config import get_settings
from ..db.duck import fetch
from ..errors import NotFoundError, ValidationError
from .cache import get_cache, make_key

logger = logging.getLogger(__name__)

TABLE_NAME_PATTERN = re.compile(r"[a-zA-Z0-9_]+")
_NUMERIC_TYPE = re.compile(r"INT(?!ERVAL)|DECIMAL|NUMERIC|FLOAT|DOUBLE|REAL", re.IGNORECASE)
_INDEX_COLUMNS = re.compile(r"\((.*)\)", re.DOTALL)


def validate_table_name(name: str) -> str:
    if not name or not TABLE_NAME_PATTERN.fullmatch(name):
        raise ValidationError("Invalid table name.")
    return name


def quote_identifier(name: str) -> str:
    return f'"{validate_table_name(name)}"'


def list_tables() -> List[str]:
    _, rows = fetch(
        """
        SELECT table_name
        FROM information_schema.tables
        WHERE table_schema = current_schema() AND table_type = 'BASE TABLE'
        ORDER BY table_name
        """
    )
    return [row["table_name"] for row in rows]


def _columns(name: str) -> List[Dict[str, Any]]:
    _, rows = fetch(
        """
        SELECT column_name, data_type, column_default
        FROM information_schema.columns
        WHERE table_schema = current_schema() AND table_name = ?
        ORDER BY ordinal_position
        """,
        [name],
    )
    return rows


def _key_flags(name: str) -> Dict[str, str]:
    _, rows = fetch(
        """
        SELECT constraint_type, constraint_column_names
        FROM duckdb_constraints()
        WHERE schema_name = current_schema()
          AND table_name = ?
          AND constraint_type IN ('PRIMARY KEY', 'UNIQUE')
        """,
        [name],
    )
    flags: Dict[str, str] = {}
    for row in rows:
        flag = "PRI" if row["constraint_type"] == "PRIMARY KEY" else "UNI"
        for column in row["constraint_column_names"] or []:
            if flags.get(column) != "PRI":
                flags[column] = flag
    return flags


def _indexes(name: str) -> Dict[str, List[str]]:
    _, rows = fetch(
        """
        SELECT index_name, sql
        FROM duckdb_indexes()
        WHERE schema_name = current_schema() AND table_name = ?
        ORDER BY index_name
        """,
        [name],
    )
    indexes: Dict[str, List[str]] = {}
    for row in rows:
        match = _INDEX_COLUMNS.search(row.get("sql") or "")
        columns = [part.strip().strip('"') for part in match.group(1).split(",")] if match else []
        indexes[row["index_name"]] = columns
    return indexes


def _is_auto_increment(column: Dict[str, Any]) -> bool:
    return "nextval(" in str(column.get("column_default") or "").lower()


def _describe_columns(name: str) -> List[str]:
    columns = _columns(name)
    if not columns:
        raise NotFoundError(f"Table '{name}' not found.")
    flags = _key_flags(name)
    lines = []
    for column in columns:
        parts = [f"- {column['column_name']} ({column['data_type']})"]
        flag = flags.get(column["column_name"])
        if flag:
            parts.append(f"[{flag}]")
        if _is_auto_increment(column):
            parts.append("(auto_increment)")
        lines.append(" ".join(parts))
    return lines


def table_schema(name: str) -> str:
    validate_table_name(name)
    lines = [f"Table: {name}", "Columns:", *_describe_columns(name)]
    return "\n".join(lines) + "\n"


def table_columns(name: str) -> List[str]:
    validate_table_name(name)
    return [column["column_name"] for column in _columns(name)]


def build_schema() -> str:
    """Describe every table with its columns and secondary indexes, then cache it."""
    sections = []
    for name in list_tables():
        lines = [f"Table: {name}", "Columns:", *_describe_columns(name)]
        indexes = _indexes(name)
        if indexes:
            lines.append("Indices:")
            lines.extend(f"- {index}: {', '.join(cols)}" for index, cols in indexes.items())
        sections.append("\n".join(lines) + "\n")
    schema = "\n".join(sections)
    get_cache().set(make_key("schema"), schema, get_settings().db_cache_ttl)
    return schema


def describe_schema() -> str:
    cached = get_cache().get(make_key("schema"))
    if isinstance(cached, str) and cached:
        return cached
    return build_schema()


def warm_schema() -> Optional[float]:
    """Build the schema description at startup; return the duration in ms, None on failure."""
    logger.info("Mapping database schema...")
    started = time.perf_counter()
    try:
        build_schema()
    except Exception:
        logger.exception("Database schema mapping failed")
        return None
    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    logger.info("Schema mapped in %sms", duration_ms)
    return duration_ms


def sample_rows(name: str, limit: Optional[int] = None) -> Dict[str, Any]:
    validate_table_name(name)
    limit = limit or get_settings().table_data_limit
    cache = get_cache()
    key = make_key("table", f"{name}:{limit}")
    cached = cache.get(key)
    if isinstance(cached, dict):
        return cached

    columns = table_columns(name)
    if not columns:
        raise NotFoundError(f"Table '{name}' not found.")
    _, rows = fetch(f"SELECT * FROM {quote_identifier(name)} LIMIT {int(limit)}")
    payload = {"columns": columns, "rows": rows}
    cache.set(key, payload, get_settings().db_cache_ttl)
    return payload


def primary_key(name: str) -> Optional[Dict[str, Any]]:
    if not name or not TABLE_NAME_PATTERN.fullmatch(name):
        return None
    flags = _key_flags(name)
    for column in _columns(name):
        if flags.get(column["column_name"]) == "PRI":
            data_type = str(column["data_type"])
            return {
                "column": column["column_name"],
                "type": data_type,
                "auto_increment": _is_auto_increment(column),
                "is_numeric": bool(_NUMERIC_TYPE.search(data_type)),
            }
    return None


def column_values(name: str, column: str, limit: int = 50) -> List[Any]:
    _, rows = fetch(f"SELECT {quote_identifier(column)} AS value FROM {quote_identifier(name)} LIMIT {int(limit)}")
    return [row["value"] for row in rows]
