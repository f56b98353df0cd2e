"""Execution of generated SQL: cached reads, allow-listed writes."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List

import duckdb

from ..config import get_settings
from ..db.duck import get_connection, rows_as_dicts
from ..errors import DatabaseError, UnauthorizedStatementError
from . import sql_guard
from .cache import clear_cache, get_cache, make_key
from .schema import quote_identifier

logger = logging.getLogger(__name__)


def normalize_sql(sql: str) -> str:
    sql = sql.strip(" \t\n\r\0\x0b;")
    return re.sub(r"\s+", " ", sql)


def run_read_only(sql: str) -> List[Dict[str, Any]]:
    """Run a SELECT, serving repeated queries from the cache until the TTL expires."""
    statements = sql_guard.split_statements(sql)
    if len(statements) != 1 or not sql_guard.is_select(statements[0]):
        raise UnauthorizedStatementError("Only a single SELECT statement is allowed in this method.")
    sql = statements[0]

    settings = get_settings()
    normalized = normalize_sql(sql)
    cache = get_cache()
    key = make_key("select", normalized)
    cached = cache.get(key)
    if cached is not None:
        logger.debug("Cache hit for %s", key)
        return cached

    with get_connection() as conn:
        try:
            conn.execute(sql)
            _, rows = rows_as_dicts(conn)
        except duckdb.Error as exc:
            logger.error("SELECT failed: %s | sql=%s", exc, normalized)
            raise DatabaseError(str(exc)) from exc

    if len(rows) <= settings.select_cache_max_rows:
        cache.set(key, rows, settings.db_cache_ttl)
    return rows


def run_mutating(sql: str) -> List[str]:
    """Run an allow-listed batch statement by statement, in source order.

    The whole batch is checked before the first statement runs. Without
    ``SQL_TRANSACTIONAL`` each statement commits on its own, so a failure
    stops the batch but keeps what already ran.
    """
    statements = sql_guard.validate_statement_list(sql)
    settings = get_settings()

    executed: List[str] = []
    rolled_back = False
    try:
        with get_connection() as conn:
            if settings.sql_transactional:
                conn.begin()
            for statement in statements:
                try:
                    conn.execute(statement)
                except duckdb.Error as exc:
                    logger.error("Statement %d/%d failed: %s", len(executed) + 1, len(statements), exc)
                    if settings.sql_transactional:
                        conn.rollback()
                        rolled_back = True
                    raise DatabaseError(str(exc)) from exc
                executed.append(statement)
            if settings.sql_transactional:
                conn.commit()
        logger.info("Executed %d statement(s)", len(executed))
    finally:
        # Committed statements invalidate the cache even when a later one fails.
        if settings.cache_clear_on_ddl and executed and not rolled_back:
            clear_cache()
    return executed


def drop_table(name: str) -> None:
    statement = f"DROP TABLE IF EXISTS {quote_identifier(name)}"
    with get_connection() as conn:
        try:
            conn.execute(statement)
        except duckdb.Error as exc:
            raise DatabaseError(str(exc)) from exc
    logger.info("Dropped table %s", name)
    if get_settings().cache_clear_on_ddl:
        clear_cache()


def current_max_id(table: str, column: str) -> Any:
    """Read the current maximum key straight from the table, bypassing the cache."""
    with get_connection() as conn:
        try:
            conn.execute(f"SELECT MAX({quote_identifier(column)}) FROM {quote_identifier(table)}")
            row = conn.fetchone()
        except duckdb.Error as exc:
            raise DatabaseError(str(exc)) from exc
    return row[0] if row and row[0] is not None else 0
