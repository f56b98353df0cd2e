"""Utilities for working with the embedded DuckDB database."""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import duckdb

from ..config import get_settings
from ..errors import DatabaseError

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

# One database handle per process; callers get their own cursor from it, which
# is how DuckDB expects a connection to be shared between threads.
_lock = threading.Lock()
_root: Optional[duckdb.DuckDBPyConnection] = None


def database_path() -> str:
    settings = get_settings()
    if settings.duckdb_filename == MEMORY_DATABASE:
        return MEMORY_DATABASE
    base_dir = Path(settings.duckdb_base_dir)
    base_dir.mkdir(parents=True, exist_ok=True)
    return str(base_dir / settings.duckdb_filename)


def _root_connection() -> duckdb.DuckDBPyConnection:
    global _root
    with _lock:
        if _root is None:
            target = database_path()
            _root = duckdb.connect(target)
            logger.info("Opened DuckDB database at %s", target)
        return _root


def get_connection() -> duckdb.DuckDBPyConnection:
    """Return a cursor on the shared database. Close it (or use ``with``) when done."""
    return _root_connection().cursor()


def execute_script(path: Path) -> None:
    """Run every statement in a ``.sql`` file."""
    if not path.exists():
        raise FileNotFoundError(f"SQL script not found: {path}")
    script = path.read_text(encoding="utf-8")
    with get_connection() as conn:
        conn.execute(script)


def rows_as_dicts(conn: duckdb.DuckDBPyConnection) -> Tuple[List[str], List[Dict[str, Any]]]:
    """Fetch the pending result of ``conn`` as column names and row dictionaries."""
    if conn.description is None:
        return [], []
    columns = [desc[0] for desc in conn.description]
    rows = [dict(zip(columns, row)) for row in conn.fetchall()]
    return columns, rows


def fetch(sql: str, params: Optional[List[Any]] = None) -> Tuple[List[str], List[Dict[str, Any]]]:
    """Run one statement on a fresh cursor and return its columns and rows."""
    with get_connection() as conn:
        try:
            conn.execute(sql, params or [])
            return rows_as_dicts(conn)
        except duckdb.Error as exc:
            logger.error("DuckDB execution error: %s", exc)
            raise DatabaseError(str(exc)) from exc


def reset_database() -> None:
    """Helper used in tests to recreate the database from scratch."""
    global _root
    with _lock:
        if _root is not None:
            _root.close()
            _root = None
    target = database_path()
    if target != MEMORY_DATABASE:
        path = Path(target)
        if path.exists():
            path.unlink()
        wal = path.with_name(path.name + ".wal")
        if wal.exists():
            wal.unlink()
