"""Clean-up and allow-list checks for model-generated SQL.

This is a keyword gate, not a SQL parser. It reads the first word of each
``;``-separated segment, so keywords hidden in comments or string literals are
not seen, and a ``;`` inside a literal splits the statement.
"""
from __future__ import annotations

import re
from typing import List

from ..errors import UnauthorizedStatementError

ALLOWED_COMMANDS = frozenset({"CREATE", "ALTER", "INSERT", "UPDATE", "DELETE", "DROP", "TRUNCATE"})

# A language tag is only recognised when it ends the fence line, or when it is
# a SQL tag followed by spaces, so "```SELECT 1```" keeps its first keyword.
_FENCE_TAG = r"(?:[A-Za-z0-9_+-]*[ \t]*\r?\n|(?i:sql|mysql|duckdb)[ \t]+)?"
_FENCED_BLOCK = re.compile(r"```" + _FENCE_TAG + r"(.*?)```", re.DOTALL)
_LEADING_FENCE = re.compile(r"^```" + _FENCE_TAG)
_TRAILING_FENCE = re.compile(r"\r?\n?[ \t]*```$")
_TRAILING_COMMA = re.compile(r",\s*(;?)\s*$")
_LEADING_WORD = re.compile(r"^\s*([A-Za-z]+)")


def strip_fences(text: str) -> str:
    """Return the body of a markdown code fence, or the text without stray fence markers."""
    text = text.strip()
    match = _FENCED_BLOCK.search(text)
    if match:
        text = match.group(1)
    text = _LEADING_FENCE.sub("", text.strip())
    text = _TRAILING_FENCE.sub("", text)
    return text.strip()


def clean_sql(raw: str) -> str:
    """Strip fences and a single trailing comma left after the last VALUES row."""
    sql = strip_fences(raw)
    sql = _TRAILING_COMMA.sub(r"\1", sql)
    return sql.strip()


def clean_code(raw: str) -> str:
    return strip_fences(raw)


def split_statements(sql: str) -> List[str]:
    return [segment.strip() for segment in sql.split(";") if segment.strip()]


def leading_keyword(statement: str) -> str:
    match = _LEADING_WORD.match(statement)
    return match.group(1).upper() if match else ""


def validate_statement_list(sql: str) -> List[str]:
    """Split ``sql`` and check every statement before any of them is run."""
    statements = split_statements(sql)
    for statement in statements:
        if leading_keyword(statement) not in ALLOWED_COMMANDS:
            raise UnauthorizedStatementError(f"Statement not allowed: {statement[:50]}...")
    return statements


def is_select(sql: str) -> bool:
    return leading_keyword(sql) == "SELECT"
