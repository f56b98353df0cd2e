"""Use cases behind the ``/ai`` endpoints: generate SQL, run it, shape the reply."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from ..config import get_settings
from ..errors import DatabaseError, GatewayError, UnauthorizedStatementError, ValidationError
from . import contexts, crud_generator, executor, schema, sql_guard
from .cache import get_cache, make_key
from .llm_provider import get_driver

logger = logging.getLogger(__name__)

# Command-mode heuristics. They only steer the prompt; they are not a security
# boundary, the allow-list in sql_guard is what gates execution.
CREATE_TABLE_INTENT = re.compile(r"^(?:crie|criar|create|nova|new)\s+(?:uma\s+|a\s+)?(?:tabela|table)\b", re.IGNORECASE)
VOLUME_REQUEST = re.compile(r"(create|generate|insert|criar|gerar|inserir)\s+(\d+)\s+")
CONTEXT_TABLES = re.compile(r"(?:considerando as tabelas|considering (?:the )?tables)\s*\[(.*?)\]", re.IGNORECASE)
TARGET_TABLE = re.compile(
    r"(?:into|table|tabela)\s+(?:de\s+|da\s+|do\s+|na\s+|no\s+)?['\"`]?([a-zA-Z0-9_]+)['\"`]?",
    re.IGNORECASE,
)
VALID_ID_LIMIT = 50


def _require(value: Any, message: str) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(message)


def create_table(description: Optional[str]) -> Dict[str, Any]:
    _require(description, "Description is required")
    sql = sql_guard.clean_sql(get_driver().generate("create_table", description=description))
    logger.info("Generated DDL: %s", sql)
    executor.run_mutating(sql)
    return {"message": "Table created successfully", "sql_executed": sql}


def query(question: Optional[str]) -> Dict[str, Any]:
    _require(question, "Question is required")
    sql = sql_guard.clean_sql(get_driver().generate("select", question=question, schema=schema.describe_schema()))
    logger.info("Generated SELECT: %s", sql)
    results = executor.run_read_only(sql)
    return {"question": question, "sql_generated": sql, "results": results}


def cap_volume(command: str, max_rows: int) -> Tuple[str, Optional[str]]:
    """Rewrite "create 50 ..." style requests down to ``max_rows`` items."""
    match = VOLUME_REQUEST.search(command.lower())
    if not match:
        return command, None
    amount = int(match.group(2))
    if amount <= max_rows:
        return command, None
    command = re.sub(rf"\b{amount}\b", str(max_rows), command)
    warning = (
        f"Limit of {max_rows} items applied due to generation performance constraints "
        f"(Requested: {amount})."
    )
    return command, warning


def parse_context_tables(command: str) -> List[str]:
    match = CONTEXT_TABLES.search(command)
    if not match:
        return []
    return [name.strip() for name in match.group(1).split(",") if name.strip()]


def detect_target_table(command: str, tables: Sequence[str], context_tables: Sequence[str] = ()) -> Optional[str]:
    """Best-effort guess of the table a command writes to.

    The first context table wins unless an ``into/table <name>`` phrase names a
    known table; otherwise the first known table mentioned as a whole word.
    """
    target = context_tables[0] if context_tables else None
    match = TARGET_TABLE.search(command)
    if match and match.group(1) in tables:
        return match.group(1)
    if target:
        return target
    for table in tables:
        if re.search(rf"\b{re.escape(table)}\b", command):
            return table
    return None


def _context_constraints(context_tables: List[str]) -> str:
    lines = []
    for table in context_tables:
        try:
            key = schema.primary_key(table)
            if key:
                ids = schema.column_values(table, key["column"], VALID_ID_LIMIT)
                id_list = ", ".join(str(value) for value in ids)
                lines.append(f"VALID IDs for table '{table}' (PK Column: '{key['column']}'): [{id_list}]")
            else:
                sample = schema.sample_rows(table, 3)
                lines.append(f"Sample for '{table}': {json.dumps(sample['rows'], default=str)}")
        except GatewayError as exc:
            logger.warning("Skipping context table %s: %s", table, exc)
    if not lines:
        return ""
    return (
        "\n\n[STRICT DATA CONSTRAINTS]:\n"
        + "\n".join(lines)
        + "\nIMPORTANT RULES:\n"
        + f"1. CONTEXT TABLES ARE READ-ONLY: DO NOT INSERT INTO [ {', '.join(context_tables)} ]. "
        + "Only insert into the target table requested by the user.\n"
        + "2. FOR FOREIGN KEYS: You MUST use ONLY the IDs listed above in [VALID IDs]. DO NOT invent new IDs.\n"
        + "3. REUSE IDS: It is OK to repeat the same id multiple times.\n"
    )


def _target_rules(table: str) -> str:
    rules = ""
    key = schema.primary_key(table)
    if key and key["is_numeric"] and not key["auto_increment"]:
        # Always a live read: cached table data must not decide new keys.
        # Sequence-backed keys are left to the sequence.
        max_id = executor.current_max_id(table, key["column"])
        next_id = int(max_id) + 1
        rules += (
            f"\n\n[SYSTEM CONTEXT]: The table '{table}' has a numeric primary key '{key['column']}'. "
            f"The current maximum ID is {max_id}. You MUST generate explicit IDs starting from {next_id} "
            f"for the new records (e.g. {next_id}, {next_id + 1}...). Do NOT start from 1."
        )
    columns = schema.table_columns(table)
    if columns:
        rules += (
            f"\n\n[CRITICAL SCHEMA RULE]: The target table '{table}' has exactly these columns: "
            f"[{', '.join(columns)}].\n"
            "You MUST use these exact column names in your INSERT statement. "
            "Do NOT invent columns that are not in the list.\n"
            "For foreign keys, use the ids from the data provided above, not names."
        )
    return rules


def command(text: Optional[str]) -> Dict[str, Any]:
    _require(text, "Command is required")
    settings = get_settings()
    driver = get_driver()

    if CREATE_TABLE_INTENT.match(text.strip()):
        sql = sql_guard.clean_sql(driver.generate("create_table", description=text))
        executor.run_mutating(sql)
        return {
            "message": "Table created successfully (detected from command)",
            "command": text,
            "sql_executed": sql,
            "warning": (
                "Notice: You were in 'Command' mode, but a 'Create Table' request was detected "
                "and handled accordingly."
            ),
        }

    request, warning = cap_volume(text, settings.command_max_rows)
    prompt = request
    context_tables = parse_context_tables(request)
    if context_tables:
        prompt += _context_constraints(context_tables)

    target = detect_target_table(request, schema.list_tables(), context_tables)
    if target and schema.TABLE_NAME_PATTERN.fullmatch(target):
        logger.info("Command target table: %s", target)
        prompt += _target_rules(target)

    sql = sql_guard.clean_sql(driver.generate("manipulation", command=prompt, schema=schema.describe_schema()))
    logger.info("Generated DML: %s", sql)
    executor.run_mutating(sql)
    return {
        "message": "Command executed successfully",
        "command": prompt,
        "sql_executed": sql,
        "warning": warning,
    }


def analyze_query(question: Optional[str], context_tables: Sequence[str] = (), context_id: Optional[int] = None) -> Dict[str, Any]:
    """Fetch the data needed to answer ``question``; the answer text comes from ``analyze_insight``.

    With context tables (given directly or through a saved context) the cached
    table snapshots are returned and no SQL is generated.
    """
    _require(question, "Question is required")
    tables = list(context_tables)
    if context_id is not None:
        tables.extend(contexts.get_context(context_id).tables)
    tables = sorted({name.strip() for name in tables if name and name.strip()})

    cache = get_cache()
    key = make_key("analyze", f"{question}|{','.join(tables)}")
    cached = cache.get(key)
    if isinstance(cached, dict):
        return cached

    if tables:
        snapshots = []
        for table in tables:
            try:
                snapshots.append({"table": table, "data": schema.sample_rows(table)})
            except GatewayError as exc:
                logger.warning("Skipping table %s in analysis: %s", table, exc)
        payload: Dict[str, Any] = {"question": question, "sql_generated": None, "data": {"tables": snapshots}}
    else:
        sql = sql_guard.clean_sql(
            get_driver().generate("select", question=question, schema=schema.describe_schema())
        )
        data: Any
        try:
            data = executor.run_read_only(sql)
        except (DatabaseError, UnauthorizedStatementError) as exc:
            data = {"error": f"SQL Execution Failed: {exc}"}
        payload = {"question": question, "sql_generated": sql, "data": data}

    cache.set(key, payload, get_settings().analyze_cache_ttl)
    return payload


def analyze_insight(question: Optional[str], data: Any) -> Dict[str, Any]:
    if not question or data is None or data == [] or data == {}:
        raise ValidationError("Question and Data required")
    insight = get_driver().generate("insight", question=question, data=data)
    return {"insight": insight.strip()}


def migrate(text: Optional[str], table: Optional[str]) -> Dict[str, Any]:
    if not text or not table:
        raise ValidationError("Command and table are required")
    table_schema = schema.table_schema(table)
    sql = sql_guard.clean_sql(get_driver().generate("migration", command=text, table_schema=table_schema))
    logger.info("Generated migration: %s", sql)
    executor.run_mutating(sql)
    return {"message": "Migration executed successfully", "command": text, "sql_executed": sql}


def drop_table(table: Optional[str]) -> Dict[str, Any]:
    _require(table, "Table name is required")
    executor.drop_table(table)
    return {"message": f"Table '{table}' deleted successfully."}


def _with_context(message: str, context_id: Optional[int]) -> str:
    if context_id is None:
        return message
    text = contexts.get_context(context_id).text
    if not text:
        return message
    return f"[CONTEXT]: {text}\n\n[USER]: {message}"


def chat(message: Optional[str], context_id: Optional[int] = None) -> Dict[str, Any]:
    _require(message, "Message is required")
    reply = get_driver().generate("chat", message=_with_context(message, context_id))
    return {"reply": reply.strip()}


def chat_stream(message: Optional[str], context_id: Optional[int] = None) -> Iterator[str]:
    _require(message, "Message is required")
    return get_driver().generate_stream(_with_context(message, context_id))


def generate_crud(table: Optional[str]) -> Dict[str, Any]:
    _require(table, "Table name is required")
    files = crud_generator.generate_crud(table)
    return {"message": "CRUD generated successfully. Mount the new router to expose it.", "files": files}
