"""Prompt builders for each generation task and their per-backend rendering."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

from ..config import get_settings

PROMPT_DIR = Path(__file__).resolve().parents[1] / "prompts"
SQL_DIALECT = "DuckDB"


@dataclass(frozen=True)
class PromptSpec:
    task: str
    system: str
    user: str
    temperature: float = 0.7


def _read_prompt(path: Path) -> str:
    if not path.exists():
        raise FileNotFoundError(f"Prompt file not found: {path}")
    return path.read_text(encoding="utf-8")


def _system(task: str) -> str:
    template = _read_prompt(PROMPT_DIR / f"{task}_system.txt")
    return template.format(dialect=SQL_DIALECT, language=get_settings().answer_language).strip()


def create_table(description: str) -> PromptSpec:
    return PromptSpec("create_table", _system("create_table"), f"Description: {description}")


def select(question: str, schema: str) -> PromptSpec:
    return PromptSpec("select", _system("select"), f"Schema:\n{schema}\nQuestion: {question}")


def manipulation(command: str, schema: str) -> PromptSpec:
    return PromptSpec("manipulation", _system("manipulation"), f"Schema:\n{schema}\nCommand: {command}")


def migration(command: str, table_schema: str) -> PromptSpec:
    return PromptSpec("migration", _system("migration"), f"Schema:\n{table_schema}\nChange: {command}")


def code(prompt: str) -> PromptSpec:
    return PromptSpec("code", _system("code"), prompt, temperature=0.2)


def truncate_for_insight(data: Any) -> Tuple[str, str]:
    """Serialize ``data`` for an insight prompt, cutting it down deterministically.

    Returns the JSON text and a notice that is empty unless something was cut.
    The input object is never modified.
    """
    settings = get_settings()
    notes: List[str] = []

    if isinstance(data, list) and len(data) > settings.insight_max_rows:
        data = data[: settings.insight_max_rows]
        notes.append(f"Data truncated to the first {settings.insight_max_rows} rows.")

    if isinstance(data, dict) and isinstance(data.get("tables"), list):
        tables = []
        trimmed = False
        for table in data["tables"]:
            table_data = table.get("data") if isinstance(table, dict) else None
            rows = table_data.get("rows") if isinstance(table_data, dict) else None
            if isinstance(rows, list) and len(rows) > settings.insight_table_rows:
                table = {**table, "data": {**table_data, "rows": rows[: settings.insight_table_rows]}}
                trimmed = True
            tables.append(table)
        data = {**data, "tables": tables}
        if trimmed:
            notes.append(f"Each table truncated to its first {settings.insight_table_rows} rows.")

    data_json = json.dumps(data, ensure_ascii=False, default=str)
    if len(data_json) > settings.insight_max_chars:
        data_json = data_json[: settings.insight_max_chars] + "... [TRUNCATED]"
        notes.append(f"Serialized data cut at {settings.insight_max_chars} characters.")

    notice = f"[Note: {' '.join(notes)}]" if notes else ""
    return data_json, notice


def insight(question: str, data: Any) -> PromptSpec:
    data_json, notice = truncate_for_insight(data)
    user = f"Data: {data_json}\n"
    if notice:
        user += f"{notice}\n"
    user += f"Question: {question}"
    return PromptSpec("insight", _system("insight"), user, temperature=0.1)


def chat(message: str) -> PromptSpec:
    return PromptSpec("chat", _system("chat"), message)


TASKS: Dict[str, Callable[..., PromptSpec]] = {
    "create_table": create_table,
    "select": select,
    "manipulation": manipulation,
    "migration": migration,
    "code": code,
    "insight": insight,
    "chat": chat,
}


def build(task: str, **payload: Any) -> PromptSpec:
    try:
        builder = TASKS[task]
    except KeyError as exc:
        raise ValueError(f"Unknown prompt task: {task}") from exc
    return builder(**payload)


def render_prompt(spec: PromptSpec) -> str:
    """Single instruction string for completion-style backends."""
    return f"{spec.system}\n\n{spec.user}"


def render_messages(spec: PromptSpec) -> List[Dict[str, str]]:
    """Role-tagged message list for chat-completion backends."""
    messages = []
    if spec.system:
        messages.append({"role": "system", "content": spec.system})
    messages.append({"role": "user", "content": spec.user})
    return messages
