"""Saved contexts: named grounding snippets stored in the ``contexts`` table."""
from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from ..db.duck import execute_script, fetch
from ..errors import NotFoundError, ValidationError
from ..models.schemas import ContextCreate, ContextUpdate, SavedContext

logger = logging.getLogger(__name__)

_SCHEMA_PATH = Path(__file__).resolve().parents[1] / "db" / "contexts.sql"
_UPDATABLE = ("name", "description", "content", "is_default")


def setup() -> None:
    """Create the ``contexts`` table and its id sequence if they are missing."""
    execute_script(_SCHEMA_PATH)
    logger.info("Contexts table ready")


def _to_model(row: Dict[str, Any]) -> SavedContext:
    content = row.get("content")
    row = dict(row)
    row["content"] = json.loads(content) if content else {}
    return SavedContext.model_validate(row)


def list_contexts() -> List[SavedContext]:
    _, rows = fetch("SELECT * FROM contexts ORDER BY created_at DESC, id DESC")
    return [_to_model(row) for row in rows]


def create_context(payload: ContextCreate) -> SavedContext:
    if not payload.name or not payload.name.strip():
        raise ValidationError("Name is required")
    now = datetime.now()
    _, rows = fetch(
        """
        INSERT INTO contexts (name, description, content, is_default, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        RETURNING *
        """,
        [
            payload.name.strip(),
            payload.description,
            json.dumps(payload.content, ensure_ascii=False),
            payload.is_default,
            now,
            now,
        ],
    )
    context = _to_model(rows[0])
    logger.info("Saved context %s (%s)", context.id, context.name)
    return context


def get_context(context_id: int) -> SavedContext:
    _, rows = fetch("SELECT * FROM contexts WHERE id = ?", [context_id])
    if not rows:
        raise NotFoundError("Context not found")
    return _to_model(rows[0])


def update_context(context_id: int, payload: ContextUpdate) -> SavedContext:
    get_context(context_id)
    changes = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if key in _UPDATABLE}
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("Name is required")
    if "content" in changes:
        changes["content"] = json.dumps(changes["content"] or {}, ensure_ascii=False)
    changes["updated_at"] = datetime.now()

    assignments = ", ".join(f"{column} = ?" for column in changes)
    _, rows = fetch(
        f"UPDATE contexts SET {assignments} WHERE id = ? RETURNING *",
        [*changes.values(), context_id],
    )
    return _to_model(rows[0])


def delete_context(context_id: int) -> None:
    """Delete a context; deleting an unknown id is not an error."""
    fetch("DELETE FROM contexts WHERE id = ?", [context_id])
