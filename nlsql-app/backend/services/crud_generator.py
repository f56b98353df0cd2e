"""Scaffold a pydantic model and a FastAPI router for an existing table."""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict

from ..config import get_settings
from . import schema, sql_guard
from .llm_provider import get_driver

logger = logging.getLogger(__name__)


def class_name_for(table: str) -> str:
    """``order_items`` -> ``OrderItem``; a naive singular, good enough for scaffolding."""
    words = [word for word in re.split(r"_+", table) if word]
    if words and len(words[-1]) > 3 and words[-1].endswith("s") and not words[-1].endswith("ss"):
        words[-1] = words[-1][:-1]
    return "".join(word[:1].upper() + word[1:] for word in words) or "Record"


def _save(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content.rstrip() + "\n", encoding="utf-8")
    logger.info("Wrote %s", path)


def generate_crud(table: str) -> Dict[str, str]:
    table_schema = schema.table_schema(table)
    class_name = class_name_for(table)
    out_dir = Path(get_settings().crud_output_dir)
    driver = get_driver()

    model_prompt = (
        f"Generate a Python module with a pydantic v2 model for the table '{table}'.\n"
        f"Class name: {class_name}\n"
        f"Schema:\n{table_schema}\n"
        "Requirements:\n"
        "- Start with 'from __future__ import annotations'.\n"
        "- One field per column with the matching Python type; nullable columns are Optional.\n"
        f"- Also define {class_name}Create without auto_increment columns.\n"
        "- Output ONLY the Python code. Do not use markdown code blocks."
    )
    model_code = sql_guard.clean_code(driver.generate("code", prompt=model_prompt))
    model_path = out_dir / "models" / f"{table}.py"
    _save(model_path, model_code)

    router_prompt = (
        f"Generate a Python module with a FastAPI APIRouter for the model {class_name} "
        f"imported from 'models.{table}'.\n"
        f"Table: {table}\n"
        f"Schema:\n{table_schema}\n"
        "Requirements:\n"
        f"- router = APIRouter(prefix='/{table}', tags=['{table}']).\n"
        "- Implement CRUD endpoints: list (GET /), show (GET /{id}), store (POST /), "
        "update (PUT /{id}), delete (DELETE /{id}).\n"
        "- Use duckdb with parameterised queries and return JSON responses.\n"
        "- Output ONLY the Python code. Do not use markdown code blocks."
    )
    router_code = sql_guard.clean_code(driver.generate("code", prompt=router_prompt))
    router_path = out_dir / "routers" / f"{table}.py"
    _save(router_path, router_code)

    return {"model": str(model_path), "router": str(router_path)}
