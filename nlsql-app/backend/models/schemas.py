"""Pydantic models shared between FastAPI routers and services."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class _TextInput(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def blank_string_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class CreateTableRequest(_TextInput):
    description: Optional[str] = None


class QueryRequest(_TextInput):
    question: Optional[str] = None


class CommandRequest(_TextInput):
    command: Optional[str] = None


class TableRequest(_TextInput):
    table: Optional[str] = None


class MigrateRequest(_TextInput):
    command: Optional[str] = None
    table: Optional[str] = None


class AnalyzeQueryRequest(_TextInput):
    question: Optional[str] = None
    context_tables: List[str] = Field(default_factory=list)
    context_id: Optional[int] = None


class AnalyzeInsightRequest(_TextInput):
    question: Optional[str] = None
    data: Any = None


class ChatRequest(_TextInput):
    message: Optional[str] = None
    context_id: Optional[int] = None


class CreateTableResponse(BaseModel):
    message: str
    sql_executed: str


class QueryResponse(BaseModel):
    question: str
    sql_generated: str
    results: List[Dict[str, Any]]


class CommandResponse(BaseModel):
    message: str
    command: str
    sql_executed: str
    warning: Optional[str] = None


class CrudResponse(BaseModel):
    message: str
    files: Dict[str, str]


class AnalyzeQueryResponse(BaseModel):
    question: str
    sql_generated: Optional[str] = None
    data: Any = None


class InsightResponse(BaseModel):
    insight: str


class MigrateResponse(BaseModel):
    message: str
    command: str
    sql_executed: str


class TablesResponse(BaseModel):
    tables: List[str]


class TableDataResponse(BaseModel):
    data: Dict[str, Any]


class ChatResponse(BaseModel):
    reply: str


class MessageResponse(BaseModel):
    message: str


class ContextCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    content: Dict[str, Any] = Field(default_factory=dict)
    is_default: bool = False


class ContextUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    content: Optional[Dict[str, Any]] = None
    is_default: Optional[bool] = None


class SavedContext(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    content: Dict[str, Any] = Field(default_factory=dict)
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def text(self) -> Optional[str]:
        value = self.content.get("text")
        return value if isinstance(value, str) and value.strip() else None

    @property
    def tables(self) -> List[str]:
        value = self.content.get("tables")
        if not isinstance(value, list):
            return []
        return [str(item) for item in value]
