"""Endpoints that turn natural language into SQL, code, insights and chat replies."""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Iterator, List

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from ..config import get_settings
from ..errors import GatewayError
from ..models.schemas import (
    AnalyzeInsightRequest,
    AnalyzeQueryRequest,
    AnalyzeQueryResponse,
    ChatRequest,
    ChatResponse,
    CommandRequest,
    CommandResponse,
    CreateTableRequest,
    CreateTableResponse,
    CrudResponse,
    InsightResponse,
    MessageResponse,
    MigrateRequest,
    MigrateResponse,
    QueryRequest,
    QueryResponse,
    TableRequest,
)
from ..services import gateway, schema
from ..services.cache import clear_cache
from ..services.streaming import FragmentStream, pump

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])

# Sent first so proxies and browsers flush their buffers before the first token.
_STREAM_PADDING = ":" + " " * 2048 + "\n\n"


@router.post("/create-table", response_model=CreateTableResponse)
def create_table(request: CreateTableRequest) -> Dict[str, Any]:
    return gateway.create_table(request.description)


@router.post("/query", response_model=QueryResponse)
def run_query(request: QueryRequest) -> Dict[str, Any]:
    return gateway.query(request.question)


@router.post("/command", response_model=CommandResponse)
def run_command(request: CommandRequest) -> Dict[str, Any]:
    return gateway.command(request.command)


@router.post("/generate-crud", response_model=CrudResponse)
def generate_crud(request: TableRequest) -> Dict[str, Any]:
    return gateway.generate_crud(request.table)


@router.post("/analyze-query", response_model=AnalyzeQueryResponse)
def analyze_query(request: AnalyzeQueryRequest) -> Dict[str, Any]:
    return gateway.analyze_query(request.question, request.context_tables, request.context_id)


@router.post("/analyze-insight", response_model=InsightResponse)
def analyze_insight(request: AnalyzeInsightRequest) -> Dict[str, Any]:
    return gateway.analyze_insight(request.question, request.data)


@router.post("/migrate", response_model=MigrateResponse)
def migrate(request: MigrateRequest) -> Dict[str, Any]:
    return gateway.migrate(request.command, request.table)


@router.get("/schema")
def get_schema() -> Dict[str, str]:
    return {"schema": schema.describe_schema()}


@router.post("/schema/rebuild")
def rebuild_schema() -> Dict[str, Any]:
    started = time.perf_counter()
    text = schema.build_schema()
    return {"schema": text, "duration_ms": round((time.perf_counter() - started) * 1000, 2)}


@router.post("/cache/clear", response_model=MessageResponse)
def clear() -> Dict[str, str]:
    clear_cache()
    return {"message": "Cache cleared"}


@router.post("/chat-free", response_model=ChatResponse)
def chat_free(request: ChatRequest) -> Dict[str, Any]:
    return gateway.chat(request.message, request.context_id)


def _sse_event(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


@router.post("/chat-free-stream")
def chat_free_stream(request: ChatRequest) -> StreamingResponse:
    fragments = gateway.chat_stream(request.message, request.context_id)
    queue_size = get_settings().stream_queue_size

    def _events() -> Iterator[str]:
        yield _STREAM_PADDING
        parts: List[str] = []
        try:
            for token in pump(fragments, maxsize=queue_size):
                parts.append(token)
                yield _sse_event("token", {"token": token})
        except GatewayError as exc:
            logger.warning("Chat stream failed: %s", exc)
            yield _sse_event("error", {"error": str(exc)})
            return
        except Exception as exc:
            logger.exception("Chat stream failed unexpectedly")
            yield _sse_event("error", {"error": str(exc)})
            return
        yield _sse_event("done", {"reply": "".join(parts)})

    return StreamingResponse(
        FragmentStream(_events()),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )
