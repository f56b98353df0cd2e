"""FastAPI application entrypoint."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

import redis
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .db.duck import fetch
from .errors import GatewayError
from .routers import ai, contexts, tables
from .services import schema
from .services.cache import get_cache, make_key

LOG_DIR = Path(get_settings().log_dir)
LOG_DIR.mkdir(parents=True, exist_ok=True)

handler = RotatingFileHandler(LOG_DIR / "app.log", maxBytes=5_000_000, backupCount=3)
handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
logging.basicConfig(level=logging.INFO, handlers=[handler, logging.StreamHandler()])
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Build the schema description once so the first request does not pay for it.
    await asyncio.to_thread(schema.warm_schema)
    yield


app = FastAPI(title="NL-SQL Gateway", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ai.router)
app.include_router(tables.router)
app.include_router(contexts.router)


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": str(exc) or exc.__class__.__name__})


@app.get("/health")
def health() -> Dict[str, Any]:
    report: Dict[str, Any] = {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}

    try:
        fetch("SELECT 1")
        report["db"] = "ok"
    except GatewayError as exc:
        report["db"] = "error"
        report["db_error"] = str(exc)

    try:
        cache = get_cache()
        key = make_key("health")
        cache.set(key, "pong", 5)
        report["cache"] = "ok" if cache.get(key) == "pong" else "error"
    except (redis.RedisError, GatewayError) as exc:
        report["cache"] = "error"
        report["cache_error"] = str(exc)

    if report["db"] != "ok" or report["cache"] != "ok":
        report["status"] = "degraded"
    return report
