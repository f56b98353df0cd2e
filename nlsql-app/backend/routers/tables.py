"""Table listing, previews and removal."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Query

from ..errors import ValidationError
from ..models.schemas import MessageResponse, TableDataResponse, TableRequest, TablesResponse
from ..services import gateway, schema

router = APIRouter(prefix="/ai", tags=["tables"])


@router.get("/tables", response_model=TablesResponse)
def list_tables() -> Dict[str, Any]:
    return {"tables": schema.list_tables()}


@router.get("/table-data", response_model=TableDataResponse)
def table_data(table: Optional[str] = None, limit: Optional[int] = Query(default=None, ge=1)) -> Dict[str, Any]:
    if not table:
        raise ValidationError("Table name is required")
    return {"data": schema.sample_rows(table, limit)}


@router.post("/drop-table", response_model=MessageResponse)
def drop_table(request: TableRequest) -> Dict[str, Any]:
    return gateway.drop_table(request.table)
