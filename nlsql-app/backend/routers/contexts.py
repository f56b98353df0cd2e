"""CRUD endpoints for saved contexts."""
from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter

from ..models.schemas import ContextCreate, ContextUpdate, MessageResponse, SavedContext
from ..services import contexts

router = APIRouter(prefix="/contexts", tags=["contexts"])


@router.post("/setup", response_model=MessageResponse)
def setup() -> Dict[str, str]:
    contexts.setup()
    return {"message": "Contexts table created successfully"}


@router.get("", response_model=List[SavedContext])
def list_contexts() -> List[SavedContext]:
    return contexts.list_contexts()


@router.post("", response_model=SavedContext)
def create_context(payload: ContextCreate) -> SavedContext:
    return contexts.create_context(payload)


@router.get("/{context_id}", response_model=SavedContext)
def get_context(context_id: int) -> SavedContext:
    return contexts.get_context(context_id)


@router.put("/{context_id}", response_model=SavedContext)
def update_context(context_id: int, payload: ContextUpdate) -> SavedContext:
    return contexts.update_context(context_id, payload)


@router.delete("/{context_id}", response_model=MessageResponse)
def delete_context(context_id: int) -> Dict[str, str]:
    contexts.delete_context(context_id)
    return {"message": "Context deleted"}
