from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from typing import List, Dict, Any

from invoice_inbox.domain.decoration import decorate_tag
from invoice_inbox.domain.schemas import TagCreateRequest
from invoice_inbox.domain.store import EntityStore
from invoice_inbox.domain.usage import compute_usage
from invoice_inbox.domain.workflow import create_tag, delete_tag
from invoice_inbox.services.database import get_store
from invoice_inbox.utils.logging_config import get_logger

logger = get_logger("api.tags")
router = APIRouter(prefix="/api/tags", tags=["tags"])

@router.get("", response_model=List[Dict[str, Any]])
async def list_tags(store: EntityStore = Depends(get_store)):
    """
    Returns the organization's tags with their usage counts, sorted by label.
    Usage is recounted over every invoice on each call.
    """
    doc = store.snapshot()
    usage = compute_usage(doc.tags, doc.invoices)
    tags = sorted(store.scoped_tags(doc), key=lambda tag: tag.label.casefold())
    return [decorate_tag(tag, usage) for tag in tags]

@router.post("", status_code=201)
async def create_tag_endpoint(request: TagCreateRequest, store: EntityStore = Depends(get_store)):
    tag = create_tag(store, request.label, request.color, request.created_by_user_id)
    return JSONResponse(status_code=201, content=tag.to_json())

@router.delete("/{tag_id}")
async def delete_tag_endpoint(tag_id: str, store: EntityStore = Depends(get_store)):
    """
    Deletes an unused tag. 409 while any invoice still carries it.
    """
    removed = delete_tag(store, tag_id)
    return removed.to_json()
