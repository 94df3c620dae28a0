from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from typing import Dict, Any, List

from invoice_inbox.domain.decoration import decorate_message
from invoice_inbox.domain.schemas import MessageCreateRequest
from invoice_inbox.domain.store import EntityStore
from invoice_inbox.domain.workflow import post_message
from invoice_inbox.services.database import get_store
from invoice_inbox.utils.logging_config import get_logger

logger = get_logger("api.messages")
router = APIRouter(prefix="/api/invoices/{invoice_id}/messages", tags=["messages"])

@router.get("", response_model=List[Dict[str, Any]])
async def list_messages(invoice_id: str, store: EntityStore = Depends(get_store)):
    """
    Chat thread of one invoice, oldest first.
    """
    doc = store.snapshot()
    store.find_invoice(doc, invoice_id)
    return [decorate_message(message, doc) for message in store.messages_for(doc, invoice_id)]

@router.post("", status_code=201)
async def create_message(invoice_id: str, request: MessageCreateRequest, store: EntityStore = Depends(get_store)):
    message = post_message(
        store,
        invoice_id,
        request.body,
        from_user_id=request.from_user_id,
        from_external_phone=request.from_external_phone,
        attachments=request.attachments,
        view=decorate_message,
    )
    return JSONResponse(status_code=201, content=message)
