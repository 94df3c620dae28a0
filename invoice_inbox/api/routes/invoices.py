from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from typing import Dict, Any, List

from invoice_inbox.domain.decoration import decorate_invoice
from invoice_inbox.domain.query import InvoiceFilters, filter_invoices
from invoice_inbox.domain.schemas import (
    InboxDocument,
    Invoice,
    InvoiceCreateRequest,
    PeriodFilter,
    TagAttachRequest,
)
from invoice_inbox.domain.store import EntityStore
from invoice_inbox.domain.workflow import (
    WORKFLOW,
    attach_tag,
    create_invoice,
    detach_tag,
    patch_fields,
)
from invoice_inbox.services.database import get_store
from invoice_inbox.utils.logging_config import get_logger

logger = get_logger("api.invoices")
router = APIRouter(prefix="/api/invoices", tags=["invoices"])


def _view(invoice: Invoice, doc: InboxDocument) -> Dict[str, Any]:
    return decorate_invoice(invoice, doc, WORKFLOW["status_labels"])


@router.get("", response_model=List[Dict[str, Any]])
async def list_invoices(
    search: str = "",
    status: str = "all",
    tag: str = "all",
    period: PeriodFilter = "all",
    store: EntityStore = Depends(get_store),
):
    """
    Lists the organization's invoices, most recent first.
    search is a case-insensitive substring over vendor, sender, amount, date,
    status and tag labels; status/tag/period narrow further. "all" disables a criterion.
    """
    filters = InvoiceFilters(search=search, status=status, tag=tag, period=period)
    doc = store.snapshot()
    invoices = filter_invoices(
        store.scoped_invoices(doc), filters, tags=doc.tags, users=doc.users
    )
    return [_view(invoice, doc) for invoice in invoices]


@router.post("", status_code=201)
async def create_invoice_endpoint(request: InvoiceCreateRequest, store: EntityStore = Depends(get_store)):
    return JSONResponse(status_code=201, content=create_invoice(store, request, view=_view))


@router.get("/{invoice_id}")
async def get_invoice_endpoint(invoice_id: str, store: EntityStore = Depends(get_store)):
    doc = store.snapshot()
    return _view(store.find_invoice(doc, invoice_id), doc)


@router.patch("/{invoice_id}")
async def patch_invoice_endpoint(
    invoice_id: str,
    payload: Dict[str, Any] = Body(...),
    store: EntityStore = Depends(get_store),
):
    """
    Partial update. Keys outside vendor, amountTotal, invoiceDate, status,
    paymentMethod and ocrFields are ignored.
    """
    return patch_fields(store, invoice_id, payload, view=_view)


@router.post("/{invoice_id}/tags")
async def attach_tag_endpoint(
    invoice_id: str,
    request: TagAttachRequest,
    store: EntityStore = Depends(get_store),
):
    return attach_tag(store, invoice_id, request.tag_id, request.applied_by_user_id, view=_view)


@router.delete("/{invoice_id}/tags/{tag_id}")
async def detach_tag_endpoint(invoice_id: str, tag_id: str, store: EntityStore = Depends(get_store)):
    """
    Returns the removed link alongside the updated invoice so the caller can undo.
    """
    removed, invoice = detach_tag(store, invoice_id, tag_id, view=_view)
    return {"removed": removed.to_json(), "invoice": invoice}
