import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError as SchemaError

from invoice_inbox.core.config import DEFAULT_TAG_COLOR, WORKFLOW_CONFIG
from invoice_inbox.domain.errors import ConflictError, NotFound, ValidationError
from invoice_inbox.domain.schemas import (
    INVOICE_STATUSES,
    InboxDocument,
    Invoice,
    InvoiceCreateRequest,
    InvoicePatch,
    Message,
    Tag,
    TagLink,
)
from invoice_inbox.domain.store import EntityStore
from invoice_inbox.domain.usage import compute_usage
from invoice_inbox.utils.config_loader import load_workflow_config
from invoice_inbox.utils.logging_config import get_logger

logger = get_logger(__name__)

# Loaded once at import; transitions is None unless config/workflow.yaml defines a graph.
WORKFLOW = load_workflow_config(WORKFLOW_CONFIG)

Transitions = Optional[Dict[str, List[str]]]

# Builds the caller's response from the document a mutation is committing.
View = Optional[Callable[[Any, InboxDocument], Any]]


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4()}"


def _present(view: View, entity: Any, doc: InboxDocument) -> Any:
    return view(entity, doc) if view is not None else entity


def _schema_error_message(error: SchemaError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"Champ invalide : {location}" if location else "Données invalides"


# --- Tags ---

def create_tag(store: EntityStore, label: Optional[str], color: Optional[str] = None,
               created_by_user_id: Optional[str] = None) -> Tag:
    """
    Creates a tag in the store's organization.
    Raises ValidationError for a blank label and ConflictError when another tag
    already uses the same label, ignoring case and surrounding spaces.
    """
    if not isinstance(label, str) or not label.strip():
        raise ValidationError("Label requis")
    normalized = label.strip()

    with store.transaction() as doc:
        clash = any(
            tag.label.lower() == normalized.lower() for tag in store.scoped_tags(doc)
        )
        if clash:
            logger.warning(f"Rejected duplicate tag label '{normalized}'")
            raise ConflictError("Ce tag existe déjà")

        tag = Tag(
            id=_new_id("tag"),
            org_id=store.org_id,
            label=normalized,
            color=color or DEFAULT_TAG_COLOR,
            is_system=False,
            created_by_user_id=created_by_user_id,
        )
        doc.tags.append(tag)

    logger.info(f"Created tag {tag.id} '{tag.label}'")
    return tag


def delete_tag(store: EntityStore, tag_id: str) -> Tag:
    """
    Removes a tag nobody uses. Raises NotFound for an unknown tag and
    ConflictError while at least one invoice still carries it.
    """
    with store.transaction() as doc:
        tag = store.find_tag(doc, tag_id)
        usage = compute_usage(doc.tags, doc.invoices)
        if usage.get(tag_id, 0) > 0:
            raise ConflictError("Tag utilisé sur des factures")
        doc.tags.remove(tag)

    logger.info(f"Deleted tag {tag_id} '{tag.label}'")
    return tag


# --- Invoices ---

def _coerce_amount(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError("Montant invalide")


def create_invoice(store: EntityStore, payload: Union[InvoiceCreateRequest, Mapping[str, Any]],
                   view: View = None) -> Any:
    """
    Creates an invoice from manual intake.
    vendor is required; status starts at "nouvelle" with no tags and no OCR fields.
    Returns the invoice, or view(invoice, doc) computed on the committed document.
    """
    if not isinstance(payload, InvoiceCreateRequest):
        try:
            payload = InvoiceCreateRequest.model_validate(dict(payload))
        except SchemaError as e:
            raise ValidationError(_schema_error_message(e))

    vendor = (payload.vendor or "").strip()
    if not vendor:
        raise ValidationError("Fournisseur requis")

    invoice = Invoice(
        id=_new_id("inv"),
        org_id=store.org_id,
        sender_user_id=payload.sender_user_id or None,
        source=payload.source or "upload",
        preview_url=payload.preview_url or "",
        amount_total=_coerce_amount(payload.amount_total),
        invoice_date=payload.invoice_date or None,
        vendor=vendor,
        payment_method=payload.payment_method or "",
        status="nouvelle",
        notes=payload.notes or "",
    )

    with store.transaction() as doc:
        doc.invoices.append(invoice)
        result = _present(view, invoice, doc)

    logger.info(f"Created invoice {invoice.id} for vendor '{invoice.vendor}'")
    return result


def attach_tag(store: EntityStore, invoice_id: str, tag_id: Optional[str],
               applied_by_user_id: Optional[str] = None, view: View = None) -> Any:
    """
    Attaches a tag to an invoice. Idempotent: an existing link is left untouched
    and the invoice is returned as is.
    """
    if not tag_id:
        raise ValidationError("tagId requis")

    def _attach(invoice: Invoice, doc: InboxDocument) -> Any:
        store.find_tag(doc, tag_id)
        if invoice.find_link(tag_id) is None:
            invoice.tags.append(TagLink(tag_id=tag_id, applied_by_user_id=applied_by_user_id))
            invoice.touch()
            logger.info(f"Attached tag {tag_id} to invoice {invoice_id}")
        return _present(view, invoice, doc)

    return store.mutate_invoice(invoice_id, _attach)


def detach_tag(store: EntityStore, invoice_id: str, tag_id: str, view: View = None) -> Tuple[TagLink, Any]:
    """
    Removes one tag link and returns (removed link, updated invoice).
    The removed link is what an undo needs to put the tag back.
    """
    def _detach(invoice: Invoice, doc: InboxDocument) -> Tuple[TagLink, Any]:
        link = invoice.find_link(tag_id)
        if link is None:
            raise NotFound("Tag non appliqué")
        invoice.tags.remove(link)
        invoice.touch()
        logger.info(f"Detached tag {tag_id} from invoice {invoice_id}")
        return link, _present(view, invoice, doc)

    return store.mutate_invoice(invoice_id, _detach)


def check_transition(current: str, target: str, transitions: Transitions = None):
    """
    Raises unless target is a known status reachable from current.
    With no transition graph every status may move to every other status.
    """
    if target not in INVOICE_STATUSES:
        raise ValidationError("Statut invalide")
    if transitions is None or current == target:
        return
    if target not in transitions.get(current, []):
        raise ConflictError(f"Transition de statut refusée : {current} → {target}")


def set_status(store: EntityStore, invoice_id: str, status: str,
               transitions: Transitions = None, view: View = None) -> Any:
    transitions = transitions if transitions is not None else WORKFLOW["transitions"]

    def _set(invoice: Invoice, doc: InboxDocument) -> Any:
        check_transition(invoice.status, status, transitions)
        previous = invoice.status
        invoice.status = status
        invoice.touch()
        logger.info(f"Invoice {invoice_id} status {previous} -> {status}")
        return _present(view, invoice, doc)

    return store.mutate_invoice(invoice_id, _set)


def patch_fields(store: EntityStore, invoice_id: str, partial: Mapping[str, Any],
                 transitions: Transitions = None, view: View = None) -> Any:
    """
    Narrow PATCH: only vendor, amountTotal, invoiceDate, status, paymentMethod and
    ocrFields are applied. Any other key is ignored, not rejected.
    """
    transitions = transitions if transitions is not None else WORKFLOW["transitions"]
    try:
        patch = InvoicePatch.model_validate(dict(partial))
    except SchemaError as e:
        raise ValidationError(_schema_error_message(e))
    changes = patch.model_dump(exclude_unset=True)

    if "vendor" in changes:
        vendor = (changes["vendor"] or "").strip()
        if not vendor:
            raise ValidationError("Fournisseur requis")
        changes["vendor"] = vendor
    if "status" in changes and changes["status"] is None:
        raise ValidationError("Statut invalide")
    if "ocr_fields" in changes:
        changes["ocr_fields"] = patch.ocr_fields or []

    def _patch(invoice: Invoice, doc: InboxDocument) -> Any:
        if "status" in changes:
            check_transition(invoice.status, changes["status"], transitions)
        for field, value in changes.items():
            setattr(invoice, field, value)
        invoice.touch()
        logger.info(f"Patched invoice {invoice_id}: {', '.join(sorted(changes)) or 'no allowed field'}")
        return _present(view, invoice, doc)

    return store.mutate_invoice(invoice_id, _patch)


# --- Messages ---

def post_message(store: EntityStore, invoice_id: str, body: Optional[str],
                 from_user_id: Optional[str] = None, from_external_phone: Optional[str] = None,
                 attachments: Optional[List[Any]] = None, view: View = None) -> Any:
    """
    Appends a chat message to an invoice thread.
    The body is trimmed and must not be blank. A message carrying an external
    phone number went out by SMS, anything else is in-app.
    """
    if not isinstance(body, str) or not body.strip():
        raise ValidationError("Message vide")

    def _post(invoice: Invoice, doc: InboxDocument) -> Any:
        message = Message(
            id=_new_id("msg"),
            invoice_id=invoice.id,
            from_user_id=from_user_id,
            from_external_phone=from_external_phone,
            body=body.strip(),
            attachments=list(attachments or []),
            sent_via="sms" if from_external_phone else "inapp",
            delivery_status="sent",
        )
        doc.messages.append(message)
        invoice.touch()
        logger.info(f"Message {message.id} posted on invoice {invoice_id} via {message.sent_via}")
        return _present(view, message, doc)

    return store.mutate_invoice(invoice_id, _post)
