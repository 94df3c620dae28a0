"""
Read-only projection of stored entities into the view objects returned by the API.

Every foreign key is resolved against a document snapshot. A reference that no
longer resolves degrades to a placeholder instead of failing the request, so an
invoice stays renderable even when a tag or user was removed behind its back.
Nothing here mutates the snapshot.
"""
from typing import Any, Dict, Optional

from invoice_inbox.core.config import MISSING_TAG_COLOR
from invoice_inbox.domain.schemas import InboxDocument, Invoice, Message, Tag, TagLink
from invoice_inbox.utils.config_loader import DEFAULT_STATUS_LABELS
from invoice_inbox.utils.logging_config import get_logger

logger = get_logger(__name__)

MISSING_TAG_LABEL = "Tag supprimé"
UNKNOWN_USER_NAME = "Inconnu"
SYSTEM_AUTHOR_NAME = "Système"
EXTERNAL_ROLE = "external"


def decorate_link(link: TagLink, doc: InboxDocument) -> Dict[str, Any]:
    tag = next((t for t in doc.tags if t.id == link.tag_id), None)
    user = next((u for u in doc.users if u.id == link.applied_by_user_id), None)
    if tag is None:
        logger.warning(f"Invoice references deleted tag {link.tag_id}")
    return {
        "tagId": link.tag_id,
        "label": tag.label if tag else MISSING_TAG_LABEL,
        "color": tag.color if tag else MISSING_TAG_COLOR,
        "appliedByUserId": link.applied_by_user_id,
        "appliedByName": user.name if user else UNKNOWN_USER_NAME,
        "createdAt": link.to_json()["createdAt"],
    }


def decorate_invoice(
    invoice: Invoice,
    doc: InboxDocument,
    status_labels: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Invoice fields plus:
    - statusLabel: human label of the status
    - sender: {id, name, email, phone, role} of the sending user, or None
    - tags: every link resolved to {tagId, label, color, appliedByUserId, appliedByName, createdAt}
    """
    labels = status_labels or DEFAULT_STATUS_LABELS
    sender = None
    if invoice.sender_user_id:
        sender = next((u for u in doc.users if u.id == invoice.sender_user_id), None)

    view = invoice.to_json()
    view["statusLabel"] = labels.get(invoice.status, invoice.status)
    view["sender"] = (
        {
            "id": sender.id,
            "name": sender.name,
            "email": sender.email,
            "phone": sender.phone,
            "role": sender.role,
        }
        if sender
        else None
    )
    view["tags"] = [decorate_link(link, doc) for link in invoice.tags]
    return view


def decorate_message(message: Message, doc: InboxDocument) -> Dict[str, Any]:
    author = None
    if message.from_user_id:
        author = next((u for u in doc.users if u.id == message.from_user_id), None)

    view = message.to_json()
    if author:
        view["authorName"] = author.name
        view["authorRole"] = author.role
    else:
        view["authorName"] = message.from_external_phone or SYSTEM_AUTHOR_NAME
        view["authorRole"] = EXTERNAL_ROLE
    return view


def decorate_tag(tag: Tag, usage: Dict[str, int]) -> Dict[str, Any]:
    view = tag.to_json()
    view["usageCount"] = usage.get(tag.id, 0)
    return view
