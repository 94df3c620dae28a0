from datetime import datetime, timezone
from typing import Any, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

InvoiceStatus = Literal["nouvelle", "a_verifier", "complete", "archive", "ocr_error"]
InvoiceSource = Literal["sms", "email", "upload"]
SentVia = Literal["sms", "inapp"]
PeriodFilter = Literal["all", "today", "7d", "30d"]

INVOICE_STATUSES = ("nouvelle", "a_verifier", "complete", "archive", "ocr_error")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: datetime) -> datetime:
    # Documents written by hand may carry naive timestamps; they are UTC.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class InboxModel(BaseModel):
    """
    Base for every persisted entity.
    Python attributes are snake_case, the JSON document and the API use camelCase.
    Unknown keys found in the document are kept so a rewrite never drops data.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Tag(InboxModel):
    """
    A colored label that can be attached to invoices.
    Labels are unique per organization, case-insensitively.
    """
    id: str
    org_id: str
    label: str = Field(..., min_length=1, description="Display label, stored trimmed.")
    color: str = Field("#4f46e5", description="CSS color of the tag pill.")
    is_system: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    created_by_user_id: Optional[str] = None


class TagLink(InboxModel):
    """
    Join record embedded in Invoice.tags: which tag, who applied it and when.
    """
    tag_id: str
    applied_by_user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class OcrField(InboxModel):
    """
    A field extracted by OCR. Arrives pre-populated; only value/confirmed are edited.
    """
    id: str
    label: str
    value: Optional[str] = ""
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    confirmed: bool = False


class User(InboxModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str = "member"


class Invoice(InboxModel):
    """
    An incoming invoice. Owned by the EntityStore and mutated only through the workflow.
    """
    id: str
    org_id: str
    sender_user_id: Optional[str] = None
    sender_email: Optional[str] = Field(None, description="Raw sender address when no user is linked.")
    sender_phone: Optional[str] = Field(None, description="Raw sender phone when no user is linked.")
    source: InvoiceSource = "upload"
    original_filename: Optional[str] = None
    drive_file_id: Optional[str] = None
    drive_file_url: Optional[str] = None
    preview_url: Optional[str] = ""
    amount_total: Optional[float] = None
    invoice_date: Optional[str] = None
    vendor: str = Field(..., min_length=1)
    payment_method: Optional[str] = ""
    status: InvoiceStatus = "nouvelle"
    notes: Optional[str] = ""
    tags: List[TagLink] = Field(default_factory=list)
    ocr_fields: List[OcrField] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def find_link(self, tag_id: str) -> Optional[TagLink]:
        for link in self.tags:
            if link.tag_id == tag_id:
                return link
        return None

    def touch(self):
        self.updated_at = utc_now()


class Message(InboxModel):
    """
    A chat message tied to an invoice. Append-only.
    """
    id: str
    invoice_id: str
    from_user_id: Optional[str] = None
    from_external_phone: Optional[str] = None
    body: str = Field(..., min_length=1)
    attachments: List[Any] = Field(default_factory=list)
    sent_via: SentVia = "inapp"
    delivery_status: str = "sent"
    created_at: datetime = Field(default_factory=utc_now)


class InboxDocument(InboxModel):
    """
    The whole persisted state: one JSON document with four top-level arrays.
    """
    tags: List[Tag] = Field(default_factory=list)
    invoices: List[Invoice] = Field(default_factory=list)
    users: List[User] = Field(default_factory=list)
    messages: List[Message] = Field(default_factory=list)


# --- Request Models ---

class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class TagCreateRequest(RequestModel):
    label: Optional[str] = None
    color: Optional[str] = None
    created_by_user_id: Optional[str] = None


class InvoiceCreateRequest(RequestModel):
    vendor: Optional[str] = None
    amount_total: Optional[Union[float, str]] = None
    invoice_date: Optional[str] = None
    source: InvoiceSource = "upload"
    payment_method: Optional[str] = ""
    preview_url: Optional[str] = ""
    notes: Optional[str] = ""
    sender_user_id: Optional[str] = None


class InvoicePatch(RequestModel):
    """
    Narrow PATCH contract: only these keys are applied, every other key is dropped.
    """
    vendor: Optional[str] = None
    amount_total: Optional[float] = None
    invoice_date: Optional[str] = None
    status: Optional[InvoiceStatus] = None
    payment_method: Optional[str] = None
    ocr_fields: Optional[List[OcrField]] = None


class TagAttachRequest(RequestModel):
    tag_id: Optional[str] = None
    applied_by_user_id: Optional[str] = None


class MessageCreateRequest(RequestModel):
    body: Optional[str] = None
    from_user_id: Optional[str] = None
    from_external_phone: Optional[str] = None
    attachments: List[Any] = Field(default_factory=list)
