from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

MutationState = Literal["idle", "pending", "confirmed", "failed"]
UndoKind = Literal["add", "remove"]
NoticeType = Literal["info", "error"]


class Filters(BaseModel):
    search: str = ""
    status: str = "all"
    tag: str = "all"
    period: str = "all"


class UndoAction(BaseModel):
    """
    The last tag change, reversible until expires_at (monotonic seconds).
    kind is what was done: undoing "remove" re-attaches, undoing "add" detaches.
    """
    kind: UndoKind
    invoice_id: str
    tag_id: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class Notice(BaseModel):
    """A toast shown to the user, optionally offering the undo action."""
    message: str
    type: NoticeType = "info"
    action_label: Optional[str] = None


class AppState(BaseModel):
    """
    Everything the inbox view renders from.
    Handlers receive it explicitly; invoices and tags are the server's decorated views.
    """
    tags: List[Dict[str, Any]] = Field(default_factory=list)
    invoices: List[Dict[str, Any]] = Field(default_factory=list)
    filters: Filters = Field(default_factory=Filters)
    selected_invoice_id: Optional[str] = None
    selected_invoice: Optional[Dict[str, Any]] = None
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    undo: Optional[UndoAction] = None
    # invoice id -> state of the last mutation sent for it
    mutations: Dict[str, MutationState] = Field(default_factory=dict)
    is_creating_tag: bool = False
    is_sending_message: bool = False
    notices: List[Notice] = Field(default_factory=list)

    def is_busy(self, invoice_id: str) -> bool:
        """True while a mutation for this invoice awaits the server; its controls are disabled."""
        return self.mutations.get(invoice_id) == "pending"

    def notify(self, message: str, type: NoticeType = "info", action_label: Optional[str] = None):
        self.notices.append(Notice(message=message, type=type, action_label=action_label))

    def find_invoice(self, invoice_id: str) -> Optional[Dict[str, Any]]:
        return next((invoice for invoice in self.invoices if invoice["id"] == invoice_id), None)

    def find_tag(self, tag_id: str) -> Optional[Dict[str, Any]]:
        return next((tag for tag in self.tags if tag["id"] == tag_id), None)
