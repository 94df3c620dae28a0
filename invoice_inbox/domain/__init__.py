from invoice_inbox.domain.errors import InboxError, ValidationError, NotFound, ConflictError, TransientIOError
from invoice_inbox.domain.store import EntityStore

__all__ = [
    "InboxError",
    "ValidationError",
    "NotFound",
    "ConflictError",
    "TransientIOError",
    "EntityStore",
]
