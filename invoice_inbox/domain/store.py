import json
import os
import tempfile
from contextlib import contextmanager
from threading import RLock
from typing import Callable, Iterator, List, TypeVar

from pydantic import ValidationError as SchemaError

from invoice_inbox.core.config import ORG_ID
from invoice_inbox.domain.errors import NotFound, TransientIOError
from invoice_inbox.domain.schemas import InboxDocument, Invoice, Message, Tag, User, as_aware
from invoice_inbox.utils.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class EntityStore:
    """
    Canonical tags, invoices, users and messages, backed by one JSON document.

    Every read loads the whole document; every mutation runs a full
    read-modify-write cycle while holding the store lock. One EntityStore per
    document file per process is the single writer: concurrent requests queue on
    the lock instead of overwriting each other. Separate processes writing the
    same file are not coordinated.
    """

    def __init__(self, path: str, org_id: str = ORG_ID):
        self.path = path
        self.org_id = org_id
        self.lock = RLock()

    # --- Document I/O ---

    def _load(self) -> InboxDocument:
        if not os.path.exists(self.path):
            logger.warning(f"Document {self.path} not found, starting from an empty inbox.")
            return InboxDocument()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            return InboxDocument.model_validate(raw)
        except (OSError, json.JSONDecodeError, SchemaError) as e:
            logger.exception(f"Failed to read document {self.path}")
            raise TransientIOError("Lecture des données impossible") from e

    def _save(self, doc: InboxDocument):
        directory = os.path.dirname(self.path) or "."
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=directory, suffix=".tmp", delete=False
            ) as tmp:
                tmp_path = tmp.name
                json.dump(doc.to_json(), tmp, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
            logger.debug(f"Wrote document {self.path}")
        except OSError as e:
            logger.exception(f"Failed to write document {self.path}")
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise TransientIOError("Écriture des données impossible") from e

    def snapshot(self) -> InboxDocument:
        """
        Returns a private copy of the whole document. Callers may read it freely;
        changes to it are never persisted.
        """
        with self.lock:
            return self._load()

    @contextmanager
    def transaction(self) -> Iterator[InboxDocument]:
        """
        Read-modify-write under the store lock.
        The document is written back only if the block finishes without raising
        and actually changed something.
        """
        with self.lock:
            doc = self._load()
            original = doc.to_json()
            yield doc
            if doc.to_json() != original:
                self._save(doc)

    # --- Lookups inside a loaded document ---

    def find_tag(self, doc: InboxDocument, tag_id: str) -> Tag:
        for tag in doc.tags:
            if tag.id == tag_id and tag.org_id == self.org_id:
                return tag
        raise NotFound("Tag introuvable")

    def find_invoice(self, doc: InboxDocument, invoice_id: str) -> Invoice:
        for invoice in doc.invoices:
            if invoice.id == invoice_id and invoice.org_id == self.org_id:
                return invoice
        raise NotFound("Facture introuvable")

    def find_user(self, doc: InboxDocument, user_id: str) -> User:
        for user in doc.users:
            if user.id == user_id:
                return user
        raise NotFound("Utilisateur introuvable")

    # --- Public reads ---

    def get_tag(self, tag_id: str) -> Tag:
        return self.find_tag(self.snapshot(), tag_id)

    def get_invoice(self, invoice_id: str) -> Invoice:
        return self.find_invoice(self.snapshot(), invoice_id)

    def get_user(self, user_id: str) -> User:
        return self.find_user(self.snapshot(), user_id)

    def scoped_tags(self, doc: InboxDocument) -> List[Tag]:
        return [tag for tag in doc.tags if tag.org_id == self.org_id]

    def scoped_invoices(self, doc: InboxDocument) -> List[Invoice]:
        return [invoice for invoice in doc.invoices if invoice.org_id == self.org_id]

    def messages_for(self, doc: InboxDocument, invoice_id: str) -> List[Message]:
        """Messages of one invoice, oldest first. Ties keep append order."""
        messages = [m for m in doc.messages if m.invoice_id == invoice_id]
        return sorted(messages, key=lambda m: as_aware(m.created_at))

    # --- Mutations ---

    def mutate_invoice(self, invoice_id: str, fn: Callable[[Invoice, InboxDocument], T]) -> T:
        """
        Applies fn to one invoice of this organization and persists the document.
        Raises NotFound when the invoice is missing or belongs to another org.
        fn receives the invoice and the document it lives in; its return value is passed through.
        """
        with self.transaction() as doc:
            invoice = self.find_invoice(doc, invoice_id)
            return fn(invoice, doc)
