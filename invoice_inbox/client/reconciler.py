"""
Client-side reconciliation of the inbox view with the server.

The controller never edits an invoice optimistically. Every mutation goes
idle -> pending -> confirmed | failed for its invoice: on confirmation the
server's decorated invoice replaces the local copy, on failure local state is
left as it was and the error is surfaced as a notice. While a mutation is
pending, further mutations for the same invoice are refused.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from invoice_inbox.client.api_client import InboxAPI, InboxAPIError
from invoice_inbox.client.polling import ChatPoller
from invoice_inbox.client.state import AppState, UndoAction
from invoice_inbox.core.config import CHAT_POLL_INTERVAL, UNDO_WINDOW_SECONDS
from invoice_inbox.utils.logging_config import get_logger

logger = get_logger("client.reconciler")

UNDO_LABEL = "Annuler"


class InboxController:
    def __init__(
        self,
        api: InboxAPI,
        state: Optional[AppState] = None,
        undo_window: float = UNDO_WINDOW_SECONDS,
        poll_interval: float = CHAT_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api = api
        self.state = state or AppState()
        self.undo_window = undo_window
        self.clock = clock
        self.poller = ChatPoller(api, self.state, interval=poll_interval)

    async def init(self):
        await self.load_tags()
        await self.load_invoices(initial=True)

    def close(self):
        self.poller.stop()

    # --- Loading ---

    async def load_tags(self):
        try:
            self.state.tags = await self.api.list_tags()
        except InboxAPIError as e:
            logger.error(f"Loading tags failed: {e.message}")
            self.state.notify("Impossible de charger les tags", type="error")

    async def load_invoices(self, initial: bool = False):
        """
        Reloads the list with the current filters.
        The selection survives when the invoice is still listed; otherwise the
        first listed invoice is selected.
        """
        try:
            invoices = await self.api.list_invoices(self.state.filters.model_dump())
        except InboxAPIError as e:
            logger.error(f"Loading invoices failed: {e.message}")
            self.state.notify("Impossible de charger les factures", type="error")
            return

        self.state.invoices = invoices
        if initial and invoices:
            await self.select_invoice(invoices[0]["id"])
        elif self.state.selected_invoice_id:
            still_visible = any(inv["id"] == self.state.selected_invoice_id for inv in invoices)
            if not still_visible and invoices:
                await self.select_invoice(invoices[0]["id"])

    async def set_filters(self, **changes):
        self.state.filters = self.state.filters.model_copy(update=changes)
        await self.load_invoices()

    async def select_invoice(self, invoice_id: str):
        if self.state.selected_invoice_id != invoice_id:
            self.state.undo = None
        self.state.selected_invoice_id = invoice_id
        self.poller.stop()

        try:
            invoice, messages = await asyncio.gather(
                self.api.get_invoice(invoice_id),
                self.api.list_messages(invoice_id),
            )
        except InboxAPIError as e:
            logger.error(f"Opening invoice {invoice_id} failed: {e.message}")
            if self.state.selected_invoice_id == invoice_id:
                self.state.notify("Impossible d'ouvrir la facture", type="error")
            return

        # Another invoice was selected while this one was loading.
        if self.state.selected_invoice_id != invoice_id:
            logger.info(f"Dropped stale load of invoice {invoice_id}")
            return

        self.state.selected_invoice = invoice
        self.state.messages = messages
        self.poller.start(invoice_id)

    def merge_invoice(self, updated: Optional[Dict[str, Any]]):
        """Replaces the local copies of an invoice with the server's version."""
        if not updated:
            return
        for index, invoice in enumerate(self.state.invoices):
            if invoice["id"] == updated["id"]:
                self.state.invoices[index] = updated
        if self.state.selected_invoice and self.state.selected_invoice["id"] == updated["id"]:
            self.state.selected_invoice = updated

    # --- Mutations ---

    async def _mutate(self, invoice_id: str, call: Callable[[], Awaitable[Any]], failure: str) -> Optional[Any]:
        if self.state.is_busy(invoice_id):
            logger.warning(f"Ignored mutation on invoice {invoice_id}: another one is pending")
            return None

        self.state.mutations[invoice_id] = "pending"
        try:
            result = await call()
        except InboxAPIError as e:
            self.state.mutations[invoice_id] = "failed"
            logger.error(f"Mutation on invoice {invoice_id} failed: {e.message}")
            self.state.notify(e.message or failure, type="error")
            return None
        self.state.mutations[invoice_id] = "confirmed"
        return result

    def _remember(self, kind: str, invoice_id: str, tag_id: str):
        self.state.undo = UndoAction(
            kind=kind,
            invoice_id=invoice_id,
            tag_id=tag_id,
            expires_at=self.clock() + self.undo_window,
        )

    async def apply_tag(self, tag_id: str) -> bool:
        invoice = self.state.selected_invoice
        if not invoice:
            return False
        if not await self._attach(invoice["id"], tag_id):
            return False
        self._remember("add", invoice["id"], tag_id)
        self.state.notify("Tag appliqué", action_label=UNDO_LABEL)
        return True

    async def remove_tag(self, tag_id: str) -> bool:
        invoice = self.state.selected_invoice
        if not invoice:
            return False
        if not await self._detach(invoice["id"], tag_id):
            return False
        self._remember("remove", invoice["id"], tag_id)
        self.state.notify("Tag retiré", action_label=UNDO_LABEL)
        return True

    async def _attach(self, invoice_id: str, tag_id: str) -> bool:
        updated = await self._mutate(
            invoice_id,
            lambda: self.api.add_tag(invoice_id, tag_id),
            "Impossible d'appliquer le tag",
        )
        if updated is None:
            return False
        self.merge_invoice(updated)
        await self.load_tags()
        return True

    async def _detach(self, invoice_id: str, tag_id: str) -> bool:
        response = await self._mutate(
            invoice_id,
            lambda: self.api.remove_tag(invoice_id, tag_id),
            "Impossible de retirer le tag",
        )
        if not response or not response.get("invoice"):
            return False
        self.merge_invoice(response["invoice"])
        await self.load_tags()
        return True

    def can_undo(self) -> bool:
        undo = self.state.undo
        return (
            undo is not None
            and undo.invoice_id == self.state.selected_invoice_id
            and undo.is_valid(self.clock())
        )

    async def undo(self) -> bool:
        """
        Performs the inverse of the last tag change. The buffer is consumed
        whatever the outcome; an expired or invalidated entry does nothing.
        """
        if not self.can_undo():
            self.state.undo = None
            return False
        action = self.state.undo
        self.state.undo = None
        if action.kind == "remove":
            return await self._attach(action.invoice_id, action.tag_id)
        return await self._detach(action.invoice_id, action.tag_id)

    async def update_status(self, status: str) -> bool:
        invoice = self.state.selected_invoice
        if not invoice:
            return False
        updated = await self._mutate(
            invoice["id"],
            lambda: self.api.update_invoice(invoice["id"], {"status": status}),
            "Changement de statut impossible",
        )
        if updated is None:
            return False
        self.merge_invoice(updated)
        self.state.notify(f"Statut → {updated.get('statusLabel') or status}")
        return True

    async def send_to_review(self) -> bool:
        return await self.update_status("a_verifier")

    async def toggle_complete(self) -> bool:
        invoice = self.state.selected_invoice
        if not invoice:
            return False
        target = "a_verifier" if invoice.get("status") == "complete" else "complete"
        return await self.update_status(target)

    async def persist_ocr_field(self, field_id: str, **updates) -> bool:
        """Saves an edited OCR value or confirmed flag by sending the whole field list back."""
        invoice = self.state.selected_invoice
        if not invoice:
            return False
        fields = [
            {**field, **updates} if field["id"] == field_id else field
            for field in invoice.get("ocrFields", [])
        ]
        updated = await self._mutate(
            invoice["id"],
            lambda: self.api.update_invoice(invoice["id"], {"ocrFields": fields}),
            "Erreur de sauvegarde OCR",
        )
        if updated is None:
            return False
        self.merge_invoice(updated)
        self.state.notify("Champ mis à jour")
        return True

    async def send_message(self, text: str) -> Optional[Dict[str, Any]]:
        invoice = self.state.selected_invoice
        body = (text or "").strip()
        if not invoice or not body or self.state.is_sending_message:
            return None

        self.state.is_sending_message = True
        try:
            message = await self.api.create_message(invoice["id"], body)
        except InboxAPIError as e:
            logger.error(f"Sending message on invoice {invoice['id']} failed: {e.message}")
            self.state.notify(e.message or "Impossible d'envoyer le message", type="error")
            return None
        finally:
            self.state.is_sending_message = False

        self.state.messages.append(message)
        return message

    async def create_tag(self, label: str) -> Optional[Dict[str, Any]]:
        label = (label or "").strip()
        if not label or self.state.is_creating_tag:
            return None

        self.state.is_creating_tag = True
        try:
            tag = await self.api.create_tag(label)
        except InboxAPIError as e:
            logger.error(f"Creating tag '{label}' failed: {e.message}")
            self.state.notify(e.message or "Impossible de créer le tag", type="error")
            return None
        finally:
            self.state.is_creating_tag = False

        self.state.tags.append({**tag, "usageCount": 0})
        self.state.tags.sort(key=lambda t: t["label"].casefold())
        self.state.notify(f'Tag "{tag["label"]}" créé')
        return tag

    async def create_invoice(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        vendor = (payload.get("vendor") or "").strip()
        if not vendor:
            self.state.notify("Le fournisseur est requis", type="error")
            return None

        try:
            invoice = await self.api.create_invoice({**payload, "vendor": vendor})
        except InboxAPIError as e:
            logger.error(f"Creating invoice for '{vendor}' failed: {e.message}")
            self.state.notify(e.message or "Impossible de créer la facture", type="error")
            return None

        self.state.notify("Facture ajoutée")
        await self.load_invoices()
        if invoice and invoice.get("id"):
            await self.select_invoice(invoice["id"])
        return invoice
