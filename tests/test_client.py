import sys
import os
import asyncio
import tempfile
import unittest
from unittest.mock import AsyncMock

import httpx

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from invoice_inbox.api.server import app
from invoice_inbox.client.api_client import InboxAPI, InboxAPIError
from invoice_inbox.client.polling import ChatPoller
from invoice_inbox.client.reconciler import InboxController
from invoice_inbox.client.state import AppState
from invoice_inbox.domain.schemas import OcrField, User
from invoice_inbox.domain.store import EntityStore
from invoice_inbox.domain.workflow import attach_tag, create_invoice, create_tag, post_message
from invoice_inbox.services.database import get_store


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class GatedTransport(httpx.AsyncBaseTransport):
    """Holds requests whose path contains `fragment` until `gate` is set."""

    def __init__(self, inner, fragment):
        self.inner = inner
        self.fragment = fragment
        self.gate = asyncio.Event()

    async def handle_async_request(self, request):
        if self.fragment in request.url.path:
            await self.gate.wait()
        return await self.inner.handle_async_request(request)


class ClientTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = EntityStore(os.path.join(self.tmp.name, "db.json"), org_id="org-demo")
        with self.store.transaction() as doc:
            doc.users.append(User(id="user-tagger", name="Julie Gagnon"))
        app.dependency_overrides[get_store] = lambda: self.store

        self.http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
        self.api = InboxAPI(base_url="http://testserver", client=self.http)
        self.clock = FakeClock()
        self.controller = InboxController(self.api, undo_window=8.0, poll_interval=3600, clock=self.clock)
        self.state = self.controller.state

    async def asyncTearDown(self):
        self.controller.close()
        await self.api.aclose()
        app.dependency_overrides.clear()
        self.tmp.cleanup()


class TestInboxAPI(ClientTestCase):

    async def test_server_error_message_is_surfaced(self):
        with self.assertRaises(InboxAPIError) as ctx:
            await self.api.create_tag("   ")
        self.assertEqual(ctx.exception.message, "Label requis")
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_round_trip(self):
        tag = await self.api.create_tag("Urgent")
        invoice = await self.api.create_invoice({"vendor": "Acme"})
        updated = await self.api.add_tag(invoice["id"], tag["id"])
        self.assertEqual(updated["tags"][0]["appliedByUserId"], "user-tagger")
        tags = await self.api.list_tags()
        self.assertEqual(tags[0]["usageCount"], 1)


class TestLoadingAndSelection(ClientTestCase):

    async def test_init_selects_newest_invoice(self):
        create_invoice(self.store, {"vendor": "Old"})
        newest = create_invoice(self.store, {"vendor": "New"})
        post_message(self.store, newest.id, "Bonjour", from_user_id="user-tagger")
        create_tag(self.store, "Urgent")

        await self.controller.init()

        self.assertEqual(len(self.state.tags), 1)
        self.assertEqual(len(self.state.invoices), 2)
        self.assertEqual(self.state.selected_invoice_id, self.state.invoices[0]["id"])
        self.assertEqual(self.state.selected_invoice["id"], self.state.invoices[0]["id"])
        self.assertTrue(self.controller.poller.running)

    async def test_selection_kept_while_visible_otherwise_first(self):
        acme = create_invoice(self.store, {"vendor": "Acme"})
        globex = create_invoice(self.store, {"vendor": "Globex"})

        await self.controller.select_invoice(acme.id)
        await self.controller.set_filters(search="acme")
        self.assertEqual(self.state.selected_invoice_id, acme.id)

        await self.controller.set_filters(search="globex")
        self.assertEqual(self.state.selected_invoice_id, globex.id)
        self.assertEqual(self.state.selected_invoice["vendor"], "Globex")

    async def test_unknown_invoice_surfaces_notice(self):
        await self.controller.select_invoice("inv-missing")
        self.assertIsNone(self.state.selected_invoice)
        self.assertEqual(self.state.notices[-1].type, "error")

    async def test_slow_load_does_not_override_newer_selection(self):
        first = create_invoice(self.store, {"vendor": "Acme"})
        second = create_invoice(self.store, {"vendor": "Globex"})

        transport = GatedTransport(httpx.ASGITransport(app=app), f"/api/invoices/{first.id}")
        http = httpx.AsyncClient(transport=transport, base_url="http://testserver")
        api = InboxAPI(base_url="http://testserver", client=http)
        controller = InboxController(api, poll_interval=3600)
        try:
            slow = asyncio.create_task(controller.select_invoice(first.id))
            await asyncio.sleep(0.05)
            await controller.select_invoice(second.id)
            transport.gate.set()
            await slow

            self.assertEqual(controller.state.selected_invoice_id, second.id)
            self.assertEqual(controller.state.selected_invoice["id"], second.id)
            self.assertEqual(controller.poller.invoice_id, second.id)
            self.assertTrue(controller.poller.running)
            self.assertEqual(controller.state.notices, [])
        finally:
            controller.close()
            await api.aclose()


class TestTagMutations(ClientTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.tag = create_tag(self.store, "Urgent")
        self.invoice = create_invoice(self.store, {"vendor": "Acme Corp"})
        await self.controller.init()

    async def test_apply_tag_replaces_invoice_and_refreshes_usage(self):
        self.assertTrue(await self.controller.apply_tag(self.tag.id))

        self.assertEqual([t["tagId"] for t in self.state.selected_invoice["tags"]], [self.tag.id])
        self.assertEqual(self.state.invoices[0]["tags"][0]["label"], "Urgent")
        self.assertEqual(self.state.tags[0]["usageCount"], 1)
        self.assertEqual(self.state.mutations[self.invoice.id], "confirmed")
        self.assertEqual(self.state.notices[-1].message, "Tag appliqué")

    async def test_failed_mutation_leaves_state_unchanged(self):
        before = self.state.selected_invoice
        self.assertFalse(await self.controller.apply_tag("tag-missing"))
        self.assertEqual(self.state.selected_invoice, before)
        self.assertEqual(self.state.mutations[self.invoice.id], "failed")
        self.assertEqual(self.state.notices[-1].message, "Tag introuvable")
        self.assertIsNone(self.state.undo)

    async def test_remove_then_undo_restores_tag(self):
        attach_tag(self.store, self.invoice.id, self.tag.id)
        await self.controller.select_invoice(self.invoice.id)

        self.assertTrue(await self.controller.remove_tag(self.tag.id))
        self.assertEqual(self.state.selected_invoice["tags"], [])
        self.assertEqual(self.state.tags[0]["usageCount"], 0)
        self.assertEqual(self.state.notices[-1].action_label, "Annuler")

        self.clock.now += 5
        self.assertTrue(await self.controller.undo())
        self.assertEqual([t["tagId"] for t in self.state.selected_invoice["tags"]], [self.tag.id])
        self.assertEqual(len(self.store.get_invoice(self.invoice.id).tags), 1)
        self.assertIsNone(self.state.undo)

    async def test_undo_of_apply_detaches(self):
        await self.controller.apply_tag(self.tag.id)
        self.assertTrue(await self.controller.undo())
        self.assertEqual(self.store.get_invoice(self.invoice.id).tags, [])

    async def test_undo_expires(self):
        await self.controller.apply_tag(self.tag.id)
        self.clock.now += 9
        self.assertFalse(await self.controller.undo())
        self.assertEqual(len(self.store.get_invoice(self.invoice.id).tags), 1)

    async def test_undo_invalidated_by_selection_change(self):
        other = create_invoice(self.store, {"vendor": "Globex"})
        await self.controller.apply_tag(self.tag.id)
        await self.controller.select_invoice(other.id)

        self.assertIsNone(self.state.undo)
        self.assertFalse(await self.controller.undo())
        self.assertEqual(len(self.store.get_invoice(self.invoice.id).tags), 1)

    async def test_pending_mutation_blocks_another(self):
        self.state.mutations[self.invoice.id] = "pending"
        self.assertTrue(self.state.is_busy(self.invoice.id))
        self.assertFalse(await self.controller.apply_tag(self.tag.id))
        self.assertEqual(self.store.get_invoice(self.invoice.id).tags, [])

    async def test_create_tag_inserts_sorted_with_zero_usage(self):
        tag = await self.controller.create_tag("  Achats ")
        self.assertEqual(tag["label"], "Achats")
        self.assertEqual([t["label"] for t in self.state.tags], ["Achats", "Urgent"])
        self.assertEqual(self.state.tags[0]["usageCount"], 0)
        self.assertIsNone(await self.controller.create_tag("   "))
        self.assertIsNone(await self.controller.create_tag("urgent"))
        self.assertEqual(self.state.notices[-1].message, "Ce tag existe déjà")


class TestStatusAndFields(ClientTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.invoice = create_invoice(self.store, {"vendor": "Acme Corp"})
        with self.store.transaction() as doc:
            invoice = self.store.find_invoice(doc, self.invoice.id)
            invoice.ocr_fields = [
                OcrField(id="f-total", label="Total", value="10", confidence=0.5),
                OcrField(id="f-date", label="Date", value="2024-03-01", confidence=0.9),
            ]
        await self.controller.init()

    async def test_status_shortcuts(self):
        self.assertTrue(await self.controller.send_to_review())
        self.assertEqual(self.state.selected_invoice["status"], "a_verifier")
        self.assertEqual(self.state.notices[-1].message, "Statut → À vérifier")

        await self.controller.toggle_complete()
        self.assertEqual(self.state.selected_invoice["status"], "complete")
        await self.controller.toggle_complete()
        self.assertEqual(self.state.selected_invoice["status"], "a_verifier")
        self.assertEqual(self.store.get_invoice(self.invoice.id).status, "a_verifier")

    async def test_persist_ocr_field(self):
        self.assertTrue(await self.controller.persist_ocr_field("f-total", value="12", confirmed=True))
        fields = {f["id"]: f for f in self.state.selected_invoice["ocrFields"]}
        self.assertEqual(fields["f-total"]["value"], "12")
        self.assertTrue(fields["f-total"]["confirmed"])
        self.assertFalse(fields["f-date"]["confirmed"])
        self.assertEqual(self.store.get_invoice(self.invoice.id).ocr_fields[0].value, "12")


class TestChatAndIntake(ClientTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.invoice = create_invoice(self.store, {"vendor": "Acme Corp"})
        await self.controller.init()

    async def test_send_message(self):
        message = await self.controller.send_message("  Bonjour  ")
        self.assertEqual(message["body"], "Bonjour")
        self.assertEqual(self.state.messages[-1]["authorName"], "Julie Gagnon")
        self.assertFalse(self.state.is_sending_message)
        self.assertIsNone(await self.controller.send_message("   "))
        self.assertEqual(len(self.state.messages), 1)

    async def test_poll_replaces_messages_only_when_changed(self):
        poller = self.controller.poller
        self.assertFalse(await poller.poll_once(self.invoice.id))

        post_message(self.store, self.invoice.id, "Nouveau reçu", from_external_phone="+15145550123")
        self.assertTrue(await poller.poll_once(self.invoice.id))
        self.assertEqual(self.state.messages[-1]["body"], "Nouveau reçu")
        self.assertFalse(await poller.poll_once(self.invoice.id))

    async def test_polling_stops_on_error(self):
        api = AsyncMock()
        api.list_messages.side_effect = InboxAPIError("Facture introuvable", 404)
        state = AppState(selected_invoice_id="inv-1")
        poller = ChatPoller(api, state, interval=0.01)

        poller.start("inv-1")
        self.assertTrue(poller.running)
        await asyncio.sleep(0.1)
        self.assertFalse(poller.running)
        api.list_messages.assert_awaited_with("inv-1")

    async def test_polling_cancelled_on_stop(self):
        self.assertTrue(self.controller.poller.running)
        self.controller.close()
        self.assertFalse(self.controller.poller.running)

    async def test_create_invoice_reloads_and_selects(self):
        invoice = await self.controller.create_invoice({"vendor": " Globex ", "amountTotal": 12})
        self.assertEqual(invoice["vendor"], "Globex")
        self.assertEqual(self.state.selected_invoice_id, invoice["id"])
        self.assertEqual(len(self.state.invoices), 2)
        self.assertEqual(self.state.notices[-1].message, "Facture ajoutée")

    async def test_create_invoice_requires_vendor(self):
        self.assertIsNone(await self.controller.create_invoice({"vendor": "  "}))
        self.assertEqual(self.state.notices[-1].message, "Le fournisseur est requis")
        self.assertEqual(len(self.store.snapshot().invoices), 1)


if __name__ == '__main__':
    unittest.main()
