import sys
import os
import unittest

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from invoice_inbox.domain.decoration import decorate_invoice, decorate_message, decorate_tag
from invoice_inbox.domain.schemas import InboxDocument, Invoice, Message, Tag, TagLink, User
from invoice_inbox.domain.usage import compute_usage


def build_document():
    return InboxDocument(
        tags=[
            Tag(id="tag-urgent", org_id="org-demo", label="Urgent", color="#dc2626"),
            Tag(id="tag-idle", org_id="org-demo", label="Inactif"),
        ],
        users=[User(id="user-marie", name="Marie Tremblay", email="marie@demo.ca", role="member")],
        invoices=[
            Invoice(
                id="inv-1",
                org_id="org-demo",
                vendor="Acme",
                status="a_verifier",
                sender_user_id="user-marie",
                tags=[
                    TagLink(tag_id="tag-urgent", applied_by_user_id="user-marie"),
                    TagLink(tag_id="tag-deleted", applied_by_user_id="user-gone"),
                ],
            ),
            Invoice(id="inv-2", org_id="org-demo", vendor="Globex", sender_user_id="user-gone",
                    tags=[TagLink(tag_id="tag-urgent")]),
        ],
    )


class TestDecorateInvoice(unittest.TestCase):

    def setUp(self):
        self.doc = build_document()

    def test_resolves_tags_sender_and_status_label(self):
        view = decorate_invoice(self.doc.invoices[0], self.doc)

        self.assertEqual(view["statusLabel"], "À vérifier")
        self.assertEqual(view["sender"]["name"], "Marie Tremblay")
        self.assertEqual(view["sender"]["email"], "marie@demo.ca")
        self.assertEqual(view["vendor"], "Acme")

        urgent, deleted = view["tags"]
        self.assertEqual(urgent["tagId"], "tag-urgent")
        self.assertEqual(urgent["label"], "Urgent")
        self.assertEqual(urgent["color"], "#dc2626")
        self.assertEqual(urgent["appliedByName"], "Marie Tremblay")

    def test_dangling_references_degrade_to_placeholders(self):
        view = decorate_invoice(self.doc.invoices[0], self.doc)
        deleted = view["tags"][1]
        self.assertEqual(deleted["label"], "Tag supprimé")
        self.assertEqual(deleted["color"], "#777")
        self.assertEqual(deleted["appliedByName"], "Inconnu")

        other = decorate_invoice(self.doc.invoices[1], self.doc)
        self.assertIsNone(other["sender"])
        self.assertEqual(other["statusLabel"], "Nouvelle")

    def test_custom_status_labels(self):
        view = decorate_invoice(self.doc.invoices[0], self.doc, {"a_verifier": "To review"})
        self.assertEqual(view["statusLabel"], "To review")

    def test_decoration_does_not_mutate_snapshot(self):
        before = self.doc.to_json()
        decorate_invoice(self.doc.invoices[0], self.doc)
        self.assertEqual(self.doc.to_json(), before)


class TestDecorateMessage(unittest.TestCase):

    def setUp(self):
        self.doc = build_document()

    def test_known_author(self):
        message = Message(id="msg-1", invoice_id="inv-1", from_user_id="user-marie", body="Bonjour")
        view = decorate_message(message, self.doc)
        self.assertEqual(view["authorName"], "Marie Tremblay")
        self.assertEqual(view["authorRole"], "member")
        self.assertEqual(view["body"], "Bonjour")

    def test_external_and_system_authors(self):
        sms = Message(id="msg-2", invoice_id="inv-1", from_external_phone="+15145550000", body="Reçu", sent_via="sms")
        self.assertEqual(decorate_message(sms, self.doc)["authorName"], "+15145550000")
        self.assertEqual(decorate_message(sms, self.doc)["authorRole"], "external")

        system = Message(id="msg-3", invoice_id="inv-1", body="OCR terminé")
        self.assertEqual(decorate_message(system, self.doc)["authorName"], "Système")


class TestUsage(unittest.TestCase):

    def test_counts_invoices_per_tag(self):
        doc = build_document()
        usage = compute_usage(doc.tags, doc.invoices)
        self.assertEqual(usage, {"tag-urgent": 2, "tag-idle": 0})

    def test_decorate_tag_adds_usage_count(self):
        doc = build_document()
        usage = compute_usage(doc.tags, doc.invoices)
        self.assertEqual(decorate_tag(doc.tags[0], usage)["usageCount"], 2)
        self.assertEqual(decorate_tag(doc.tags[1], usage)["usageCount"], 0)
        self.assertEqual(decorate_tag(doc.tags[1], {})["usageCount"], 0)


if __name__ == '__main__':
    unittest.main()
