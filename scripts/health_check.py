import os
import sys
import requests
from dotenv import load_dotenv

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load environment variables
load_dotenv()

from invoice_inbox.core.config import DB_PATH, ORG_ID, WORKFLOW_CONFIG, get_api_url
from invoice_inbox.domain.errors import InboxError
from invoice_inbox.domain.store import EntityStore
from invoice_inbox.domain.usage import compute_usage
from invoice_inbox.utils.config_loader import load_workflow_config

def check_document():
    print("\n--- Checking JSON document ---")
    print(f"Path: {DB_PATH}")
    if not os.path.exists(DB_PATH):
        print("⚠️  Document missing: the server will start from an empty inbox")
        return True
    try:
        store = EntityStore(DB_PATH, org_id=ORG_ID)
        doc = store.snapshot()
        print(f"✅ Document: READABLE ({len(doc.tags)} tags, {len(doc.invoices)} invoices, "
              f"{len(doc.users)} users, {len(doc.messages)} messages)")

        known_tags = {tag.id for tag in doc.tags}
        dangling = [
            (invoice.id, link.tag_id)
            for invoice in doc.invoices
            for link in invoice.tags
            if link.tag_id not in known_tags
        ]
        if dangling:
            print(f"⚠️  {len(dangling)} tag link(s) point at deleted tags: {dangling}")

        usage = compute_usage(doc.tags, doc.invoices)
        unused = [tag.label for tag in store.scoped_tags(doc) if usage.get(tag.id, 0) == 0]
        print(f"Unused tags: {', '.join(unused) or 'none'}")
        return True
    except InboxError as e:
        print(f"❌ Document Error: {e.message}")
        return False

def check_workflow():
    print("\n--- Checking workflow configuration ---")
    try:
        workflow = load_workflow_config(WORKFLOW_CONFIG)
    except (ValueError, OSError) as e:
        print(f"❌ Workflow Error: {e}")
        return False
    if workflow["transitions"] is None:
        print("✅ Workflow: permissive (any status may move to any status)")
    else:
        print(f"✅ Workflow: {len(workflow['transitions'])} restricted source statuses")
    return True

def check_api():
    print("\n--- Checking API ---")
    url = f"{get_api_url()}/api/tags"
    try:
        r = requests.get(url, timeout=5)
        print(f"{url} -> {r.status_code}")
        return r.status_code == 200
    except requests.RequestException as e:
        print(f"⚠️  Server Unreachable: {e}")
        return False

if __name__ == "__main__":
    results = [check_document(), check_workflow(), check_api()]
    sys.exit(0 if all(results) else 1)
