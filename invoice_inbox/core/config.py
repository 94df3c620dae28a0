import os
from dotenv import load_dotenv

# Load env vars
load_dotenv()

# --- Configuration Constants ---

# Organization scope (single fixed org)
ORG_ID = os.getenv("INBOX_ORG_ID", "org-demo")

# JSON Document Store
DB_PATH = os.path.abspath(os.getenv("DB_PATH", os.path.join("data", "db.json")))

# Server
PORT = int(os.getenv("PORT", "4173"))
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
# Per-logger overrides, e.g. "invoice_inbox.domain.store=DEBUG,client.polling=INFO"
LOG_LEVELS = os.getenv("LOG_LEVELS", "")

# Tags
DEFAULT_TAG_COLOR = os.getenv("DEFAULT_TAG_COLOR", "#4f46e5")
MISSING_TAG_COLOR = "#777"

# Workflow (status labels + optional transition graph)
WORKFLOW_CONFIG = os.getenv("WORKFLOW_CONFIG", os.path.join("config", "workflow.yaml"))

# Client
CHAT_POLL_INTERVAL = float(os.getenv("CHAT_POLL_INTERVAL", "5"))
UNDO_WINDOW_SECONDS = float(os.getenv("UNDO_WINDOW_SECONDS", "8"))
CURRENT_USER_ID = os.getenv("INBOX_CURRENT_USER_ID", "user-tagger")

# --- Helper Functions ---

def get_api_url() -> str:
    """
    Returns the base URL the client uses to reach the inbox API.
    Defaults to the local server port.
    """
    return os.getenv("INBOX_API_URL", f"http://localhost:{PORT}").rstrip('/')
