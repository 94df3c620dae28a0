from typing import Optional

from invoice_inbox.core.config import DB_PATH, ORG_ID
from invoice_inbox.domain.store import EntityStore
from invoice_inbox.utils.logging_config import get_logger

logger = get_logger("database")

store: Optional[EntityStore] = None

def connect_db(path: str = DB_PATH, org_id: str = ORG_ID) -> EntityStore:
    """
    Opens the JSON document store. Called once on startup; the same instance
    (and therefore the same writer lock) serves every request of the process.
    """
    global store
    store = EntityStore(path, org_id=org_id)
    logger.info(f"Inbox document store ready at {path} (org {org_id}).")
    return store

def get_store() -> EntityStore:
    """
    Returns the active store, opening it lazily if startup did not run
    (e.g. when the app is driven by a test client without lifespan events).
    """
    if store is None:
        return connect_db()
    return store

def close_db():
    global store
    if store:
        logger.info("Inbox document store closed.")
    store = None
