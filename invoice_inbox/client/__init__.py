from invoice_inbox.client.api_client import InboxAPI, InboxAPIError
from invoice_inbox.client.reconciler import InboxController
from invoice_inbox.client.state import AppState

__all__ = [
    "InboxAPI",
    "InboxAPIError",
    "InboxController",
    "AppState",
]
