import asyncio
from typing import Optional

from invoice_inbox.client.api_client import InboxAPI, InboxAPIError
from invoice_inbox.client.state import AppState
from invoice_inbox.core.config import CHAT_POLL_INTERVAL
from invoice_inbox.utils.logging_config import get_logger

logger = get_logger("client.polling")


class ChatPoller:
    """
    Refreshes the chat thread of the selected invoice every `interval` seconds.

    Messages are replaced only when the server copy differs from the local one.
    The poller stops on the first error and whenever start/stop is called again,
    so at most one polling task is alive at a time.
    """

    def __init__(self, api: InboxAPI, state: AppState, interval: float = CHAT_POLL_INTERVAL):
        self.api = api
        self.state = state
        self.interval = interval
        self.invoice_id: Optional[str] = None
        self.task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    def start(self, invoice_id: Optional[str]):
        self.stop()
        if not invoice_id:
            return
        self.invoice_id = invoice_id
        self.task = asyncio.get_running_loop().create_task(self._run(invoice_id))

    def stop(self):
        if self.task is not None and not self.task.done():
            self.task.cancel()
        self.task = None
        self.invoice_id = None

    async def poll_once(self, invoice_id: str) -> bool:
        """
        Fetches the thread once. Returns True when the local messages were replaced.
        Errors propagate to the caller.
        """
        messages = await self.api.list_messages(invoice_id)
        if self.state.selected_invoice_id != invoice_id:
            return False
        if messages != self.state.messages:
            self.state.messages = messages
            return True
        return False

    async def _run(self, invoice_id: str):
        while True:
            await asyncio.sleep(self.interval)
            try:
                if await self.poll_once(invoice_id):
                    logger.info(f"Chat of invoice {invoice_id} refreshed")
            except InboxAPIError as e:
                logger.warning(f"Chat polling of invoice {invoice_id} stopped: {e.message}")
                if self.task is asyncio.current_task():
                    self.task = None
                return
