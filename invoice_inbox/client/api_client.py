"""
Inbox API Client
Async HTTP access to the inbox endpoints, used by the client controller.
"""
import httpx
from typing import Any, Dict, List, Optional

from invoice_inbox.core.config import CURRENT_USER_ID, get_api_url
from invoice_inbox.utils.logging_config import get_logger

logger = get_logger("client.api")


class InboxAPIError(Exception):
    """Raised for any non-2xx answer. message is the server's {"error"} text when present."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InboxAPI:
    """Thin async wrapper over the inbox REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        current_user_id: str = CURRENT_USER_ID,
    ):
        self.base_url = (base_url or get_api_url()).rstrip("/")
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=10.0)
        self.current_user_id = current_user_id

    async def aclose(self):
        await self.client.aclose()

    async def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        try:
            response = await self.client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {endpoint} failed: {e}")
            raise InboxAPIError("Serveur injoignable") from e

        is_json = "application/json" in response.headers.get("content-type", "")
        if response.is_error:
            message = f"Erreur {response.status_code}"
            if is_json:
                try:
                    payload = response.json()
                    if isinstance(payload, dict) and payload.get("error"):
                        message = payload["error"]
                except ValueError:
                    pass
            raise InboxAPIError(message, response.status_code)

        if not is_json or response.status_code == 204:
            return None
        return response.json()

    # --- Tags ---

    async def list_tags(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/tags")

    async def create_tag(self, label: str, color: Optional[str] = None) -> Dict[str, Any]:
        payload = {"label": label, "createdByUserId": self.current_user_id}
        if color:
            payload["color"] = color
        return await self._request("POST", "/api/tags", json=payload)

    async def delete_tag(self, tag_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/api/tags/{tag_id}")

    # --- Invoices ---

    async def list_invoices(self, filters: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        params = {
            "search": filters.get("search") or "",
            "status": filters.get("status") or "all",
            "tag": filters.get("tag") or "all",
            "period": filters.get("period") or "all",
        }
        return await self._request("GET", "/api/invoices", params=params)

    async def get_invoice(self, invoice_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/api/invoices/{invoice_id}")

    async def create_invoice(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/api/invoices", json=payload)

    async def update_invoice(self, invoice_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PATCH", f"/api/invoices/{invoice_id}", json=payload)

    async def add_tag(self, invoice_id: str, tag_id: str) -> Dict[str, Any]:
        payload = {"tagId": tag_id, "appliedByUserId": self.current_user_id}
        return await self._request("POST", f"/api/invoices/{invoice_id}/tags", json=payload)

    async def remove_tag(self, invoice_id: str, tag_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/api/invoices/{invoice_id}/tags/{tag_id}")

    # --- Messages ---

    async def list_messages(self, invoice_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/api/invoices/{invoice_id}/messages")

    async def create_message(self, invoice_id: str, body: str) -> Dict[str, Any]:
        payload = {"body": body, "fromUserId": self.current_user_id}
        return await self._request("POST", f"/api/invoices/{invoice_id}/messages", json=payload)
