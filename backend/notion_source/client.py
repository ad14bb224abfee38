"""
Notion API Client

Async wrapper over the Notion REST endpoints this service reads:
- POST /databases/{id}/query      (all pages of a database)
- GET  /pages/{id}                (one page with properties)
- GET  /blocks/{id}/children      (page body blocks)
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from config import Settings

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
MAX_PAGES = 20


class NotionClientError(RuntimeError):
    """Notion unreachable or returned something unusable."""


class NotionAuthError(NotionClientError):
    """Credentials rejected (401/403)."""


class NotionNotFoundError(NotionClientError):
    """Page, block or database does not exist or is not shared (404)."""


class NotionAPIError(NotionClientError):
    """Any other error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotionClient:
    """
    Thin async Notion client.

    The httpx client can be injected; tests pass one backed by
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self._owns_client = http_client is None
        self.http_client = http_client if http_client is not None else httpx.AsyncClient(
            timeout=settings.notion_timeout_seconds,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    def _build_headers(self) -> Dict[str, str]:
        self.settings.require_notion()
        return {
            "Authorization": f"Bearer {self.settings.notion_api_key}",
            "Notion-Version": self.settings.notion_api_version,
            "Content-Type": "application/json",
        }

    def _url(self, path: str) -> str:
        return f"{self.settings.notion_api_base_url.rstrip('/')}{path}"

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code == 401:
            raise NotionAuthError("Unauthorized. Check NOTION_API_KEY.")
        if response.status_code == 403:
            raise NotionAuthError("Forbidden. Check Notion integration permissions.")
        if response.status_code == 404:
            raise NotionNotFoundError("Notion object not found or not shared with the integration.")
        if response.status_code >= 400:
            logger.error(f"[Notion] API error {response.status_code}: {response.text[:300]}")
            raise NotionAPIError(
                f"Notion API error: {response.status_code}",
                status_code=response.status_code,
            )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = self._build_headers()
        try:
            response = await self.http_client.request(
                method, self._url(path), headers=headers, json=json, params=params
            )
        except httpx.RequestError as exc:
            raise NotionClientError(f"Failed to call Notion API: {exc}") from exc

        self._raise_for_status(response)

        try:
            data = response.json()
        except ValueError as exc:
            raise NotionAPIError("Notion API returned invalid JSON.") from exc
        if not isinstance(data, dict):
            raise NotionAPIError("Unexpected Notion API response format.")
        return data

    async def _paginate(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        cursor: Optional[str] = None

        for _ in range(MAX_PAGES):
            if method == "POST":
                payload = dict(body or {}, page_size=PAGE_SIZE)
                if cursor:
                    payload["start_cursor"] = cursor
                data = await self._request("POST", path, json=payload)
            else:
                params: Dict[str, Any] = {"page_size": PAGE_SIZE}
                if cursor:
                    params["start_cursor"] = cursor
                data = await self._request("GET", path, params=params)

            page = data.get("results", [])
            if not isinstance(page, list):
                raise NotionAPIError("Unexpected Notion API response format: 'results' is not a list.")
            results.extend(page)

            cursor = data.get("next_cursor")
            if not data.get("has_more") or not cursor:
                break
        else:
            logger.warning(f"[Notion] Stopped paginating {path} after {MAX_PAGES} pages")

        return results

    async def query_database(self, database_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        All pages of the configured database (raw Notion page objects).
        """
        self.settings.require_notion()
        database_id = database_id or self.settings.notion_database_id
        pages = await self._paginate("POST", f"/databases/{database_id}/query", body={})
        logger.info(f"[Notion] Database query returned {len(pages)} pages")
        return pages

    async def get_page(self, page_id: str) -> Dict[str, Any]:
        """One page object including its properties."""
        return await self._request("GET", f"/pages/{page_id}")

    async def get_block_children(self, block_id: str) -> List[Dict[str, Any]]:
        """Top-level blocks in a page body."""
        return await self._paginate("GET", f"/blocks/{block_id}/children")
