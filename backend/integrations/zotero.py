"""
Zotero Web API Integration for the vault importer.

Read-only transport over the Zotero Web API v3:
- Search library items by free-text term
- Fetch item detail with rendered citation/bibliography
- Fetch child items (notes, attachments)
- Fetch collections by key

Records are returned as raw API JSON; normalization happens in
importers.record_normalizer.

API: https://www.zotero.org/support/dev/web_api/v3/start
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx

from exceptions import ZoteroApiError

logger = logging.getLogger(__name__)


@dataclass
class CiteKeyExport:
    """Cite key entry for a library item."""

    library_id: int
    citekey: str
    title: str


class ZoteroClient:
    """
    Zotero API client used by the import pipeline.

    Features:
    - User and group library addressing
    - Retry with exponential backoff and Retry-After handling
    - 404 mapped to None for single-record lookups
    """

    BASE_URL = "https://api.zotero.org"
    RAW_INCLUDE = "data,citation,bib"

    def __init__(
        self,
        api_key: str,
        user_id: Optional[str] = None,
        group_id: Optional[str] = None,
        library_type: str = "user",
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: Zotero API key (from zotero.org/settings/keys)
            user_id: User library ID (numeric user ID)
            group_id: Group library ID
            library_type: "user" or "group"; selects which ID addresses the library
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts
            transport: Optional httpx transport (tests)
        """
        self.user_id = user_id
        self.group_id = group_id
        self.timeout = timeout
        self.max_retries = max_retries

        if library_type == "group" and group_id:
            self.library_prefix = f"/groups/{group_id}"
            self.library_type = "group"
        elif user_id:
            self.library_prefix = f"/users/{user_id}"
            self.library_type = "user"
        else:
            self.library_prefix = ""
            self.library_type = "unknown"

        headers = {
            "Zotero-API-Key": api_key,
            "Zotero-API-Version": "3",
            "Accept": "application/json",
        }

        client_kwargs: Dict[str, Any] = {"timeout": timeout, "headers": headers}
        if transport is not None:
            client_kwargs["transport"] = transport
        self._client = httpx.AsyncClient(**client_kwargs)

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "ZoteroClient":
        """Build a client for the library configured in settings."""
        return cls(
            api_key=settings.zotero_api_key,
            user_id=settings.zotero_user_id or None,
            group_id=settings.zotero_group_id or None,
            library_type=settings.zotero_library_type,
            **kwargs,
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs
    ) -> Tuple[Any, Dict[str, str]]:
        """
        Make an API request with retry logic.

        Returns:
            Tuple of (response_data, response_headers)
        """
        url = f"{self.BASE_URL}{endpoint}"

        for attempt in range(self.max_retries):
            try:
                response = await self._client.request(method, url, **kwargs)

                if response.status_code == 429:
                    retry_after = self._retry_after_seconds(
                        response.headers.get("Retry-After"), 2 ** attempt
                    )
                    logger.warning(f"Rate limited on {endpoint}, waiting {retry_after}s")
                    await asyncio.sleep(retry_after)
                    continue

                response.raise_for_status()
                return response.json() if response.content else {}, dict(response.headers)

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status < 500 or attempt == self.max_retries - 1:
                    if status >= 500:
                        logger.error(f"HTTP error after {self.max_retries} attempts: {e}")
                    raise
                await asyncio.sleep(2 ** attempt)

            except httpx.RequestError as e:
                if attempt == self.max_retries - 1:
                    logger.error(f"Request error after {self.max_retries} attempts: {e}")
                    raise ZoteroApiError(str(e), endpoint=endpoint) from e
                await asyncio.sleep(2 ** attempt)

        raise ZoteroApiError(
            f"Gave up on {endpoint} after {self.max_retries} attempts",
            status_code=429,
            endpoint=endpoint,
        )

    @staticmethod
    def _retry_after_seconds(value: Optional[str], fallback: float) -> float:
        """
        Seconds to wait from a Retry-After header.

        Accepts delta-seconds or an HTTP date; a missing header waits 60s,
        an unparsable one falls back to the backoff delay.
        """
        if value is None:
            return 60
        value = value.strip()
        if value.isdigit():
            return int(value)
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            logger.warning(f"Unparsable Retry-After header: {value!r}")
            return fallback
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())

    @staticmethod
    def _as_list(data: Any) -> List[Dict[str, Any]]:
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and data:
            return [data]
        return []

    # ==================== Items ====================

    async def search_items(
        self,
        term: str,
        limit: int = 25,
        style: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Search library items.

        Args:
            term: Free-text query (title, creator, year)
            limit: Maximum hits (the API caps this at 100)
            style: CSL style for the rendered citation/bibliography

        Returns:
            Raw search hits
        """
        params: Dict[str, Any] = {
            "q": term,
            "limit": min(limit, 100),
            "include": self.RAW_INCLUDE,
        }
        if style:
            params["style"] = style

        data, _ = await self._request("GET", f"{self.library_prefix}/items", params=params)
        return self._as_list(data)

    async def get_item(
        self,
        item_key: str,
        style: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Get a specific item with citation and bibliography.

        Args:
            item_key: Item key
            style: CSL style

        Returns:
            Raw item record or None if not found
        """
        endpoint = f"{self.library_prefix}/items/{item_key}"
        params: Dict[str, Any] = {"include": self.RAW_INCLUDE}
        if style:
            params["style"] = style

        try:
            data, _ = await self._request("GET", endpoint, params=params)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        return data or None

    async def get_item_children(
        self,
        item_key: str,
    ) -> List[Dict[str, Any]]:
        """
        Get child items (notes and attachments) of an item.

        Args:
            item_key: Parent item key

        Returns:
            Raw child records
        """
        endpoint = f"{self.library_prefix}/items/{item_key}/children"
        data, _ = await self._request("GET", endpoint, params={"include": "data"})
        return self._as_list(data)

    async def get_cite_key_exports(self) -> List[CiteKeyExport]:
        """
        List cite keys for the first page of library items.

        Items without both a cite key and a title are skipped.
        """
        data, _ = await self._request(
            "GET",
            f"{self.library_prefix}/items",
            params={"q": "", "limit": 100, "include": "data"},
        )

        exports = []
        for item in self._as_list(data):
            item_data = item.get("data") or {}
            citekey = item_data.get("citationKey") or item_data.get("citation-key")
            title = item_data.get("title")
            if not citekey or not title:
                continue
            exports.append(CiteKeyExport(library_id=0, citekey=citekey, title=title))

        return exports

    async def validate_connection(self, style: Optional[str] = None) -> bool:
        """Check that the key can read the configured library."""
        params: Dict[str, Any] = {"limit": 1, "include": "data"}
        if style:
            params["style"] = style
        try:
            await self._request("GET", f"{self.library_prefix}/items", params=params)
            return True
        except (httpx.HTTPError, ZoteroApiError) as e:
            logger.error(f"Zotero connection check failed: {e}")
            return False

    # ==================== Collections ====================

    async def get_collection(
        self,
        collection_key: str,
    ) -> Optional[Dict[str, Any]]:
        """
        Get a specific collection.

        Args:
            collection_key: Collection key

        Returns:
            Raw collection record or None if not found
        """
        endpoint = f"{self.library_prefix}/collections/{collection_key}"

        try:
            data, _ = await self._request("GET", endpoint)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        return data or None
