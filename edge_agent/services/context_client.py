"""
Client for the context-enrichment service.

Requests are JSON bodies of the form {"method": ..., "params": {...}} POSTed to
a single endpoint; responses carry either "result" or "error". Every failure is
raised as ContextSearchError so the orchestrator can decide to continue without
context.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from edge_agent.core.errors import ContextSearchError

logger = logging.getLogger("context_client")

API_KEY_HEADER = "CONTEXT7_API_KEY"


class ContextSearchClient:
    """
    Async client for search/store calls. Without an API key the client is
    disabled: searches return nothing and stores are skipped.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url
        self._api_key = api_key
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def _call(self, method: str, params: Dict[str, Any]) -> Any:
        logger.debug("Calling context service method=%s", method)
        try:
            response = await self._client.post(
                self._base_url,
                json={"method": method, "params": params},
                headers={API_KEY_HEADER: self._api_key or ""},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise ContextSearchError(
                f"Context service {method} failed with status {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ContextSearchError(f"Context service {method} failed: {exc}") from exc

        if not isinstance(data, dict):
            raise ContextSearchError(f"Context service {method} returned an unexpected payload")
        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise ContextSearchError(f"Context service {method} error: {message}")
        return data.get("result")

    async def search(self, query: str, limit: int = 3) -> List[str]:
        """
        Return the text content of up to `limit` results relevant to `query`.
        Results that are not objects with a non-empty "content" are skipped.
        """
        if not self.enabled:
            return []

        result = await self._call("search", {"query": query, "limit": limit, "filters": {}})
        if not isinstance(result, list):
            return []

        snippets: List[str] = []
        for item in result:
            if isinstance(item, dict) and isinstance(item.get("content"), str) and item["content"]:
                snippets.append(item["content"])
        return snippets[:limit]

    async def store(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Save a piece of conversation content for future searches."""
        if not self.enabled:
            return
        await self._call("store", {"content": content, "metadata": metadata or {}})

    async def aclose(self) -> None:
        await self._client.aclose()
