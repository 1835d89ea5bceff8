"""
Web Search Tool
===============

Supplementary web context from the Firecrawl search API.

The knowledge base is small and curated; web results only fill gaps. They
are folded into the context block as [WEB1], below the knowledge base.

Failure is never raised: no key, timeout, non-2xx status or an unexpected
body all yield "" and a log line.
"""

import logging
from typing import Optional

import httpx

from campus_rag.config import Settings, get_settings

logger = logging.getLogger(__name__)

FIRECRAWL_SEARCH_URL = "https://api.firecrawl.dev/v0/search"


class WebSearchClient:
    """
    Firecrawl search client.

    Usage:
        client = WebSearchClient()
        snippets = await client.search("图书馆 开放时间")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            settings: Override settings
            client: Shared HTTP client (a short-lived one is opened per call otherwise)
        """
        self._settings = settings or get_settings()
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._settings.has_web_search

    async def search(self, query: str) -> str:
        """
        Search the web and return markdown snippets joined by blank lines.

        Returns "" when search is not configured or fails.
        """
        if not self.is_configured or not query or not query.strip():
            return ""

        payload = {
            "query": query,
            "limit": self._settings.web_search_limit,
            "scrapeOptions": {"formats": ["markdown"]},
        }
        headers = {
            "Authorization": f"Bearer {self._settings.firecrawl_api_key}",
            "Content-Type": "application/json",
        }

        try:
            if self._client is not None:
                response = await self._client.post(
                    FIRECRAWL_SEARCH_URL,
                    json=payload,
                    headers=headers,
                    timeout=self._settings.web_search_timeout_seconds,
                )
            else:
                async with httpx.AsyncClient(timeout=self._settings.web_search_timeout_seconds) as client:
                    response = await client.post(FIRECRAWL_SEARCH_URL, json=payload, headers=headers)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Firecrawl search error: {e}")
            return ""

        items = body.get("data") if isinstance(body, dict) else None
        if not isinstance(items, list):
            logger.warning("Firecrawl response has no data list")
            return ""

        snippets = [
            item["markdown"]
            for item in items
            if isinstance(item, dict) and isinstance(item.get("markdown"), str) and item["markdown"]
        ]

        logger.info(f"Web search returned {len(snippets)} snippets")
        return "\n\n".join(snippets)
