"""Unsplash service for article header images."""

import logging

import httpx

from portal_assistant.core.config import get_settings

logger = logging.getLogger(__name__)

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"


class ImageSearch:
    """Finds one landscape photo for a search query."""

    def __init__(self, access_key: str | None = None, timeout: float = 10.0):
        self.access_key = access_key if access_key is not None else get_settings().UNSPLASH_ACCESS_KEY
        self.timeout = timeout

    async def search(self, query: str) -> str | None:
        """
        Search Unsplash and return the first result's regular-size URL.

        Raises:
            ValueError: If UNSPLASH_ACCESS_KEY not configured
            httpx.HTTPStatusError: If the API request fails
        """
        if not self.access_key:
            raise ValueError("UNSPLASH_ACCESS_KEY not configured")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                UNSPLASH_SEARCH_URL,
                params={"query": query, "per_page": 1, "orientation": "landscape"},
                headers={"Authorization": f"Client-ID {self.access_key}", "Accept-Version": "v1"},
            )
            response.raise_for_status()

        results = response.json().get("results") or []
        if not results:
            logger.info(f"Unsplash search '{query[:50]}': no results")
            return None
        return (results[0].get("urls") or {}).get("regular")

    async def find_one(self, query: str) -> str | None:
        """Search with error handling. Returns None on any failure."""
        if not query or not query.strip():
            return None
        try:
            return await self.search(query.strip())
        except ValueError as e:
            logger.warning(f"Unsplash not configured: {e}")
            return None
        except httpx.HTTPStatusError as e:
            logger.warning(f"Unsplash HTTP error for '{query[:50]}': {e.response.status_code}")
            return None
        except httpx.TimeoutException:
            logger.warning(f"Unsplash timeout for '{query[:50]}'")
            return None
        except Exception as e:
            logger.warning(f"Unsplash error for '{query[:50]}': {e}")
            return None
