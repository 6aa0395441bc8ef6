from __future__ import annotations

import asyncio
from typing import Any
from urllib.parse import quote_plus

import httpx
from loguru import logger

from profile_scout.browser.session import BrowserSession
from profile_scout.config import Settings
from profile_scout.errors import ConfigurationError, SearchError
from profile_scout.models.extraction import SearchResultsPage
from profile_scout.models.research import SearchResult
from profile_scout.tools import web_utils

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"

# Result links that point back at the engine itself or its caches.
EXCLUDED_URL_MARKERS = (
    "google.com",
    "webcache.googleusercontent.com",
    "duckduckgo.com",
    "search.brave.com",
    "cached",
)


async def brave_search(query: str, *, api_key: str, max_results: int = 10) -> list[SearchResult]:
    """Execute a Brave web search and normalize results."""
    if not api_key:
        raise RuntimeError("BRAVE_API_KEY is not configured")

    params: dict[str, Any] = {"q": query, "count": max_results}
    async with httpx.AsyncClient(timeout=30.0) as client:
        response = await client.get(
            BRAVE_SEARCH_URL,
            params=params,
            headers={
                "Accept": "application/json",
                "X-Subscription-Token": api_key,
            },
        )
        response.raise_for_status()
        payload = response.json()

    mapped: list[SearchResult] = []
    for item in payload.get("web", {}).get("results", []):
        snippets = item.get("extra_snippets", []) or []
        description = (item.get("description", "") or "").strip()
        mapped.append(
            SearchResult(
                url=item.get("url", ""),
                title=item.get("title", ""),
                snippet=description or " ".join(snippets).strip(),
            )
        )
    return mapped


async def browser_search(
    query: str,
    *,
    session: BrowserSession,
    search_url: str,
    max_results: int = 10,
) -> list[SearchResult]:
    """Load a search results page in the job's own session and extract the links."""
    await session.navigate(search_url.format(query=quote_plus(query)))
    await session.wait_for_quiescence()
    page = await session.extract(
        f"List the organic search results for '{query}' with their url, title and snippet.",
        SearchResultsPage,
    )
    return [
        SearchResult(url=item.url, title=item.title, snippet=item.snippet)
        for item in page.results[:max_results]
    ]


def _keep(result: SearchResult) -> bool:
    if not web_utils.is_valid_url(result.url):
        return False
    lowered = result.url.lower()
    return not any(marker in lowered for marker in EXCLUDED_URL_MARKERS)


async def search(
    query: str,
    *,
    settings: Settings,
    session: BrowserSession | None = None,
) -> list[SearchResult]:
    """Run one search with exponential backoff, then pause to respect rate limits."""
    provider = settings.search_provider.lower().strip()
    if provider not in ("brave", "browser"):
        raise ConfigurationError(f"Unsupported SEARCH_PROVIDER: {settings.search_provider}")
    if provider == "browser" and session is None:
        raise ConfigurationError("browser search requires a browser session")
    attempts = max(int(settings.search_retry_attempts), 1)
    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        try:
            if provider == "brave":
                results = await brave_search(
                    query,
                    api_key=settings.brave_api_key,
                    max_results=settings.search_results_per_query,
                )
            else:
                results = await browser_search(
                    query,
                    session=session,
                    search_url=settings.browser_search_url,
                    max_results=settings.search_results_per_query,
                )
        except Exception as exc:
            last_error = exc
            logger.warning(f"Search attempt {attempt}/{attempts} for '{query}' failed: {exc}")
            if attempt < attempts:
                await asyncio.sleep(2**attempt)
            continue

        if settings.search_delay_seconds > 0:
            await asyncio.sleep(settings.search_delay_seconds)
        return [result for result in results if _keep(result)]

    raise SearchError(f"Search failed for '{query}': {last_error}") from last_error
