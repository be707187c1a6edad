from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

from bookmate.config import AppConfig
from bookmate.errors import BookMateError, ImportParseError, NetworkError
from bookmate.library.models import ImportCandidate
from bookmate.search.providers import normalize_isbn, parse_payload

log = logging.getLogger(__name__)


@dataclass
class SearchResult:
    """Outcome of one search: candidates on success, otherwise an error."""

    query: str
    candidates: list[ImportCandidate] = field(default_factory=list)
    error: Optional[BookMateError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BookSearchClient:
    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def provider(self) -> str:
        return self._config.search_provider

    def _params(self, provider: str, term: str) -> dict[str, str | int]:
        if provider == "google_books":
            return {"q": term, "maxResults": self._config.search_max_results}
        return {"q": term, "limit": self._config.search_max_results}

    @staticmethod
    def _isbn_params(provider: str, isbn: str) -> dict[str, str | int]:
        if provider == "google_books":
            return {"q": f"isbn:{isbn}", "maxResults": 1}
        return {"isbn": isbn, "limit": 1}

    async def fetch(self, term: str, provider: Optional[str] = None) -> list[ImportCandidate]:
        """Fetch and parse one page of results. Raises NetworkError/ImportParseError."""
        provider = provider or self.provider
        return await self._get(provider, self._params(provider, term))

    async def fetch_isbn(
        self, isbn: str, provider: Optional[str] = None
    ) -> Optional[ImportCandidate]:
        """Look up a single edition by ISBN. Returns None when nothing matches.

        Raises ValueError for a malformed ISBN, otherwise as ``fetch``.
        """
        provider = provider or self.provider
        code = normalize_isbn(isbn)
        candidates = await self._get(provider, self._isbn_params(provider, code))
        return candidates[0] if candidates else None

    async def _get(
        self, provider: str, params: dict[str, str | int]
    ) -> list[ImportCandidate]:
        url = self._config.provider_url(provider)

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.search_timeout)

        try:
            resp = await self._client.get(url, params=params)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as e:
            log.error("Search request timed out: %s %s", provider, url)
            raise NetworkError(
                f"Search timed out after {self._config.search_timeout}s"
            ) from e
        except httpx.HTTPStatusError as e:
            log.error(
                "Search API error: %s %s",
                e.response.status_code,
                e.response.text[:200],
            )
            raise NetworkError(f"Search failed: HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            log.error(
                "Search request error: %s %s -> %s",
                type(e).__name__,
                e.request.url,
                e,
            )
            raise NetworkError(f"Search failed: {type(e).__name__} ({url})") from e
        except ValueError as e:
            log.error("Undecodable search response from %s: %s", provider, e)
            raise ImportParseError("Search response is not valid JSON") from e

        return parse_payload(provider, data)

    async def search(self, term: str, provider: Optional[str] = None) -> SearchResult:
        """Like fetch, but resolves to a SearchResult instead of raising."""
        try:
            candidates = await self.fetch(term, provider)
        except (NetworkError, ImportParseError) as e:
            return SearchResult(query=term, error=e)
        log.debug("Search %r returned %d candidates", term, len(candidates))
        return SearchResult(query=term, candidates=candidates)

    async def search_isbn(self, isbn: str, provider: Optional[str] = None) -> SearchResult:
        """ISBN lookup resolved to a SearchResult with at most one candidate."""
        try:
            candidate = await self.fetch_isbn(isbn, provider)
        except (NetworkError, ImportParseError) as e:
            return SearchResult(query=isbn, error=e)
        return SearchResult(query=isbn, candidates=[candidate] if candidate else [])

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


class SearchController:
    """Debounces queries and drops responses superseded by a newer query.

    Each call to ``submit`` takes a new sequence token. After the debounce
    delay, and again once the response arrives, the token is compared with
    the latest one; any mismatch means the user has typed or cleared since,
    and the result is discarded.
    """

    def __init__(
        self,
        client: BookSearchClient,
        debounce: float = 0.5,
        on_results: Optional[Callable[[SearchResult], None]] = None,
    ) -> None:
        self._client = client
        self._debounce = debounce
        self._on_results = on_results
        self._seq = 0
        self.results: Optional[SearchResult] = None

    @property
    def sequence(self) -> int:
        return self._seq

    def clear(self) -> None:
        """Forget current results and abandon any in-flight search."""
        self._seq += 1
        self.results = None

    async def submit(self, query: str) -> Optional[SearchResult]:
        """Run a debounced search. Returns None if superseded or cleared."""
        query = query.strip()
        if not query:
            self.clear()
            return None

        self._seq += 1
        token = self._seq

        await asyncio.sleep(self._debounce)
        if token != self._seq:
            return None

        result = await self._client.search(query)
        if token != self._seq:
            log.debug("Discarding stale results for %r", query)
            return None

        self.results = result
        if self._on_results:
            self._on_results(result)
        return result
