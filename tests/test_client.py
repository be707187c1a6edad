"""Tests for the search client and debounced controller."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from bookmate.config import AppConfig
from bookmate.errors import ImportParseError, NetworkError
from bookmate.library.models import ImportCandidate
from bookmate.search.client import BookSearchClient, SearchController, SearchResult

DUNE = {"items": [{"volumeInfo": {"title": "Dune", "authors": ["Frank Herbert"]}}]}


def _response(payload) -> Mock:
    resp = Mock()
    resp.status_code = 200
    resp.raise_for_status = Mock(return_value=None)
    resp.json = Mock(return_value=payload)
    return resp


@pytest.fixture
def client(config: AppConfig) -> BookSearchClient:
    return BookSearchClient(config)


class TestBookSearchClient:
    @pytest.mark.asyncio
    async def test_google_books_request(self, client: BookSearchClient):
        with patch(
            "httpx.AsyncClient.get", new=AsyncMock(return_value=_response(DUNE))
        ) as get:
            result = await client.search("dune")
        assert result.ok
        assert [c.title for c in result.candidates] == ["Dune"]
        args, kwargs = get.call_args
        assert args[0] == "https://www.googleapis.com/books/v1/volumes"
        assert kwargs["params"] == {"q": "dune", "maxResults": 20}
        await client.close()

    @pytest.mark.asyncio
    async def test_open_library_request(self, client: BookSearchClient):
        payload = {"docs": [{"title": "1984", "cover_i": 7}]}
        with patch(
            "httpx.AsyncClient.get", new=AsyncMock(return_value=_response(payload))
        ) as get:
            result = await client.search("1984", provider="open_library")
        assert result.candidates[0].cover_url == "https://covers.openlibrary.org/b/id/7-M.jpg"
        args, kwargs = get.call_args
        assert args[0] == "https://openlibrary.org/search.json"
        assert kwargs["params"] == {"q": "1984", "limit": 20}
        await client.close()

    @pytest.mark.asyncio
    async def test_isbn_google_books(self, client: BookSearchClient):
        with patch(
            "httpx.AsyncClient.get", new=AsyncMock(return_value=_response(DUNE))
        ) as get:
            result = await client.search_isbn("978-0-441-01359-3")
        assert [c.title for c in result.candidates] == ["Dune"]
        _, kwargs = get.call_args
        assert kwargs["params"] == {"q": "isbn:9780441013593", "maxResults": 1}
        await client.close()

    @pytest.mark.asyncio
    async def test_isbn_open_library(self, client: BookSearchClient):
        payload = {"docs": [{"title": "1984"}, {"title": "Animal Farm"}]}
        with patch(
            "httpx.AsyncClient.get", new=AsyncMock(return_value=_response(payload))
        ) as get:
            candidate = await client.fetch_isbn("0451524934", provider="open_library")
        assert candidate.title == "1984"
        args, kwargs = get.call_args
        assert args[0] == "https://openlibrary.org/search.json"
        assert kwargs["params"] == {"isbn": "0451524934", "limit": 1}
        await client.close()

    @pytest.mark.asyncio
    async def test_isbn_not_found(self, client: BookSearchClient):
        with patch(
            "httpx.AsyncClient.get", new=AsyncMock(return_value=_response({"totalItems": 0}))
        ):
            assert await client.fetch_isbn("9780441013593") is None
            result = await client.search_isbn("9780441013593")
        assert result.ok
        assert result.candidates == []
        await client.close()

    @pytest.mark.asyncio
    async def test_isbn_malformed(self, client: BookSearchClient):
        with patch("httpx.AsyncClient.get", new=AsyncMock()) as get:
            with pytest.raises(ValueError):
                await client.search_isbn("not-an-isbn")
        get.assert_not_called()

    @pytest.mark.asyncio
    async def test_isbn_timeout(self, client: BookSearchClient):
        with patch(
            "httpx.AsyncClient.get",
            new=AsyncMock(side_effect=httpx.ReadTimeout("slow")),
        ):
            result = await client.search_isbn("9780441013593")
        assert isinstance(result.error, NetworkError)
        await client.close()

    @pytest.mark.asyncio
    async def test_empty_results_not_error(self, client: BookSearchClient):
        with patch(
            "httpx.AsyncClient.get",
            new=AsyncMock(return_value=_response({"totalItems": 0})),
        ):
            result = await client.search("zzzz")
        assert result.ok
        assert result.candidates == []
        await client.close()

    @pytest.mark.asyncio
    async def test_timeout_becomes_network_error(self, client: BookSearchClient):
        with patch(
            "httpx.AsyncClient.get",
            new=AsyncMock(side_effect=httpx.ReadTimeout("slow")),
        ):
            result = await client.search("dune")
        assert not result.ok
        assert isinstance(result.error, NetworkError)
        await client.close()

    @pytest.mark.asyncio
    async def test_http_status_error(self, client: BookSearchClient):
        request = httpx.Request("GET", "https://www.googleapis.com/books/v1/volumes")
        response = httpx.Response(503, request=request, text="unavailable")
        resp = _response(None)
        resp.raise_for_status = Mock(
            side_effect=httpx.HTTPStatusError("503", request=request, response=response)
        )
        with patch("httpx.AsyncClient.get", new=AsyncMock(return_value=resp)):
            with pytest.raises(NetworkError, match="HTTP 503"):
                await client.fetch("dune")
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_error(self, client: BookSearchClient):
        request = httpx.Request("GET", "https://www.googleapis.com/books/v1/volumes")
        with patch(
            "httpx.AsyncClient.get",
            new=AsyncMock(side_effect=httpx.ConnectError("refused", request=request)),
        ):
            result = await client.search("dune")
        assert isinstance(result.error, NetworkError)
        await client.close()

    @pytest.mark.asyncio
    async def test_invalid_json(self, client: BookSearchClient):
        resp = _response(None)
        resp.json = Mock(side_effect=ValueError("Expecting value"))
        with patch("httpx.AsyncClient.get", new=AsyncMock(return_value=resp)):
            result = await client.search("dune")
        assert isinstance(result.error, ImportParseError)
        await client.close()

    @pytest.mark.asyncio
    async def test_malformed_payload(self, client: BookSearchClient):
        with patch(
            "httpx.AsyncClient.get",
            new=AsyncMock(return_value=_response({"items": {"bad": 1}})),
        ):
            result = await client.search("dune")
        assert isinstance(result.error, ImportParseError)
        await client.close()

    @pytest.mark.asyncio
    async def test_close_idempotent(self, client: BookSearchClient):
        await client.close()
        await client.close()


class _FakeClient:
    """Search client whose responses complete when the test says so."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.pending: dict[str, asyncio.Future] = {}

    async def search(self, term: str) -> SearchResult:
        self.calls.append(term)
        fut = asyncio.get_running_loop().create_future()
        self.pending[term] = fut
        return await fut

    def complete(self, term: str) -> None:
        self.pending[term].set_result(
            SearchResult(query=term, candidates=[ImportCandidate(title=term)])
        )


class TestSearchController:
    @pytest.mark.asyncio
    async def test_debounce_only_last_query_sent(self):
        fake = _FakeClient()
        controller = SearchController(fake, debounce=0.05)
        first = asyncio.create_task(controller.submit("du"))
        await asyncio.sleep(0.01)
        second = asyncio.create_task(controller.submit("dune"))
        await asyncio.sleep(0.1)
        fake.complete("dune")
        assert await first is None
        result = await second
        assert fake.calls == ["dune"]
        assert result.candidates[0].title == "dune"
        assert controller.results is result

    @pytest.mark.asyncio
    async def test_stale_response_discarded(self):
        fake = _FakeClient()
        received: list[SearchResult] = []
        controller = SearchController(fake, debounce=0, on_results=received.append)
        old = asyncio.create_task(controller.submit("old"))
        await asyncio.sleep(0.01)
        new = asyncio.create_task(controller.submit("new"))
        await asyncio.sleep(0.01)
        fake.complete("new")
        fake.complete("old")
        assert await new is not None
        assert await old is None
        assert [r.query for r in received] == ["new"]
        assert controller.results.query == "new"

    @pytest.mark.asyncio
    async def test_clear_abandons_in_flight(self):
        fake = _FakeClient()
        controller = SearchController(fake, debounce=0)
        task = asyncio.create_task(controller.submit("dune"))
        await asyncio.sleep(0.01)
        assert await controller.submit("   ") is None
        fake.complete("dune")
        assert await task is None
        assert controller.results is None

    @pytest.mark.asyncio
    async def test_sequence_increases(self):
        fake = _FakeClient()
        controller = SearchController(fake, debounce=0)
        before = controller.sequence
        controller.clear()
        assert controller.sequence == before + 1
