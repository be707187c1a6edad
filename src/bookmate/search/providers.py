"""Map Google Books and OpenLibrary search payloads onto import candidates."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Optional, Union

from bookmate.errors import ImportParseError
from bookmate.library.models import (
    UNKNOWN_AUTHOR,
    Book,
    ImageLinks,
    ImportCandidate,
    ReadingStatus,
    secure_url,
)

log = logging.getLogger(__name__)

OPEN_LIBRARY_COVER_URL = "https://covers.openlibrary.org/b/id/{cover_id}-M.jpg"

Payload = Union[dict, str, bytes]


def _decode(payload: Payload) -> dict:
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (ValueError, UnicodeDecodeError) as e:
            raise ImportParseError(f"Undecodable search payload: {e}") from e
    if not isinstance(payload, dict):
        raise ImportParseError(
            f"Expected a JSON object, got {type(payload).__name__}"
        )
    return payload


def _records(payload: dict, key: str) -> list:
    records = payload.get(key)
    if records is None:
        return []
    if not isinstance(records, list):
        raise ImportParseError(f"'{key}' is not a list")
    return records


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if isinstance(v, (str, int)) and str(v).strip()]


def _title(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value >= 0 else None


def _first(value: Any) -> Optional[str]:
    items = _str_list(value)
    return items[0] if items else None


def _google_isbn(identifiers: Any) -> Optional[str]:
    if not isinstance(identifiers, list):
        return None
    for ident in identifiers:
        if not isinstance(ident, dict):
            continue
        if "ISBN" in str(ident.get("type", "")) and ident.get("identifier"):
            return str(ident["identifier"])
    return None


def parse_google_books(payload: Payload) -> list[ImportCandidate]:
    """Parse a ``/books/v1/volumes`` response."""
    data = _decode(payload)
    candidates: list[ImportCandidate] = []
    for item in _records(data, "items"):
        if not isinstance(item, dict) or not isinstance(item.get("volumeInfo"), dict):
            raise ImportParseError("Google Books item without a volumeInfo object")
        info = item["volumeInfo"]
        title = _title(info.get("title"))
        if title is None:
            log.debug("Skipping Google Books item %s without title", item.get("id"))
            continue

        links = info.get("imageLinks")
        thumbnail = links.get("thumbnail") if isinstance(links, dict) else None
        categories = _str_list(info.get("categories"))

        candidates.append(
            ImportCandidate(
                title=title,
                authors=_str_list(info.get("authors")) or [UNKNOWN_AUTHOR],
                isbn=_google_isbn(info.get("industryIdentifiers")),
                cover_url=secure_url(thumbnail) if isinstance(thumbnail, str) else None,
                page_count=_int(info.get("pageCount")),
                categories=categories or None,
                publisher=_text(info.get("publisher")),
                published_date=_text(info.get("publishedDate")),
                language=_text(info.get("language")),
                description=_text(info.get("description")),
            )
        )
    return candidates


def parse_open_library(payload: Payload) -> list[ImportCandidate]:
    """Parse a ``/search.json`` response."""
    data = _decode(payload)
    candidates: list[ImportCandidate] = []
    for doc in _records(data, "docs"):
        if not isinstance(doc, dict):
            raise ImportParseError("OpenLibrary doc is not an object")
        title = _title(doc.get("title"))
        if title is None:
            log.debug("Skipping OpenLibrary doc %s without title", doc.get("key"))
            continue

        cover_id = _int(doc.get("cover_i"))
        year = doc.get("first_publish_year")
        categories = _str_list(doc.get("subject"))

        candidates.append(
            ImportCandidate(
                title=title,
                authors=_str_list(doc.get("author_name")) or [UNKNOWN_AUTHOR],
                isbn=_first(doc.get("isbn")),
                cover_url=(
                    OPEN_LIBRARY_COVER_URL.format(cover_id=cover_id)
                    if cover_id is not None
                    else None
                ),
                page_count=_int(doc.get("number_of_pages_median")),
                categories=categories or None,
                publisher=_first(doc.get("publisher")),
                published_date=str(year) if isinstance(year, (int, str)) and year != "" else None,
                language=_first(doc.get("language")),
            )
        )
    return candidates


PARSERS: dict[str, Callable[[Payload], list[ImportCandidate]]] = {
    "google_books": parse_google_books,
    "open_library": parse_open_library,
}


def parse_payload(provider: str, payload: Payload) -> list[ImportCandidate]:
    parser = PARSERS.get(provider)
    if parser is None:
        raise ValueError(
            f"Unknown search provider: {provider}. Supported: {', '.join(PARSERS)}"
        )
    return parser(payload)


def normalize_isbn(isbn: str) -> str:
    """Strip hyphens and spaces; raise ValueError unless ISBN-10 or ISBN-13."""
    code = isbn.replace("-", "").replace(" ", "").upper()
    if len(code) == 13 and code.isdigit():
        return code
    if len(code) == 10 and code[:9].isdigit() and (code[9].isdigit() or code[9] == "X"):
        return code
    raise ValueError(f"Not an ISBN: {isbn!r}")


def to_book(candidate: ImportCandidate, now: Optional[float] = None) -> Book:
    """Turn a candidate into a fresh, not-yet-started library book."""
    return Book(
        id=Book.make_id(),
        title=candidate.title,
        authors=list(candidate.authors),
        isbn=candidate.isbn,
        publisher=candidate.publisher,
        published_date=candidate.published_date,
        language=candidate.language,
        categories=list(candidate.categories or []),
        description=candidate.description,
        page_count=candidate.page_count,
        image_links=ImageLinks(thumbnail=candidate.cover_url),
        status=ReadingStatus.NOT_STARTED,
        current_page=0,
        date_added=now if now is not None else time.time(),
    )
