"""Authoritative in-memory library and wishlist, with optional write-through."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional

from bookmate.errors import BookNotFoundError, CollectionNotFoundError, DuplicateBookError
from bookmate.library.database import LIBRARY, WISHLIST, Database
from bookmate.library.models import (
    Book,
    BookCollection,
    CollectionStatistics,
    PageProgress,
    ReadingStatus,
)
from bookmate.library.progress import clamp_page, derive_status, page_from_percentage
from bookmate.library.statistics import build_collection_statistics

log = logging.getLogger(__name__)


class BookFilter(str, Enum):
    ALL = "all"
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"
    FAVORITE = "favorite"
    HAS_NOTES = "has_notes"
    SHARED = "shared"


class SortKey(str, Enum):
    TITLE = "title"
    AUTHOR = "author"
    DATE_ADDED = "date_added"
    LAST_READ = "last_read"
    PROGRESS = "progress"
    RATING = "rating"


@dataclass(frozen=True)
class LibraryEvent:
    kind: str  # added, removed, updated, wishlisted, unwishlisted, moved
    book_id: str


_FILTERS: dict[BookFilter, Callable[[Book], bool]] = {
    BookFilter.ALL: lambda b: True,
    BookFilter.NOT_STARTED: lambda b: b.status == ReadingStatus.NOT_STARTED,
    BookFilter.IN_PROGRESS: lambda b: b.status == ReadingStatus.IN_PROGRESS,
    BookFilter.FINISHED: lambda b: b.status == ReadingStatus.FINISHED,
    BookFilter.FAVORITE: lambda b: b.is_favorite,
    BookFilter.HAS_NOTES: lambda b: bool(b.notes and b.notes.strip()),
    BookFilter.SHARED: lambda b: bool(b.recommended_by),
}

_SORT_KEYS: dict[SortKey, Callable[[Book], Any]] = {
    SortKey.TITLE: lambda b: b.title.casefold(),
    SortKey.AUTHOR: lambda b: b.authors_text.casefold(),
    SortKey.DATE_ADDED: lambda b: b.date_added,
    SortKey.LAST_READ: lambda b: b.last_read_at,
    SortKey.PROGRESS: lambda b: b.progress_percentage,
    SortKey.RATING: lambda b: b.rating,
}


def _status_fields(book: Book, status: ReadingStatus, now: float) -> dict[str, Any]:
    """Timestamp fields implied by moving ``book`` into ``status``."""
    if status == ReadingStatus.NOT_STARTED:
        return {"status": status, "started_at": None, "finished_at": None}
    started_at = book.started_at if book.started_at is not None else now
    if status == ReadingStatus.IN_PROGRESS:
        return {"status": status, "started_at": started_at, "finished_at": None}
    finished_at = book.finished_at if book.finished_at is not None else now
    return {"status": status, "started_at": started_at, "finished_at": finished_at}


def _validated(book: Book, now: float) -> Book:
    if book.page_count is not None and book.page_count < 0:
        raise ValueError(f"page_count must be >= 0, got {book.page_count}")
    if book.rating is not None and not 0 <= book.rating <= 5:
        raise ValueError(f"rating must be between 0 and 5, got {book.rating}")
    changes = _status_fields(book, book.status, now)
    page = clamp_page(book.current_page, book.page_count)
    if book.status == ReadingStatus.NOT_STARTED:
        page = 0
    elif book.status == ReadingStatus.FINISHED and book.page_count is not None:
        page = book.page_count
    return replace(book, current_page=page, **changes)


class LibraryStore:
    """CRUD over the user's library and wishlist plus derived views.

    Books handed out are never mutated in place: every change swaps in a new
    ``Book``, so anything returned by a query is a stable snapshot. When a
    ``Database`` is given, each change is written to it first and only then
    applied in memory.
    """

    def __init__(
        self,
        db: Optional[Database] = None,
        clock: Callable[[], float] = time.time,
        recently_added_limit: int = 10,
    ) -> None:
        self._db = db
        self._clock = clock
        self._recently_added_limit = recently_added_limit
        self._books: dict[str, Book] = {}
        self._wishlist: dict[str, Book] = {}
        self._collections: dict[str, BookCollection] = {}
        self._progress: list[PageProgress] = []
        self._listeners: list[Callable[[LibraryEvent], None]] = []
        if db is not None:
            self._books = {b.id: b for b in db.list_books(LIBRARY)}
            self._wishlist = {b.id: b for b in db.list_books(WISHLIST)}
            self._collections = {c.id: c for c in db.list_collections()}
            self._progress = db.list_page_progress()
            log.debug(
                "Loaded %d books, %d wishlist entries and %d collections",
                len(self._books),
                len(self._wishlist),
                len(self._collections),
            )

    # ── Observers ──────────────────────────────────────────

    def subscribe(self, callback: Callable[[LibraryEvent], None]) -> Callable[[], None]:
        """Register a callback for mutations. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _publish(self, kind: str, book_id: str) -> None:
        event = LibraryEvent(kind, book_id)
        for callback in list(self._listeners):
            callback(event)

    # ── Lookup ─────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._books)

    def __contains__(self, book_id: object) -> bool:
        return book_id in self._books

    def get_book(self, book_id: str) -> Optional[Book]:
        return self._books.get(book_id)

    def _require(self, book_id: str) -> Book:
        book = self._books.get(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        return book

    # ── Library mutations ──────────────────────────────────

    def add_book(self, book: Book) -> None:
        if book.id in self._books or book.id in self._wishlist:
            raise DuplicateBookError(book.id)
        now = self._clock()
        book = _validated(book, now)
        if self._db is not None:
            self._db.add_book(book, LIBRARY)
        self._books[book.id] = book
        self._record_pages(book.id, book.current_page, now)
        log.debug("Added book %s (%s)", book.id, book.title)
        self._publish("added", book.id)

    def remove_book(self, book_id: str) -> None:
        if book_id not in self._books:
            return
        if self._db is not None:
            self._db.remove_book(book_id)
        del self._books[book_id]
        # the database drops memberships by cascade
        for collection in list(self._collections.values()):
            if book_id in collection.book_ids:
                self._collections[collection.id] = replace(
                    collection,
                    book_ids=[i for i in collection.book_ids if i != book_id],
                )
        log.debug("Removed book %s", book_id)
        self._publish("removed", book_id)

    def _record_pages(self, book_id: str, pages: int, now: float) -> None:
        if pages == 0:
            return
        entry = PageProgress(book_id, now, pages)
        if self._db is not None:
            self._db.add_page_progress(entry)
        self._progress.append(entry)

    def _update(self, book: Book, **changes: Any) -> Book:
        updated = replace(book, **changes)
        if self._db is not None:
            self._db.save_book(updated)
        self._books[updated.id] = updated
        self._publish("updated", updated.id)
        return updated

    def update_progress(self, book_id: str, new_page: int, completed: bool = False) -> Book:
        book = self._require(book_id)
        now = self._clock()
        page = clamp_page(new_page, book.page_count)
        if completed:
            if book.page_count is not None:
                page = book.page_count
            status = ReadingStatus.FINISHED
        else:
            status = derive_status(page, book.page_count)
        log.debug("Progress for %s: page %d (%s)", book_id, page, status.value)
        updated = self._update(
            book,
            current_page=page,
            last_read_at=now,
            **_status_fields(book, status, now),
        )
        self._record_pages(book_id, page - book.current_page, now)
        return updated

    def update_progress_percentage(self, book_id: str, percentage: float) -> Book:
        book = self._require(book_id)
        if not book.page_count:
            raise ValueError(f"Book {book_id} has no page count")
        page = page_from_percentage(percentage, book.page_count)
        return self.update_progress(book_id, page)

    def update_status(self, book_id: str, status: ReadingStatus) -> Book:
        """Set the status explicitly, moving the page to match.

        Going back to IN_PROGRESS from the last page is a re-read: the page
        restarts at 0 with a fresh ``started_at``, so later progress derives
        IN_PROGRESS again instead of snapping back to FINISHED.
        """
        book = self._require(book_id)
        now = self._clock()
        changes = _status_fields(book, status, now)
        page = book.current_page
        rereading = (
            status == ReadingStatus.IN_PROGRESS
            and book.page_count is not None
            and book.page_count > 0
            and book.current_page >= book.page_count
        )
        if status == ReadingStatus.NOT_STARTED:
            page = 0
        elif status == ReadingStatus.FINISHED and book.page_count is not None:
            page = book.page_count
        elif rereading:
            page = 0
            changes["started_at"] = now
        updated = self._update(book, current_page=page, **changes)
        if not rereading:
            self._record_pages(book_id, page - book.current_page, now)
        return updated

    def update_notes(self, book_id: str, text: Optional[str]) -> Book:
        return self._update(self._require(book_id), notes=text)

    def update_rating(self, book_id: str, value: Optional[float]) -> Book:
        book = self._require(book_id)
        if value is not None and not 0 <= value <= 5:
            raise ValueError(f"rating must be between 0 and 5, got {value}")
        return self._update(book, rating=value)

    def toggle_favorite(self, book_id: str) -> Book:
        book = self._require(book_id)
        return self._update(book, is_favorite=not book.is_favorite)

    def recommend(self, book_id: str, by: str, notes: Optional[str] = None) -> Book:
        """Record that a reading partner recommended this book."""
        return self._update(
            self._require(book_id),
            recommended_by=by,
            recommended_at=self._clock(),
            partner_notes=notes,
        )

    def add_reading_time(self, book_id: str, seconds: int) -> Book:
        if seconds < 0:
            raise ValueError(f"seconds must be >= 0, got {seconds}")
        book = self._require(book_id)
        return self._update(
            book, reading_time_seconds=book.reading_time_seconds + seconds
        )

    # ── Wishlist ───────────────────────────────────────────

    def add_to_wishlist(self, book: Book) -> None:
        if book.id in self._books or book.id in self._wishlist:
            raise DuplicateBookError(book.id)
        book = _validated(book, self._clock())
        if self._db is not None:
            self._db.add_book(book, WISHLIST)
        self._wishlist[book.id] = book
        self._publish("wishlisted", book.id)

    def remove_from_wishlist(self, book_id: str) -> None:
        if book_id not in self._wishlist:
            return
        if self._db is not None:
            self._db.remove_book(book_id)
        del self._wishlist[book_id]
        self._publish("unwishlisted", book_id)

    def move_wishlist_to_library(self, book_id: str) -> Book:
        book = self._wishlist.get(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        moved = replace(book, date_added=self._clock())
        if self._db is not None:
            self._db.move_book(moved, LIBRARY)
        del self._wishlist[book_id]
        self._books[book_id] = moved
        self._record_pages(book_id, moved.current_page, moved.date_added)
        log.debug("Moved %s from wishlist to library", book_id)
        self._publish("moved", book_id)
        return moved

    # ── Collections ────────────────────────────────────────

    @property
    def collections(self) -> list[BookCollection]:
        return list(self._collections.values())

    def get_collection(self, collection_id: str) -> Optional[BookCollection]:
        return self._collections.get(collection_id)

    def _require_collection(self, collection_id: str) -> BookCollection:
        collection = self._collections.get(collection_id)
        if collection is None:
            raise CollectionNotFoundError(collection_id)
        return collection

    def _save_collection(self, collection: BookCollection, **changes: Any) -> BookCollection:
        updated = replace(collection, modified_at=self._clock(), **changes)
        if self._db is not None:
            self._db.save_collection(updated)
        self._collections[updated.id] = updated
        return updated

    def create_collection(
        self,
        name: str,
        description: Optional[str] = None,
        sort: SortKey = SortKey.TITLE,
        descending: bool = False,
        filters: tuple[BookFilter, ...] = (),
    ) -> BookCollection:
        name = name.strip()
        if not name:
            raise ValueError("Collection name must not be empty")
        now = self._clock()
        collection = BookCollection(
            id=BookCollection.make_id(),
            name=name,
            description=description,
            sort_key=SortKey(sort).value,
            descending=descending,
            filters=[BookFilter(f).value for f in filters],
            created_at=now,
            modified_at=now,
        )
        if self._db is not None:
            self._db.save_collection(collection)
        self._collections[collection.id] = collection
        log.debug("Created collection %s (%s)", collection.id, name)
        return collection

    def update_collection(
        self,
        collection_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> BookCollection:
        """Rename or re-describe a collection; None leaves a field as is."""
        collection = self._require_collection(collection_id)
        changes: dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise ValueError("Collection name must not be empty")
            changes["name"] = name.strip()
        if description is not None:
            changes["description"] = description
        return self._save_collection(collection, **changes)

    def delete_collection(self, collection_id: str) -> None:
        if collection_id not in self._collections:
            return
        if self._db is not None:
            self._db.delete_collection(collection_id)
        del self._collections[collection_id]
        log.debug("Deleted collection %s", collection_id)

    def add_to_collection(self, collection_id: str, book_id: str) -> BookCollection:
        collection = self._require_collection(collection_id)
        self._require(book_id)
        if book_id in collection.book_ids:
            return collection
        return self._save_collection(
            collection, book_ids=[*collection.book_ids, book_id]
        )

    def remove_from_collection(self, collection_id: str, book_id: str) -> BookCollection:
        collection = self._require_collection(collection_id)
        if book_id not in collection.book_ids:
            return collection
        return self._save_collection(
            collection, book_ids=[i for i in collection.book_ids if i != book_id]
        )

    def set_collection_sort(
        self, collection_id: str, sort: SortKey, descending: bool = False
    ) -> BookCollection:
        return self._save_collection(
            self._require_collection(collection_id),
            sort_key=SortKey(sort).value,
            descending=descending,
        )

    def set_collection_filters(
        self, collection_id: str, filters: tuple[BookFilter, ...]
    ) -> BookCollection:
        values: list[str] = []
        for f in filters:
            value = BookFilter(f).value
            if value not in values:
                values.append(value)
        return self._save_collection(
            self._require_collection(collection_id), filters=values
        )

    def toggle_collection_shared(self, collection_id: str) -> BookCollection:
        collection = self._require_collection(collection_id)
        return self._save_collection(collection, is_shared=not collection.is_shared)

    def collection_books(self, collection_id: str) -> list[Book]:
        """Members that pass any of the collection's filters, in its sort order."""
        collection = self._require_collection(collection_id)
        books = [self._books[i] for i in collection.book_ids if i in self._books]
        predicates = [_FILTERS[BookFilter(f)] for f in collection.filters]
        if predicates:
            books = [b for b in books if any(p(b) for p in predicates)]
        return _sorted(
            books, _SORT_KEYS[SortKey(collection.sort_key)], collection.descending
        )

    def collection_statistics(self, collection_id: str) -> CollectionStatistics:
        collection = self._require_collection(collection_id)
        return build_collection_statistics(
            self._books[i] for i in collection.book_ids if i in self._books
        )

    # ── Derived views ──────────────────────────────────────

    @property
    def books(self) -> list[Book]:
        return list(self._books.values())

    @property
    def wishlist(self) -> list[Book]:
        return list(self._wishlist.values())

    @property
    def page_progress(self) -> list[PageProgress]:
        return list(self._progress)

    @property
    def currently_reading(self) -> list[Book]:
        return self.query(BookFilter.IN_PROGRESS)

    @property
    def completed(self) -> list[Book]:
        return self.query(BookFilter.FINISHED)

    @property
    def not_started(self) -> list[Book]:
        return self.query(BookFilter.NOT_STARTED)

    def recently_added(self, limit: Optional[int] = None) -> list[Book]:
        if limit is None:
            limit = self._recently_added_limit
        return self.query(sort=SortKey.DATE_ADDED, descending=True)[:limit]

    def query(
        self,
        filter: BookFilter = BookFilter.ALL,
        sort: Optional[SortKey] = None,
        descending: bool = False,
    ) -> list[Book]:
        """Return a filtered, optionally sorted snapshot of the library.

        Without ``sort`` books come back in insertion order. Books lacking the
        sort value (no rating, unknown page count, never read) go last in
        either direction.
        """
        matches = [b for b in self._books.values() if _FILTERS[BookFilter(filter)](b)]
        if sort is None:
            return matches
        return _sorted(matches, _SORT_KEYS[SortKey(sort)], descending)

    def search(self, text: str) -> list[Book]:
        needle = text.strip().casefold()
        if not needle:
            return []
        return [
            b
            for b in self._books.values()
            if needle in b.title.casefold() or needle in b.authors_text.casefold()
        ]


def _sorted(books: list[Book], key: Callable[[Book], Any], descending: bool) -> list[Book]:
    present = [b for b in books if key(b) is not None]
    missing = [b for b in books if key(b) is None]
    return sorted(present, key=key, reverse=descending) + missing
