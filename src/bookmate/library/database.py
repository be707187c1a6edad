"""SQLite database for the library, wishlist, reading sessions, and settings."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Optional

from .models import (
    Book,
    BookCollection,
    ImageLinks,
    PageProgress,
    ReadingSession,
    ReadingStatus,
)

LIBRARY = "library"
WISHLIST = "wishlist"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS books (
    id TEXT PRIMARY KEY,
    collection TEXT NOT NULL DEFAULT 'library',
    seq INTEGER NOT NULL,
    title TEXT NOT NULL,
    authors TEXT NOT NULL DEFAULT '[]',
    isbn TEXT,
    publisher TEXT,
    published_date TEXT,
    language TEXT,
    categories TEXT NOT NULL DEFAULT '[]',
    description TEXT,
    page_count INTEGER,
    image_links TEXT NOT NULL DEFAULT '{}',
    status TEXT NOT NULL DEFAULT 'NOT_STARTED',
    current_page INTEGER DEFAULT 0,
    started_at REAL,
    finished_at REAL,
    last_read_at REAL,
    notes TEXT,
    rating REAL,
    is_favorite INTEGER DEFAULT 0,
    recommended_by TEXT,
    recommended_at REAL,
    partner_notes TEXT,
    date_added REAL NOT NULL,
    reading_time_seconds INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS reading_sessions (
    id TEXT PRIMARY KEY,
    book_id TEXT NOT NULL,
    start_time REAL NOT NULL,
    end_time REAL,
    duration INTEGER DEFAULT 0,
    pages_read INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS page_progress (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id TEXT NOT NULL,
    timestamp REAL NOT NULL,
    pages INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS collections (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    sort_key TEXT NOT NULL DEFAULT 'title',
    descending INTEGER DEFAULT 0,
    filters TEXT NOT NULL DEFAULT '[]',
    is_shared INTEGER DEFAULT 0,
    created_at REAL NOT NULL,
    modified_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS collection_books (
    collection_id TEXT NOT NULL REFERENCES collections(id) ON DELETE CASCADE,
    book_id TEXT NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    seq INTEGER NOT NULL,
    PRIMARY KEY (collection_id, book_id)
);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

_BOOK_COLUMNS = (
    "title",
    "authors",
    "isbn",
    "publisher",
    "published_date",
    "language",
    "categories",
    "description",
    "page_count",
    "image_links",
    "status",
    "current_page",
    "started_at",
    "finished_at",
    "last_read_at",
    "notes",
    "rating",
    "is_favorite",
    "recommended_by",
    "recommended_at",
    "partner_notes",
    "date_added",
    "reading_time_seconds",
)
_ASSIGNMENTS = ", ".join(f"{c} = ?" for c in _BOOK_COLUMNS)


class Database:
    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ── Books ──────────────────────────────────────────────

    def add_book(self, book: Book, collection: str = LIBRARY) -> None:
        columns = ", ".join(("id", "collection", "seq") + _BOOK_COLUMNS)
        placeholders = ", ".join("?" * len(_BOOK_COLUMNS))
        with self._conn:
            self._conn.execute(
                f"""INSERT INTO books ({columns})
                    VALUES (?, ?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM books),
                            {placeholders})""",
                (book.id, collection, *self._book_values(book)),
            )

    def save_book(self, book: Book) -> None:
        with self._conn:
            self._conn.execute(
                f"UPDATE books SET {_ASSIGNMENTS} WHERE id = ?",
                (*self._book_values(book), book.id),
            )

    def move_book(self, book: Book, collection: str) -> None:
        """Move a book to another collection, appending it to that collection."""
        with self._conn:
            self._conn.execute(
                """UPDATE books
                   SET collection = ?, seq = (SELECT COALESCE(MAX(seq), 0) + 1 FROM books)
                   WHERE id = ?""",
                (collection, book.id),
            )
            self._conn.execute(
                f"UPDATE books SET {_ASSIGNMENTS} WHERE id = ?",
                (*self._book_values(book), book.id),
            )

    def remove_book(self, book_id: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM books WHERE id = ?", (book_id,))

    def get_book(self, book_id: str) -> Optional[Book]:
        row = self._conn.execute(
            "SELECT * FROM books WHERE id = ?", (book_id,)
        ).fetchone()
        return self._row_to_book(row) if row else None

    def list_books(self, collection: str = LIBRARY) -> list[Book]:
        rows = self._conn.execute(
            "SELECT * FROM books WHERE collection = ? ORDER BY seq", (collection,)
        ).fetchall()
        return [self._row_to_book(r) for r in rows]

    @staticmethod
    def _book_values(book: Book) -> tuple:
        return (
            book.title,
            json.dumps(book.authors),
            book.isbn,
            book.publisher,
            book.published_date,
            book.language,
            json.dumps(book.categories),
            book.description,
            book.page_count,
            json.dumps(
                {
                    "small": book.image_links.small,
                    "thumbnail": book.image_links.thumbnail,
                    "medium": book.image_links.medium,
                    "large": book.image_links.large,
                }
            ),
            book.status.value,
            book.current_page,
            book.started_at,
            book.finished_at,
            book.last_read_at,
            book.notes,
            book.rating,
            int(book.is_favorite),
            book.recommended_by,
            book.recommended_at,
            book.partner_notes,
            book.date_added,
            book.reading_time_seconds,
        )

    @staticmethod
    def _row_to_book(row: sqlite3.Row) -> Book:
        return Book(
            id=row["id"],
            title=row["title"],
            authors=json.loads(row["authors"]),
            isbn=row["isbn"],
            publisher=row["publisher"],
            published_date=row["published_date"],
            language=row["language"],
            categories=json.loads(row["categories"]),
            description=row["description"],
            page_count=row["page_count"],
            image_links=ImageLinks(**json.loads(row["image_links"])),
            status=ReadingStatus(row["status"]),
            current_page=row["current_page"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            last_read_at=row["last_read_at"],
            notes=row["notes"],
            rating=row["rating"],
            is_favorite=bool(row["is_favorite"]),
            recommended_by=row["recommended_by"],
            recommended_at=row["recommended_at"],
            partner_notes=row["partner_notes"],
            date_added=row["date_added"],
            reading_time_seconds=row["reading_time_seconds"],
        )

    # ── Reading Sessions ───────────────────────────────────

    def add_session(self, session: ReadingSession) -> None:
        with self._conn:
            self._conn.execute(
                """INSERT OR REPLACE INTO reading_sessions
                   (id, book_id, start_time, end_time, duration, pages_read)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    session.id,
                    session.book_id,
                    session.start_time,
                    session.end_time,
                    session.duration,
                    session.pages_read,
                ),
            )

    def list_sessions(self, book_id: Optional[str] = None) -> list[ReadingSession]:
        if book_id is None:
            rows = self._conn.execute(
                "SELECT * FROM reading_sessions ORDER BY start_time"
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM reading_sessions WHERE book_id = ? ORDER BY start_time",
                (book_id,),
            ).fetchall()
        return [
            ReadingSession(
                id=r["id"],
                book_id=r["book_id"],
                start_time=r["start_time"],
                end_time=r["end_time"],
                duration=r["duration"],
                pages_read=r["pages_read"],
            )
            for r in rows
        ]

    # ── Page Progress ──────────────────────────────────────

    def add_page_progress(self, entry: PageProgress) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT INTO page_progress (book_id, timestamp, pages) VALUES (?, ?, ?)",
                (entry.book_id, entry.timestamp, entry.pages),
            )

    def list_page_progress(self) -> list[PageProgress]:
        rows = self._conn.execute(
            "SELECT * FROM page_progress ORDER BY id"
        ).fetchall()
        return [PageProgress(r["book_id"], r["timestamp"], r["pages"]) for r in rows]

    # ── Collections ────────────────────────────────────────

    def save_collection(self, collection: BookCollection) -> None:
        """Insert or update a collection and replace its membership list."""
        with self._conn:
            self._conn.execute(
                """INSERT INTO collections
                   (id, name, description, sort_key, descending, filters,
                    is_shared, created_at, modified_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       name = excluded.name,
                       description = excluded.description,
                       sort_key = excluded.sort_key,
                       descending = excluded.descending,
                       filters = excluded.filters,
                       is_shared = excluded.is_shared,
                       modified_at = excluded.modified_at""",
                (
                    collection.id,
                    collection.name,
                    collection.description,
                    collection.sort_key,
                    int(collection.descending),
                    json.dumps(collection.filters),
                    int(collection.is_shared),
                    collection.created_at,
                    collection.modified_at,
                ),
            )
            self._conn.execute(
                "DELETE FROM collection_books WHERE collection_id = ?", (collection.id,)
            )
            self._conn.executemany(
                "INSERT INTO collection_books (collection_id, book_id, seq) VALUES (?, ?, ?)",
                [(collection.id, book_id, i) for i, book_id in enumerate(collection.book_ids)],
            )

    def delete_collection(self, collection_id: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM collections WHERE id = ?", (collection_id,))

    def list_collections(self) -> list[BookCollection]:
        rows = self._conn.execute(
            "SELECT * FROM collections ORDER BY created_at, rowid"
        ).fetchall()
        collections = []
        for r in rows:
            members = self._conn.execute(
                "SELECT book_id FROM collection_books WHERE collection_id = ? ORDER BY seq",
                (r["id"],),
            ).fetchall()
            collections.append(
                BookCollection(
                    id=r["id"],
                    name=r["name"],
                    description=r["description"],
                    book_ids=[m["book_id"] for m in members],
                    sort_key=r["sort_key"],
                    descending=bool(r["descending"]),
                    filters=json.loads(r["filters"]),
                    is_shared=bool(r["is_shared"]),
                    created_at=r["created_at"],
                    modified_at=r["modified_at"],
                )
            )
        return collections

    # ── Settings (key/value) ───────────────────────────────

    def get(self, key: str) -> Optional[Any]:
        row = self._conn.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        ).fetchone()
        return json.loads(row["value"]) if row else None

    def set(self, key: str, value: Any) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, json.dumps(value)),
            )


class MemoryKeyValueStore:
    """In-memory stand-in for the settings table."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value
