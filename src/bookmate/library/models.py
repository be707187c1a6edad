"""Data models for the book library."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

UNKNOWN_AUTHOR = "Unknown Author"


class ReadingStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    FINISHED = "FINISHED"


@dataclass
class ImageLinks:
    small: Optional[str] = None
    thumbnail: Optional[str] = None
    medium: Optional[str] = None
    large: Optional[str] = None

    def best(self) -> Optional[str]:
        """Return the largest available image URL, upgraded to https."""
        for url in (self.large, self.medium, self.thumbnail, self.small):
            if url:
                return secure_url(url)
        return None


def secure_url(url: str) -> str:
    return url.replace("http://", "https://", 1) if url.startswith("http://") else url


@dataclass
class Book:
    id: str
    title: str
    authors: list[str] = field(default_factory=list)
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None  # free-form, as the provider gives it
    language: Optional[str] = None
    categories: list[str] = field(default_factory=list)
    description: Optional[str] = None
    page_count: Optional[int] = None
    image_links: ImageLinks = field(default_factory=ImageLinks)

    # Reading state
    status: ReadingStatus = ReadingStatus.NOT_STARTED
    current_page: int = 0
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    last_read_at: Optional[float] = None

    # User annotations
    notes: Optional[str] = None
    rating: Optional[float] = None  # 0-5, half stars allowed
    is_favorite: bool = False

    # Partner sharing
    recommended_by: Optional[str] = None
    recommended_at: Optional[float] = None
    partner_notes: Optional[str] = None

    date_added: float = field(default_factory=time.time)
    reading_time_seconds: int = 0

    @staticmethod
    def make_id() -> str:
        return uuid.uuid4().hex

    @property
    def authors_text(self) -> str:
        return ", ".join(self.authors) if self.authors else UNKNOWN_AUTHOR

    @property
    def cover_url(self) -> Optional[str]:
        return self.image_links.best()

    @property
    def progress_percentage(self) -> Optional[float]:
        """Percentage read, or None when the page count is unknown."""
        from bookmate.library.progress import percentage_from_page

        if self.status == ReadingStatus.FINISHED:
            return 100.0
        if self.page_count is None:
            return None
        return percentage_from_page(self.current_page, self.page_count)


@dataclass
class ImportCandidate:
    """A search result not yet committed to the library."""

    title: str
    authors: list[str] = field(default_factory=lambda: [UNKNOWN_AUTHOR])
    isbn: Optional[str] = None
    cover_url: Optional[str] = None
    page_count: Optional[int] = None
    categories: Optional[list[str]] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    language: Optional[str] = None
    description: Optional[str] = None


@dataclass
class ReadingSession:
    id: str
    book_id: str
    start_time: float
    end_time: Optional[float] = None  # None while active
    duration: int = 0  # seconds
    pages_read: int = 0  # estimate, filled in at stop time

    @staticmethod
    def make_id() -> str:
        return uuid.uuid4().hex


@dataclass
class PageProgress:
    """One movement of a book's current page; negative for corrections."""

    book_id: str
    timestamp: float
    pages: int


@dataclass
class BookCollection:
    """A user-defined, named shelf of library books.

    ``filters`` holds filter names (see ``BookFilter``); a book is shown when
    it matches any of them, or always when the list is empty. ``sort_key``
    names a ``SortKey``.
    """

    id: str
    name: str
    description: Optional[str] = None
    book_ids: list[str] = field(default_factory=list)
    sort_key: str = "title"
    descending: bool = False
    filters: list[str] = field(default_factory=list)
    is_shared: bool = False
    created_at: float = field(default_factory=time.time)
    modified_at: float = field(default_factory=time.time)

    @staticmethod
    def make_id() -> str:
        return uuid.uuid4().hex


@dataclass
class CollectionStatistics:
    book_count: int = 0
    total_pages: int = 0
    average_rating: float = 0.0
    completion_percentage: float = 0.0
    primary_genres: list[str] = field(default_factory=list)


@dataclass
class ReadingStatistics:
    total_books_read: int = 0
    books_read_this_month: int = 0
    books_read_this_year: int = 0
    total_pages_read: int = 0
    pages_read_this_month: int = 0
    average_rating: float = 0.0
    favorite_topic: str = ""
    reading_streak: int = 0
    longest_streak: int = 0
    total_reading_seconds: int = 0


class ReadingGoalType(str, Enum):
    BOOKS_PER_YEAR = "booksPerYear"
    PAGES_PER_DAY = "pagesPerDay"
    MINUTES_PER_DAY = "minutesPerDay"


@dataclass
class ReadingGoal:
    type: ReadingGoalType
    target: int
    start_date: date
    end_date: date
    progress: int = 0

    @property
    def progress_percentage(self) -> float:
        if self.target <= 0:
            return 0.0
        return min(self.progress / self.target * 100.0, 100.0)

    @property
    def is_completed(self) -> bool:
        return self.progress >= self.target

    def remaining_days(self, today: Optional[date] = None) -> int:
        today = today or date.today()
        return max(0, (self.end_date - today).days)
