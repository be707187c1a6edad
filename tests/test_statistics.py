"""Tests for derived reading statistics."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from bookmate.library.models import Book, PageProgress, ReadingSession, ReadingStatus
from bookmate.library.statistics import (
    build_collection_statistics,
    build_statistics,
    reading_streaks,
)

TODAY = date(2024, 5, 15)


def _ts(d: date, hour: int = 12) -> float:
    return datetime(d.year, d.month, d.day, hour).timestamp()


def _session(d: date, duration: int = 600, pages: int = 3) -> ReadingSession:
    return ReadingSession(
        id=f"s-{d.isoformat()}-{duration}",
        book_id="b1",
        start_time=_ts(d),
        end_time=_ts(d) + duration,
        duration=duration,
        pages_read=pages,
    )


def _finished(book_id: str, finished: date, categories: list[str], rating=None) -> Book:
    return Book(
        id=book_id,
        title=book_id,
        page_count=200,
        current_page=200,
        status=ReadingStatus.FINISHED,
        finished_at=_ts(finished),
        categories=categories,
        rating=rating,
    )


class TestReadingStreaks:
    def test_empty(self):
        assert reading_streaks([], TODAY) == (0, 0)

    def test_current_includes_today(self):
        days = [date(2024, 5, 13), date(2024, 5, 14), date(2024, 5, 15)]
        assert reading_streaks(days, TODAY) == (3, 3)

    def test_current_may_end_yesterday(self):
        days = [date(2024, 5, 13), date(2024, 5, 14)]
        assert reading_streaks(days, TODAY) == (2, 2)

    def test_broken_streak(self):
        days = [date(2024, 5, 1), date(2024, 5, 2), date(2024, 5, 3), date(2024, 5, 12)]
        assert reading_streaks(days, TODAY) == (0, 3)

    def test_duplicate_days(self):
        days = [date(2024, 5, 15), date(2024, 5, 15)]
        assert reading_streaks(days, TODAY) == (1, 1)


class TestBuildStatistics:
    def test_empty(self):
        stats = build_statistics([], [], TODAY)
        assert stats.total_books_read == 0
        assert stats.average_rating == 0.0
        assert stats.favorite_topic == ""
        assert stats.reading_streak == 0

    def test_books_read(self):
        books = [
            _finished("a", date(2024, 5, 2), ["Fiction"], rating=4),
            _finished("b", date(2024, 2, 10), ["Fiction", "History"], rating=5),
            _finished("c", date(2023, 12, 30), ["Poetry"]),
            Book(
                id="d",
                title="d",
                page_count=100,
                current_page=40,
                status=ReadingStatus.IN_PROGRESS,
                rating=3,
            ),
        ]
        stats = build_statistics(books, [], TODAY)
        assert stats.total_books_read == 3
        assert stats.books_read_this_month == 1
        assert stats.books_read_this_year == 2
        assert stats.average_rating == 4.0
        assert stats.favorite_topic == "Fiction"

    def test_sessions(self):
        sessions = [
            _session(date(2024, 4, 30), pages=10),
            _session(date(2024, 5, 14), pages=2),
            _session(date(2024, 5, 15), pages=4),
            _session(date(2024, 5, 15), duration=0, pages=0),
        ]
        stats = build_statistics([], sessions, TODAY)
        assert stats.reading_streak == 2
        assert stats.longest_streak == 2
        assert stats.total_reading_seconds == 1800

    def test_pages_from_progress_log(self):
        progress = [
            PageProgress("a", _ts(date(2024, 4, 28)), 120),
            PageProgress("a", _ts(date(2024, 5, 3)), 30),
            PageProgress("b", _ts(date(2024, 5, 14)), 12),
            PageProgress("b", _ts(date(2024, 5, 14), hour=13), -2),
        ]
        sessions = [_session(date(2024, 5, 14), pages=50)]
        stats = build_statistics([], sessions, TODAY, progress=progress)
        assert stats.total_pages_read == 160
        assert stats.pages_read_this_month == 40

    def test_month_is_part_of_total(self):
        progress = [PageProgress("a", _ts(TODAY), 25)]
        stats = build_statistics([], [], TODAY, progress=progress)
        assert stats.pages_read_this_month == stats.total_pages_read == 25

    def test_no_progress_means_no_pages(self):
        books = [_finished("a", date(2024, 5, 2), ["Fiction"])]
        stats = build_statistics(books, [_session(TODAY)], TODAY)
        assert stats.total_pages_read == 0
        assert stats.pages_read_this_month == 0


class TestCollectionStatistics:
    def test_empty(self):
        stats = build_collection_statistics([])
        assert stats.book_count == 0
        assert stats.average_rating == 0.0

    def test_top_three_genres(self):
        books = [
            _finished("a", TODAY, ["Fiction", "History"], rating=3),
            _finished("b", TODAY, ["Fiction", "Poetry"]),
            Book(id="c", title="c", categories=["Fiction", "History", "Drama"]),
        ]
        stats = build_collection_statistics(books)
        assert stats.book_count == 3
        assert stats.total_pages == 400
        assert stats.average_rating == 3.0
        assert stats.completion_percentage == pytest.approx(200 / 3)
        assert stats.primary_genres == ["Fiction", "History", "Poetry"]
