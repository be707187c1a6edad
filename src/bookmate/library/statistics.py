"""Aggregate reading statistics derived from the library and session history."""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from bookmate.library.models import (
    Book,
    CollectionStatistics,
    PageProgress,
    ReadingSession,
    ReadingStatistics,
    ReadingStatus,
)


def _day(timestamp: float) -> date:
    return datetime.fromtimestamp(timestamp).date()


def _same_month(d: date, today: date) -> bool:
    return d.year == today.year and d.month == today.month


def reading_streaks(days: Iterable[date], today: date) -> tuple[int, int]:
    """Return (current, longest) runs of consecutive reading days.

    The current streak may end today or yesterday; a streak is only broken
    once a full day has passed without reading.
    """
    ordered = sorted(set(days))
    if not ordered:
        return 0, 0

    longest = run = 1
    for prev, cur in zip(ordered, ordered[1:]):
        run = run + 1 if cur - prev == timedelta(days=1) else 1
        longest = max(longest, run)

    day_set = set(ordered)
    cursor = today if today in day_set else today - timedelta(days=1)
    current = 0
    while cursor in day_set:
        current += 1
        cursor -= timedelta(days=1)
    return current, longest


def build_statistics(
    books: Iterable[Book],
    sessions: Iterable[ReadingSession],
    today: Optional[date] = None,
    progress: Iterable[PageProgress] = (),
) -> ReadingStatistics:
    """Summarize reading activity.

    Page totals come only from ``progress``, the log of page movements the
    library records, so manual updates and session estimates count alike
    and the monthly figure is always a slice of the all-time one.
    """
    today = today or date.today()
    books = list(books)
    sessions = list(sessions)
    progress = list(progress)

    finished = [b for b in books if b.status == ReadingStatus.FINISHED]
    finished_days = [_day(b.finished_at) for b in finished if b.finished_at is not None]

    ratings = [b.rating for b in books if b.rating is not None]
    topics = Counter(c for b in finished for c in b.categories)
    favorite_topic = topics.most_common(1)[0][0] if topics else ""

    streak, longest = reading_streaks(
        (_day(s.start_time) for s in sessions if s.duration > 0), today
    )

    return ReadingStatistics(
        total_books_read=len(finished),
        books_read_this_month=sum(1 for d in finished_days if _same_month(d, today)),
        books_read_this_year=sum(1 for d in finished_days if d.year == today.year),
        total_pages_read=max(0, sum(p.pages for p in progress)),
        pages_read_this_month=max(
            0, sum(p.pages for p in progress if _same_month(_day(p.timestamp), today))
        ),
        average_rating=sum(ratings) / len(ratings) if ratings else 0.0,
        favorite_topic=favorite_topic,
        reading_streak=streak,
        longest_streak=longest,
        total_reading_seconds=sum(s.duration for s in sessions),
    )


def build_collection_statistics(books: Iterable[Book]) -> CollectionStatistics:
    books = list(books)
    if not books:
        return CollectionStatistics()
    ratings = [b.rating for b in books if b.rating is not None]
    finished = sum(1 for b in books if b.status == ReadingStatus.FINISHED)
    genres = Counter(c for b in books for c in b.categories)
    return CollectionStatistics(
        book_count=len(books),
        total_pages=sum(b.page_count or 0 for b in books),
        average_rating=sum(ratings) / len(ratings) if ratings else 0.0,
        completion_percentage=finished / len(books) * 100.0,
        primary_genres=[g for g, _ in genres.most_common(3)],
    )
