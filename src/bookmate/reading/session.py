"""Timed reading sessions: start, pause, resume, stop and reset."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from bookmate.errors import BookNotFoundError
from bookmate.library.database import Database
from bookmate.library.models import ReadingSession
from bookmate.library.store import LibraryStore

log = logging.getLogger(__name__)

ALL_TIME_KEY = "all_time_reading"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...


class TrackerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


def session_key(session_id: str) -> str:
    return f"reading_session_{session_id}"


def today_key(timestamp: float) -> str:
    return f"today_reading_time:{datetime.fromtimestamp(timestamp).date().isoformat()}"


def format_duration(seconds: int) -> str:
    hours, rest = divmod(max(0, seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class ReadingSessionTracker:
    """Tracks one reading session at a time.

    ``tick()`` is driven externally once per second (see ``run_clock``).
    Finished sessions are written to the key/value store and, if given, the
    database; the book's reading time and an estimated page count are pushed
    into the library.
    """

    def __init__(
        self,
        store: LibraryStore,
        settings: KeyValueStore,
        db: Optional[Database] = None,
        clock: Callable[[], float] = time.time,
        seconds_per_page: int = 180,
    ) -> None:
        self._store = store
        self._settings = settings
        self._db = db
        self._clock = clock
        self._seconds_per_page = seconds_per_page
        self.state = TrackerState.IDLE
        self.book_id: Optional[str] = None
        self.elapsed_seconds = 0
        self.current_session: Optional[ReadingSession] = None

    @property
    def is_active(self) -> bool:
        return self.state != TrackerState.IDLE

    def start(self, book_id: str) -> ReadingSession:
        if self.state != TrackerState.IDLE:
            raise RuntimeError(f"A session is already {self.state.value}")
        if book_id not in self._store:
            raise BookNotFoundError(book_id)
        self.state = TrackerState.RUNNING
        self.book_id = book_id
        self.elapsed_seconds = 0
        self.current_session = ReadingSession(
            id=ReadingSession.make_id(),
            book_id=book_id,
            start_time=self._clock(),
        )
        log.debug("Started session %s for %s", self.current_session.id, book_id)
        return self.current_session

    def tick(self) -> None:
        if self.state == TrackerState.RUNNING:
            self.elapsed_seconds += 1

    def pause(self) -> None:
        if self.state != TrackerState.RUNNING or self.current_session is None:
            return
        self.state = TrackerState.PAUSED
        self.current_session = replace(
            self.current_session,
            end_time=self._clock(),
            duration=self.elapsed_seconds,
        )

    def resume(self) -> None:
        if self.state != TrackerState.PAUSED or self.current_session is None:
            return
        self.state = TrackerState.RUNNING
        self.current_session = replace(self.current_session, end_time=None)

    def stop(self) -> Optional[ReadingSession]:
        """Finalize and persist the session. Returns None when idle.

        The tracker is back to IDLE afterwards even if a write fails, so a
        retried ``stop()`` is a no-op. Totals are written last, only once the
        book update has gone through, and can never be counted twice.
        """
        if self.state == TrackerState.IDLE or self.current_session is None:
            return None

        elapsed = self.elapsed_seconds
        end_time = self.current_session.end_time
        session = replace(
            self.current_session,
            end_time=end_time if end_time is not None else self._clock(),
            duration=elapsed,
            pages_read=elapsed // self._seconds_per_page,
        )

        try:
            book = self._store.get_book(session.book_id)
            if book is None:
                log.warning(
                    "Book %s left the library during session %s",
                    session.book_id,
                    session.id,
                )
            else:
                self._store.add_reading_time(book.id, elapsed)
                if session.pages_read > 0:
                    self._store.update_progress(
                        book.id, book.current_page + session.pages_read
                    )

            if self._db is not None:
                self._db.add_session(session)
            self._settings.set(session_key(session.id), session.duration)
            day = today_key(session.start_time)
            self._settings.set(day, (self._settings.get(day) or 0) + elapsed)
            self._settings.set(ALL_TIME_KEY, self.all_time_total() + elapsed)
        except Exception:
            log.exception("Failed to save session %s", session.id)
            raise
        finally:
            self._clear()

        log.info(
            "Saved session %s: %s for %s (~%d pages)",
            session.id,
            format_duration(session.duration),
            session.book_id,
            session.pages_read,
        )
        return session

    def reset(self) -> None:
        """Discard the current session without saving anything."""
        self._clear()

    def _clear(self) -> None:
        self.state = TrackerState.IDLE
        self.book_id = None
        self.elapsed_seconds = 0
        self.current_session = None

    def today_total(self) -> int:
        return self._settings.get(today_key(self._clock())) or 0

    def all_time_total(self) -> int:
        return self._settings.get(ALL_TIME_KEY) or 0


async def run_clock(tracker: ReadingSessionTracker, interval: float = 1.0) -> None:
    """Tick the tracker every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        tracker.tick()
