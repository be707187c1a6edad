"""BookMate - reading companion core."""

from __future__ import annotations

import logging
import os
import time
from datetime import date
from typing import Callable, Optional

from bookmate.config import AppConfig, load_config
from bookmate.library.database import Database
from bookmate.library.models import Book, ImportCandidate, ReadingStatistics
from bookmate.library.statistics import build_statistics
from bookmate.library.store import LibraryStore
from bookmate.reading.session import ReadingSessionTracker
from bookmate.search.client import BookSearchClient, SearchController
from bookmate.search.providers import to_book

log = logging.getLogger(__name__)


class BookMate:
    """Wires configuration, storage, the library, search and reading sessions."""

    def __init__(
        self,
        config: AppConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or load_config()
        self._log_handler = setup_logging(self.config)
        self._clock = clock
        self.db = Database(self.config.db_path)
        self.library = LibraryStore(
            self.db,
            clock=clock,
            recently_added_limit=self.config.recently_added_limit,
        )
        self.tracker = ReadingSessionTracker(
            self.library,
            self.db,
            db=self.db,
            clock=clock,
            seconds_per_page=self.config.seconds_per_page,
        )
        self.search_client = BookSearchClient(self.config)
        self.search = SearchController(
            self.search_client, debounce=self.config.search_debounce
        )
        log.info("Opened library at %s", self.config.db_path)

    @property
    def user_id(self) -> Optional[str]:
        return self.config.user_id

    def import_candidate(self, candidate: ImportCandidate, wishlist: bool = False) -> Book:
        """Add a search result to the library (or the wishlist)."""
        book = to_book(candidate, now=self._clock())
        if wishlist:
            self.library.add_to_wishlist(book)
        else:
            self.library.add_book(book)
        log.info("Imported %r (%s)", book.title, "wishlist" if wishlist else "library")
        return book

    def statistics(self, today: Optional[date] = None) -> ReadingStatistics:
        today = today or date.fromtimestamp(self._clock())
        return build_statistics(
            self.library.books,
            self.db.list_sessions(),
            today,
            progress=self.library.page_progress,
        )

    async def close(self) -> None:
        try:
            if self.tracker.is_active:
                self.tracker.stop()
        finally:
            await self.search_client.close()
            self.db.close()
            if self._log_handler is not None:
                logging.getLogger("bookmate").removeHandler(self._log_handler)
                self._log_handler.close()
                self._log_handler = None


def setup_logging(config: AppConfig) -> Optional[logging.Handler]:
    """Attach a file handler for ``config.log_path`` to the package logger.

    Returns the new handler, or None if one for that file is already attached.
    """
    root = logging.getLogger("bookmate")
    log_file = os.path.abspath(config.log_path)
    for existing in root.handlers:
        if getattr(existing, "baseFilename", None) == log_file:
            return None
    handler = logging.FileHandler(config.log_path, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)
    return handler
