"""Exceptions raised by the library, search and session components."""

from __future__ import annotations


class BookMateError(Exception):
    """Base class for all BookMate errors."""


class BookNotFoundError(BookMateError):
    """Raised when an operation references a book id that is not present."""

    def __init__(self, book_id: str) -> None:
        super().__init__(f"Book not found: {book_id}")
        self.book_id = book_id


class DuplicateBookError(BookMateError):
    """Raised when adding a book whose id is already in the collection."""

    def __init__(self, book_id: str) -> None:
        super().__init__(f"Book already exists: {book_id}")
        self.book_id = book_id


class CollectionNotFoundError(BookMateError):
    def __init__(self, collection_id: str) -> None:
        super().__init__(f"Collection not found: {collection_id}")
        self.collection_id = collection_id


class ImportParseError(BookMateError):
    """Raised when a search provider payload cannot be decoded."""


class NetworkError(BookMateError):
    """Raised when a search request fails at the transport level or times out."""
