from __future__ import annotations

from typing import Optional


class CrawlerError(Exception):
    """Base class for every error raised by the calendar crawler."""


class AuthorizationError(CrawlerError):
    pass


class InvalidRangeError(CrawlerError):
    pass


class FetchError(CrawlerError):
    """The calendar site could not be read. Fatal to the current chunk."""

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class FetchTimeout(FetchError):
    pass


class FetchHttpError(FetchError):
    def __init__(self, status: int, *, url: Optional[str] = None) -> None:
        super().__init__(f"Request failed with status {status}", url=url)
        self.status = status


class PersistenceError(CrawlerError):
    """Writing an Event or EventEdition failed."""


class SlugConflictError(PersistenceError):
    """Unique constraint on Event.slug rejected an insert."""

    def __init__(self, slug: str) -> None:
        super().__init__(f"slug already taken: {slug}")
        self.slug = slug


class EditionConflictError(PersistenceError):
    """Another writer created the (event_id, year) edition first."""
