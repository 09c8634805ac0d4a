"""Exceptions raised while exporting."""

from __future__ import annotations


class ExportError(Exception):
    """Base class for every export failure."""


class ConfigError(ExportError):
    """Invalid or missing configuration."""


class AuthExpired(ExportError):
    """The session cookies were rejected. Fatal for the whole run."""


class TransientError(ExportError):
    """Timeout, connection reset, 429 or 5xx. Worth retrying."""


class PageNotFound(ExportError):
    """The page lies past the last page of a list."""


class FetchError(ExportError):
    """Unexpected HTTP status that retrying will not fix."""


class MalformedPage(ExportError):
    """The page body does not have the expected structure.

    Args:
        message: what was wrong
        has_next_page: whether the broken page was still a full page
    """

    def __init__(self, message: str, has_next_page: bool = False):
        super().__init__(message)
        self.has_next_page = has_next_page


class MalformedVote(ExportError):
    """A vote details response has unexpected fields or values."""


class NoProgressError(ExportError):
    """No page could be fetched at all."""


class ExportCancelled(ExportError):
    """The operator cancelled the run."""
