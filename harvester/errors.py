"""Error taxonomy shared by every harvester layer.

Only :class:`InputError` and :class:`PersistenceError` ever surface at the
call or job level; the rest are converted into data (a failed page result or
a degraded summary) by the layer that catches them.
"""

from __future__ import annotations


class HarvesterError(Exception):
    """Base class for all harvester errors."""


class InputError(HarvesterError):
    """The caller supplied nothing to scrape."""


class FetchError(HarvesterError):
    """A page could not be retrieved."""

    def __init__(self, url: str, last_error: object) -> None:
        self.url = url
        self.last_error = last_error
        super().__init__(f"Failed to fetch {url}: {last_error}")


class ExtractionError(HarvesterError):
    """Markup could not be turned into structured content."""


class SummarizationError(HarvesterError):
    """A summarization stage failed or returned an unusable response."""


class PersistenceError(HarvesterError):
    """The record or artifact store rejected a read or write."""
