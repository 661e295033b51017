"""Document query capability used by the content extractor.

The extractor only talks to :class:`DocumentQuery`; :class:`SoupDocument` is
the BeautifulSoup-backed implementation.  Elements are opaque handles that
are only ever passed back into the same document object.
"""

from __future__ import annotations

import re
from typing import Any, Optional, Protocol

from bs4 import BeautifulSoup

from harvester.errors import ExtractionError

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    """Collapse every run of whitespace to one space and trim the ends."""
    return _WHITESPACE.sub(" ", text).strip()


class DocumentQuery(Protocol):
    def root(self) -> Any:
        """The whole-document element."""

    def select(self, selector: str, within: Any = None) -> list[Any]:
        """CSS-select elements in document order, optionally under *within*."""

    def text(self, element: Any) -> str:
        """Whitespace-collapsed text content of *element*."""

    def attr(self, element: Any, name: str) -> Optional[str]:
        """Attribute value, or ``None`` when absent."""

    def tag_name(self, element: Any) -> str:
        """Lower-case tag name of *element*."""

    def remove(self, selector: str) -> int:
        """Detach every element matching *selector*; return how many."""


class SoupDocument:
    """:class:`DocumentQuery` over ``bs4`` with the stdlib ``html.parser``."""

    def __init__(self, html: str) -> None:
        try:
            self._soup = BeautifulSoup(html or "", "html.parser")
        except Exception as exc:  # bs4 re-raises parser internals as-is
            raise ExtractionError(f"Unparseable markup: {exc}") from exc

    def root(self) -> Any:
        return self._soup

    def select(self, selector: str, within: Any = None) -> list[Any]:
        scope = within if within is not None else self._soup
        return list(scope.select(selector))

    def text(self, element: Any) -> str:
        return collapse_whitespace(element.get_text(separator=" "))

    def attr(self, element: Any, name: str) -> Optional[str]:
        value = element.get(name)
        if value is None:
            return None
        # Multi-valued attributes (class, rel) come back as lists.
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def tag_name(self, element: Any) -> str:
        return (element.name or "").lower()

    def remove(self, selector: str) -> int:
        matches = self._soup.select(selector)
        # extract() rather than decompose(): matches may be nested.
        for element in matches:
            element.extract()
        return len(matches)
