"""Data models for the scraper pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional


class FetchMethod(str, Enum):
    """How a page was retrieved."""

    LIGHTWEIGHT = "lightweight"
    RENDERED = "rendered"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RawPage:
    """The raw HTTP response for a single lightweight fetch.

    ``url`` is the final location after redirects; ``requested_url`` is what
    the caller asked for.
    """

    url: str
    html: str
    status_code: int
    requested_url: str = ""


@dataclass
class RenderedPage:
    """Everything captured from one headless-browser page load."""

    url: str
    html: str
    visible_text: str
    title: str = ""
    description: str = ""
    screenshot: Optional[bytes] = None
    requested_url: str = ""


@dataclass
class Heading:
    level: int
    text: str


@dataclass
class Link:
    href: str
    text: str


@dataclass
class Extraction:
    """Structured content pulled out of raw markup.  Never persisted."""

    title: str = ""
    description: str = ""
    main_text: str = ""
    headings: List[Heading] = field(default_factory=list)
    links: List[Link] = field(default_factory=list)


@dataclass
class PageResult:
    """Per-URL outcome of the scrape pipeline.

    Either ``success`` is true and the content fields are populated, or it is
    false and ``error`` says why.  Use :meth:`failed` to build the latter.
    """

    url: str
    success: bool
    method: Optional[FetchMethod] = None
    requested_url: str = ""
    title: str = ""
    description: str = ""
    main_text: str = ""
    headings: List[Heading] = field(default_factory=list)
    links: List[Link] = field(default_factory=list)
    keyword_matches: dict[str, int] = field(default_factory=dict)
    total_keyword_matches: int = 0
    text_length: int = 0
    summary: Optional[dict[str, Any]] = None
    screenshot_url: Optional[str] = None
    error: Optional[str] = None
    timestamp: str = field(default_factory=_now_iso)

    def __post_init__(self) -> None:
        if not self.success and not self.error:
            raise ValueError("A failed PageResult must carry an error")
        if self.success and self.error:
            raise ValueError("A successful PageResult cannot carry an error")

    @classmethod
    def failed(
        cls,
        url: str,
        error: str,
        method: Optional[FetchMethod] = None,
    ) -> "PageResult":
        return cls(url=url, requested_url=url, success=False, method=method, error=error or "unknown error")

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-friendly dict (enum flattened to its value)."""
        data = asdict(self)
        data["method"] = self.method.value if self.method else None
        return data
