"""Query → candidate URL discovery with provider failover.

Provider order:
  1. Rules: trigger words route to known reliable sites; "who/what/when/where
     is X" questions route X to an encyclopedia article.
  2. DuckDuckGo: only when ``settings.discovery_web_search`` is on; rate
     limits are retried with exponential backoff.
  3. Reference search: Wikipedia and Britannica search-result URLs.  Always
     answers for a non-empty query.

All providers share ``search(query, max_results) -> list[str]`` and return
``[]`` rather than raising.  :func:`discover` returns the first non-empty
list, truncated to ``max_results``.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import quote, quote_plus

from duckduckgo_search import DDGS
from duckduckgo_search.exceptions import DuckDuckGoSearchException, RatelimitException

from harvester.config import Settings, settings
from harvester.scraper.retry import RetrySpec, with_retry

logger = logging.getLogger(__name__)

WEATHER_URL = "https://weather.com/"
NEWS_URL = "https://news.google.com/"
WIKIPEDIA_ARTICLE = "https://en.wikipedia.org/wiki/{topic}"

_QUESTION = re.compile(
    r"^\s*(?:(?:who|what|when|where)\s+(?:is|are|was|were|did)|tell\s+me\s+about)\s+(?P<topic>.+)$",
    re.IGNORECASE,
)
_WORD = {
    "weather": re.compile(r"\bweather\b", re.IGNORECASE),
    "news": re.compile(r"\bnews\b", re.IGNORECASE),
}


def _normalise_query(query: str) -> str:
    """Trim whitespace and surrounding double-quotes."""
    q = query.strip()
    if q.startswith('"') and q.endswith('"') and len(q) > 2:
        q = q[1:-1].strip()
    return q


def wikipedia_url(topic: str) -> str:
    """Article URL for *topic* (spaces become underscores)."""
    return WIKIPEDIA_ARTICLE.format(topic=quote(topic.strip().replace(" ", "_")))


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class SearchProvider(ABC):
    """Abstract base class for a single discovery provider."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""

    @abstractmethod
    def search(self, query: str, max_results: int = 3) -> list[str]:
        """Return a list of URLs.  Must return ``[]`` (not raise) on failure."""


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

class RuleBasedProvider(SearchProvider):
    """Known-source routing for common question shapes."""

    @property
    def name(self) -> str:
        return "Rules"

    def search(self, query: str, max_results: int = 3) -> list[str]:
        query = _normalise_query(query)
        if _WORD["weather"].search(query):
            return [WEATHER_URL]
        if _WORD["news"].search(query):
            return [NEWS_URL]
        match = _QUESTION.match(query)
        if match:
            topic = match.group("topic").strip().rstrip("?!. ").strip()
            if topic:
                return [wikipedia_url(topic)]
        return []


class DuckDuckGoProvider(SearchProvider):
    """Wrapper around ``duckduckgo_search.DDGS`` with retry on rate-limit."""

    def __init__(self, retry_spec: RetrySpec = RetrySpec(max_attempts=3, base_delay=2.0)) -> None:
        self._retry_spec = retry_spec

    @property
    def name(self) -> str:
        return "DuckDuckGo"

    def _query(self, query: str, max_results: int) -> list[str]:
        with DDGS() as ddgs:
            results = ddgs.text(query, max_results=max_results) or []
        return [r["href"] for r in results if r.get("href")]

    def search(self, query: str, max_results: int = 3) -> list[str]:
        query = _normalise_query(query)
        try:
            urls = with_retry(
                lambda: self._query(query, max_results),
                self._retry_spec,
                retry_on=(RatelimitException,),
            )
        except RatelimitException:
            logger.warning("[DuckDuckGo] exhausted retries; rate-limited.")
            return []
        except DuckDuckGoSearchException as exc:
            logger.warning("[DuckDuckGo] search error: %s", exc)
            return []
        except Exception as exc:  # noqa: BLE001
            logger.warning("[DuckDuckGo] error: %s", exc)
            return []
        if urls:
            logger.info("[DuckDuckGo] %d result(s).", len(urls))
        return urls


class ReferenceSearchProvider(SearchProvider):
    """Search-result pages on encyclopedic reference sites."""

    TEMPLATES = (
        "https://en.wikipedia.org/wiki/Special:Search?search={q}",
        "https://www.britannica.com/search?query={q}",
    )

    @property
    def name(self) -> str:
        return "Reference"

    def search(self, query: str, max_results: int = 3) -> list[str]:
        query = _normalise_query(query)
        if not query:
            return []
        return [template.format(q=quote_plus(query)) for template in self.TEMPLATES]


# ---------------------------------------------------------------------------
# Provider chain
# ---------------------------------------------------------------------------

class SearchProviderChain:
    """Try providers in order; return the first non-empty result list."""

    def __init__(self, providers: list[SearchProvider]) -> None:
        self._providers = providers

    def search(self, query: str, max_results: int = 3) -> list[str]:
        for provider in self._providers:
            urls = provider.search(query, max_results=max_results)
            if urls:
                logger.info("[DISCOVER] %s → %d URL(s) for %r", provider.name, len(urls), query)
                return urls
        logger.info("[DISCOVER] no provider returned URLs for %r", query)
        return []


def build_default_chain(config: Optional[Settings] = None) -> SearchProviderChain:
    """Rules → DuckDuckGo (if enabled) → reference search."""
    config = config or settings
    providers: list[SearchProvider] = [RuleBasedProvider()]
    if config.discovery_web_search:
        providers.append(DuckDuckGoProvider())
    providers.append(ReferenceSearchProvider())
    return SearchProviderChain(providers)


def discover(
    query: str,
    max_results: int = 3,
    chain: Optional[SearchProviderChain] = None,
    config: Optional[Settings] = None,
) -> list[str]:
    """Map *query* to at most *max_results* candidate URLs.

    Never raises: an empty query, a non-positive limit, or any internal error
    yields ``[]``.
    """
    if not query or not query.strip() or max_results <= 0:
        return []
    try:
        urls = (chain or build_default_chain(config)).search(query, max_results=max_results)
    except Exception as exc:  # noqa: BLE001
        logger.error("[DISCOVER] discovery failed for %r: %s", query, exc)
        return []
    return urls[:max_results]
