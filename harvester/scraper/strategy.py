"""Per-URL choice between a plain HTTP fetch and a full browser render."""

from __future__ import annotations

from urllib.parse import urlparse

from harvester.config import Settings
from harvester.scraper.models import FetchMethod


def _host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        # Malformed netloc, e.g. an unclosed IPv6 bracket.
        return ""


def is_static_host(url: str, static_domains: tuple[str, ...]) -> bool:
    """Return ``True`` when *url*'s host is, or is under, a known-static domain."""
    host = _host(url)
    if not host:
        return False
    return any(host == domain or host.endswith("." + domain) for domain in static_domains)


def select_strategy(url: str, config: Settings) -> FetchMethod:
    """Decide how *url* should be fetched.

    Rules, first match wins:

    1. Rendering disabled in *config* → lightweight.
    2. Host on the static allow-list (encyclopedic/reference sites are
       server-rendered) → lightweight.
    3. Anything else → rendered.
    """
    if not config.use_rendered_fetch:
        return FetchMethod.LIGHTWEIGHT
    if is_static_host(url, config.static_domains):
        return FetchMethod.LIGHTWEIGHT
    return FetchMethod.RENDERED
