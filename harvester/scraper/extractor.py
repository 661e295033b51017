"""Content extraction: turns raw markup into an :class:`Extraction`.

The heuristic is deliberately simple and fully deterministic:

1. drop noise elements (scripts, styles, navigation, footers, frames, ...);
2. read title and description from the document head;
3. pick the main region: the first semantic container from
   ``MAIN_CANDIDATES``, else the ``div``/``section`` holding the most text,
   else the body;
4. collect headings and links inside that region.
"""

from __future__ import annotations

import logging
from typing import Any, List

from harvester.errors import ExtractionError
from harvester.scraper.document import DocumentQuery, SoupDocument
from harvester.scraper.models import Extraction, Heading, Link

logger = logging.getLogger(__name__)

NOISE_SELECTOR = (
    "script, style, nav, footer, iframe, noscript, svg, "
    '[role="banner"], [role="navigation"]'
)
MAIN_CANDIDATES = ("main", "article", "#content", ".content", ".post", ".article")
CONTAINER_SELECTOR = "div, section"
HEADING_SELECTOR = "h1, h2, h3, h4, h5, h6"
DEFAULT_MAX_LINKS = 20


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _first_text(doc: DocumentQuery, selector: str) -> str:
    matches = doc.select(selector)
    return doc.text(matches[0]) if matches else ""


def _extract_title(doc: DocumentQuery) -> str:
    """Document ``<title>``, else the first ``<h1>``, else empty."""
    return _first_text(doc, "title") or _first_text(doc, "h1")


def _extract_description(doc: DocumentQuery) -> str:
    """Meta description, else Open Graph description, else empty."""
    for selector in ('meta[name="description"]', 'meta[property="og:description"]'):
        for meta in doc.select(selector):
            content = (doc.attr(meta, "content") or "").strip()
            if content:
                return content
    return ""


def _locate_main(doc: DocumentQuery) -> Any:
    """Return the element most likely to hold the article body."""
    for selector in MAIN_CANDIDATES:
        matches = doc.select(selector)
        if matches:
            return matches[0]

    # Largest text container; strict ">" keeps the first one on ties.
    best, best_length = None, 0
    for element in doc.select(CONTAINER_SELECTOR):
        length = len(doc.text(element))
        if length > best_length:
            best, best_length = element, length
    if best is not None:
        return best

    bodies = doc.select("body")
    return bodies[0] if bodies else doc.root()


def _extract_headings(doc: DocumentQuery, region: Any) -> List[Heading]:
    headings: List[Heading] = []
    for element in doc.select(HEADING_SELECTOR, within=region):
        text = doc.text(element)
        if text:
            headings.append(Heading(level=int(doc.tag_name(element)[1]), text=text))
    return headings


def _extract_links(doc: DocumentQuery, region: Any, max_links: int) -> List[Link]:
    """Anchors with visible text and a non-fragment href, first *max_links* only."""
    links: List[Link] = []
    for element in doc.select("a[href]", within=region):
        if len(links) >= max_links:
            break
        href = (doc.attr(element, "href") or "").strip()
        text = doc.text(element)
        if href and text and not href.startswith("#"):
            links.append(Link(href=href, text=text))
    return links


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_from_document(doc: DocumentQuery, max_links: int = DEFAULT_MAX_LINKS) -> Extraction:
    """Run the extraction heuristic against an already-parsed document."""
    doc.remove(NOISE_SELECTOR)

    title = _extract_title(doc)
    description = _extract_description(doc)
    region = _locate_main(doc)

    return Extraction(
        title=title,
        description=description,
        main_text=doc.text(region),
        headings=_extract_headings(doc, region),
        links=_extract_links(doc, region, max_links),
    )


def extract_content(html: str, max_links: int = DEFAULT_MAX_LINKS) -> Extraction:
    """Extract title, description, main text, headings and links from *html*.

    Never raises: markup that cannot be parsed yields an empty
    :class:`Extraction`, and a page of empty containers yields empty
    ``main_text``.  Callers treat empty content as a valid, low-value result.
    """
    try:
        doc = SoupDocument(html)
    except ExtractionError as exc:
        logger.warning("[EXTRACT] %s; returning empty content", exc)
        return Extraction()

    extraction = extract_from_document(doc, max_links=max_links)
    logger.debug(
        "[EXTRACT] title=%r chars=%d headings=%d links=%d",
        extraction.title,
        len(extraction.main_text),
        len(extraction.headings),
        len(extraction.links),
    )
    return extraction
