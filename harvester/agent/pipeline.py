"""Per-URL scrape pipeline as a LangGraph ``StateGraph``.

The graph topology is linear:

    START → select → fetch → extract → score → summarize → archive → assemble → END

Every node is created by a ``make_*`` factory that closes over the
collaborators it needs, so fetchers, the summarizer and the artifact store
never appear in the state bag.  Any node may raise; :func:`run_page` turns the
exception into a failed :class:`~harvester.scraper.models.PageResult` so one
URL can never abort its job.
"""

from __future__ import annotations

import dataclasses
import hashlib
import logging
import threading
import time
from typing import Any, Optional, TypedDict, Union

from langgraph.graph import END, START, StateGraph

from harvester.agent.summarizer import SummarizerService, summarize
from harvester.config import Settings
from harvester.db.artifacts import ArtifactStore, safe_name
from harvester.scraper.document import collapse_whitespace
from harvester.scraper.extractor import extract_content
from harvester.scraper.fetcher import LightweightFetcher, RenderedFetcher
from harvester.scraper.models import (
    Extraction,
    FetchMethod,
    PageResult,
    RawPage,
    RenderedPage,
)
from harvester.scraper.scorer import score_keywords, total_matches
from harvester.scraper.strategy import select_strategy

logger = logging.getLogger(__name__)


class PageState(TypedDict, total=False):
    url: str
    keywords: list[str]
    options: dict[str, Any]
    cancel: Optional[threading.Event]
    method: FetchMethod
    page: Union[RawPage, RenderedPage]
    extraction: Extraction
    keyword_matches: dict[str, int]
    summary: dict[str, Any]
    screenshot_url: Optional[str]
    result: PageResult


def effective_config(config: Settings, options: dict[str, Any]) -> Settings:
    """Apply per-request ``options`` on top of *config* without mutating it."""
    if options.get("render") is False:
        return dataclasses.replace(config, use_rendered_fetch=False)
    return config


# ---------------------------------------------------------------------------
# Node factories
# ---------------------------------------------------------------------------

def make_selector(config: Settings):
    """Return a *select* node choosing the fetch strategy for the URL."""

    def select(state: PageState) -> dict:
        method = select_strategy(state["url"], effective_config(config, state.get("options", {})))
        logger.info("[SELECT] %s → %s", state["url"], method.value)
        return {"method": method}

    return select


def make_fetcher(config: Settings, lightweight: LightweightFetcher, rendered: RenderedFetcher):
    """Return a *fetch* node dispatching to the chosen fetcher."""

    def fetch(state: PageState) -> dict:
        url, cancel = state["url"], state.get("cancel")
        if state["method"] is FetchMethod.RENDERED:
            return {"page": rendered.fetch(url, cancel=cancel)}

        options = state.get("options", {})
        spec = None
        if options.get("max_retries"):
            spec = dataclasses.replace(config.retry_spec, max_attempts=int(options["max_retries"]))
        return {"page": lightweight.fetch(url, cancel=cancel, retry_spec=spec)}

    return fetch


def make_extractor(config: Settings):
    """Return an *extract* node running the main-content heuristic.

    Rendered pages fall back to the browser's title, description and visible
    text when the markup heuristic comes up empty.
    """

    def extract(state: PageState) -> dict:
        page = state["page"]
        extraction = extract_content(page.html, max_links=config.max_links)
        if isinstance(page, RenderedPage):
            extraction.title = extraction.title or page.title
            extraction.description = extraction.description or page.description
            if not extraction.main_text:
                extraction.main_text = collapse_whitespace(page.visible_text)
        return {"extraction": extraction}

    return extract


def make_scorer():
    """Return a *score* node counting keyword hits in the main text."""

    def score(state: PageState) -> dict:
        return {
            "keyword_matches": score_keywords(
                state["extraction"].main_text, state.get("keywords", [])
            )
        }

    return score


def make_summarizer(summarizer: SummarizerService, config: Settings):
    """Return a *summarize* node driving the fallback chain."""

    def summarize_node(state: PageState) -> dict:
        extraction = state["extraction"]
        options = state.get("options", {})
        result = summarize(
            extraction.main_text,
            state.get("keywords", []),
            int(options.get("max_length") or config.summary_max_length),
            summarizer,
            url=state["page"].url,
            title=extraction.title,
            description=extraction.description,
            headings=extraction.headings,
        )
        return {"summary": result.to_dict()}

    return summarize_node


def make_archiver(artifacts: ArtifactStore):
    """Return an *archive* node uploading the screenshot of a rendered page."""

    def archive(state: PageState) -> dict:
        page = state["page"]
        if not isinstance(page, RenderedPage) or not page.screenshot:
            return {"screenshot_url": None}
        digest = hashlib.sha1(page.url.encode("utf-8")).hexdigest()[:16]
        path = f"screenshots/{int(time.time() * 1000)}_{safe_name(page.url)[:64]}_{digest}.png"
        return {"screenshot_url": artifacts.store(page.screenshot, path, "image/png")}

    return archive


def make_assembler():
    """Return an *assemble* node folding everything into a PageResult."""

    def assemble(state: PageState) -> dict:
        page, extraction = state["page"], state["extraction"]
        matches = state.get("keyword_matches", {})
        result = PageResult(
            url=page.url,
            requested_url=state["url"],
            success=True,
            method=state["method"],
            title=extraction.title,
            description=extraction.description,
            main_text=extraction.main_text,
            headings=extraction.headings,
            links=extraction.links,
            keyword_matches=matches,
            total_keyword_matches=total_matches(matches),
            text_length=len(extraction.main_text),
            summary=state.get("summary"),
            screenshot_url=state.get("screenshot_url"),
        )
        return {"result": result}

    return assemble


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------

def build_page_graph(
    config: Settings,
    lightweight: LightweightFetcher,
    rendered: RenderedFetcher,
    summarizer: SummarizerService,
    artifacts: ArtifactStore,
):
    """Compile and return the per-URL pipeline graph."""
    graph = StateGraph(PageState)

    graph.add_node("select", make_selector(config))
    graph.add_node("fetch", make_fetcher(config, lightweight, rendered))
    graph.add_node("extract", make_extractor(config))
    graph.add_node("score", make_scorer())
    graph.add_node("summarize", make_summarizer(summarizer, config))
    graph.add_node("archive", make_archiver(artifacts))
    graph.add_node("assemble", make_assembler())

    graph.add_edge(START, "select")
    graph.add_edge("select", "fetch")
    graph.add_edge("fetch", "extract")
    graph.add_edge("extract", "score")
    graph.add_edge("score", "summarize")
    graph.add_edge("summarize", "archive")
    graph.add_edge("archive", "assemble")
    graph.add_edge("assemble", END)

    return graph.compile()


def _fallback_method(config: Settings, url: str, options: dict[str, Any]) -> Optional[FetchMethod]:
    try:
        return select_strategy(url, effective_config(config, options))
    except ValueError:
        return None


def run_page(
    graph,
    config: Settings,
    url: str,
    keywords: list[str],
    options: Optional[dict[str, Any]] = None,
    cancel: Optional[threading.Event] = None,
) -> PageResult:
    """Run one URL through *graph*; failures come back as data, not exceptions."""
    options = options or {}
    try:
        final = graph.invoke(
            {"url": url, "keywords": list(keywords), "options": options, "cancel": cancel}
        )
        return final["result"]
    except Exception as exc:  # noqa: BLE001
        logger.warning("[SCRAPE] ✗ %s: %s", url, exc)
        return PageResult.failed(url, str(exc) or type(exc).__name__, method=_fallback_method(config, url, options))
