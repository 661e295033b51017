"""Unit tests for the agent layer: summarization chain, discovery and the
per-URL pipeline graph.

Mocking strategy
----------------
* LLM calls : a ``MagicMock(spec=SummarizerService)`` stands in for the
  backend; ``LangChainSummarizer._get_llm`` is patched where the LangChain
  adapter itself is exercised.
* Network   : ``DDGS`` is patched; fetchers are ``MagicMock`` objects.
"""

from __future__ import annotations

import dataclasses
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch
from urllib.parse import urlparse

import pytest
from langchain_core.messages import HumanMessage, SystemMessage

from harvester.agent.discovery import (
    NEWS_URL,
    WEATHER_URL,
    DuckDuckGoProvider,
    ReferenceSearchProvider,
    RuleBasedProvider,
    SearchProviderChain,
    discover,
)
from harvester.agent.pipeline import build_page_graph, run_page
from harvester.agent.summarizer import (
    TRUNCATION_MARKER,
    LangChainSummarizer,
    NullSummarizer,
    StructuredSummary,
    SummarizerService,
    build_summarizer,
    summarize,
    truncate_text,
)
from harvester.config import Settings
from harvester.errors import FetchError, SummarizationError
from harvester.scraper.fetcher import LightweightFetcher, RenderedFetcher
from harvester.scraper.models import FetchMethod, RawPage, RenderedPage
from harvester.scraper.retry import RetrySpec

from tests.conftest import page_html


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _summarizer(structured=None, plain=None) -> MagicMock:
    backend = MagicMock(spec=SummarizerService)
    backend.name = "fake"
    if isinstance(structured, Exception):
        backend.structured.side_effect = structured
    else:
        backend.structured.return_value = structured
    if isinstance(plain, Exception):
        backend.plain.side_effect = plain
    else:
        backend.plain.return_value = plain
    return backend


_STRUCTURED = StructuredSummary(
    summary="Batteries are improving.",
    key_points=["solid electrolytes", "higher density"],
    topics=["energy"],
    sentiment="positive",
    entities=["Toyota"],
)


# ---------------------------------------------------------------------------
# summarizer.py
# ---------------------------------------------------------------------------

class TestSummarize:
    def test_structured_stage(self):
        result = summarize("Some page text", ["battery"], 1000, _summarizer(structured=_STRUCTURED))
        assert result.stage == "structured"
        assert result.summary == "Batteries are improving."
        assert result.key_points == ["solid electrolytes", "higher density"]
        assert result.degraded is False

    def test_falls_back_to_plain(self):
        backend = _summarizer(structured=SummarizationError("bad json"), plain="Plain summary")
        result = summarize("Some page text", [], 1000, backend)
        assert result.stage == "plain"
        assert result.summary == "Plain summary"
        assert result.degraded is False
        assert any("bad json" in e for e in result.errors)

    def test_falls_back_to_raw_text(self):
        backend = _summarizer(
            structured=SummarizationError("down"), plain=SummarizationError("also down")
        )
        result = summarize("Raw page text", [], 1000, backend)
        assert result.stage == "raw"
        assert result.degraded is True
        assert result.summary == "Raw page text"
        assert len(result.errors) == 2

    def test_unexpected_exceptions_never_escape(self):
        backend = _summarizer(structured=RuntimeError("?"), plain=KeyError("x"))
        assert summarize("text", [], 100, backend).degraded is True

    def test_truncates_before_summarizing(self):
        backend = _summarizer(structured=SummarizationError("x"), plain=SummarizationError("y"))
        result = summarize("abcdefghij", [], 4, backend)
        assert result.summary == "abcd" + TRUNCATION_MARKER
        assert result.truncated is True

    def test_keywords_reach_backend(self):
        backend = _summarizer(structured=_STRUCTURED)
        summarize("text", ["pricing", "plans"], 100, backend, title="T", url="https://x")
        context, keywords = backend.structured.call_args.args
        assert keywords == ["pricing", "plans"]
        assert "TITLE: T" in context
        assert "URL: https://x" in context

    def test_empty_text_skips_backend(self):
        backend = _summarizer(structured=_STRUCTURED)
        result = summarize("   ", ["x"], 100, backend)
        assert result.degraded is True
        assert result.summary == ""
        backend.structured.assert_not_called()

    def test_null_summarizer_degrades(self):
        result = summarize("Page text", [], 100, NullSummarizer())
        assert result.degraded is True
        assert result.summary == "Page text"


class TestTruncateText:
    def test_short_text_untouched(self):
        assert truncate_text("abc", 10) == ("abc", False)

    def test_long_text_cut(self):
        assert truncate_text("abcdef", 3) == ("abc" + TRUNCATION_MARKER, True)


class TestBuildSummarizer:
    def test_none_provider(self):
        assert isinstance(build_summarizer(Settings(llm_provider="none")), NullSummarizer)

    def test_openai_without_key_is_null(self):
        config = Settings(llm_provider="openai", openai_api_key="")
        assert isinstance(build_summarizer(config), NullSummarizer)

    def test_openai_with_key(self):
        config = Settings(llm_provider="openai", openai_api_key="sk-test")
        assert isinstance(build_summarizer(config), LangChainSummarizer)

    def test_ollama(self):
        assert isinstance(build_summarizer(Settings(llm_provider="ollama")), LangChainSummarizer)


class TestLangChainSummarizer:
    def test_structured_uses_structured_output(self):
        llm = MagicMock()
        llm.with_structured_output.return_value.invoke.return_value = _STRUCTURED
        summarizer = LangChainSummarizer(Settings(llm_provider="openai", openai_api_key="k"))
        with patch.object(summarizer, "_get_llm", return_value=llm):
            result = summarizer.structured("context", ["kw"])
        assert result.summary == "Batteries are improving."
        llm.with_structured_output.assert_called_once_with(StructuredSummary)
        system, human = llm.with_structured_output.return_value.invoke.call_args.args[0]
        assert isinstance(system, SystemMessage)
        assert isinstance(human, HumanMessage)
        assert "kw" in human.content

    def test_plain_uses_fallback_model(self):
        llm = MagicMock()
        llm.invoke.return_value = SimpleNamespace(content="  extracted  ")
        summarizer = LangChainSummarizer(Settings(llm_provider="openai", openai_api_key="k"))
        with patch.object(summarizer, "_get_llm", return_value=llm) as get_llm:
            assert summarizer.plain("text", []) == "extracted"
        assert get_llm.call_args.kwargs["fallback"] is True

    def test_plain_rejects_empty_response(self):
        llm = MagicMock()
        llm.invoke.return_value = SimpleNamespace(content="")
        summarizer = LangChainSummarizer(Settings(llm_provider="ollama"))
        with patch.object(summarizer, "_get_llm", return_value=llm):
            with pytest.raises(SummarizationError):
                summarizer.plain("text", [])

    def test_invoke_failure_wrapped(self):
        llm = MagicMock()
        llm.with_structured_output.return_value.invoke.side_effect = RuntimeError("429")
        summarizer = LangChainSummarizer(Settings(llm_provider="ollama"))
        with patch.object(summarizer, "_get_llm", return_value=llm):
            with pytest.raises(SummarizationError, match="429"):
                summarizer.structured("context", [])


# ---------------------------------------------------------------------------
# discovery.py
# ---------------------------------------------------------------------------

class TestRuleBasedProvider:
    def test_weather(self):
        assert RuleBasedProvider().search("weather in Paris tomorrow") == [WEATHER_URL]

    def test_news(self):
        assert RuleBasedProvider().search("latest tech news") == [NEWS_URL]

    def test_question_routes_to_encyclopedia(self):
        urls = RuleBasedProvider().search("What is quantum computing?")
        assert urls == ["https://en.wikipedia.org/wiki/quantum_computing"]

    def test_tell_me_about(self):
        urls = RuleBasedProvider().search("tell me about Ada Lovelace")
        assert urls == ["https://en.wikipedia.org/wiki/Ada_Lovelace"]

    def test_no_rule(self):
        assert RuleBasedProvider().search("cheap flights") == []


class TestDuckDuckGoProvider:
    def test_returns_hrefs(self):
        with patch("harvester.agent.discovery.DDGS") as ddgs:
            ddgs.return_value.__enter__.return_value.text.return_value = [
                {"href": "https://a.example"},
                {"href": "https://b.example"},
                {"title": "no href"},
            ]
            urls = DuckDuckGoProvider().search("python", max_results=3)
        assert urls == ["https://a.example", "https://b.example"]

    def test_rate_limit_retried_then_empty(self):
        from duckduckgo_search.exceptions import RatelimitException

        provider = DuckDuckGoProvider(retry_spec=RetrySpec(max_attempts=2, base_delay=0.0))
        with patch("harvester.agent.discovery.DDGS") as ddgs:
            ddgs.return_value.__enter__.return_value.text.side_effect = RatelimitException("202")
            assert provider.search("python") == []
            assert ddgs.return_value.__enter__.return_value.text.call_count == 2


class TestDiscover:
    def test_question_is_non_empty(self):
        assert discover("what is quantum computing", 3)

    def test_empty_query(self):
        assert discover("", 3) == []
        assert discover("   ", 3) == []

    def test_non_positive_limit(self):
        assert discover("anything", 0) == []

    def test_reference_fallback(self):
        urls = discover("cheap flights to Lisbon", 3)
        assert urls == [
            "https://en.wikipedia.org/wiki/Special:Search?search=cheap+flights+to+Lisbon",
            "https://www.britannica.com/search?query=cheap+flights+to+Lisbon",
        ]

    def test_truncates_to_limit(self):
        assert len(discover("cheap flights", 1)) == 1

    def test_first_non_empty_provider_wins(self):
        empty = MagicMock(spec=ReferenceSearchProvider)
        empty.name = "empty"
        empty.search.return_value = []
        chain = SearchProviderChain([empty, ReferenceSearchProvider()])
        assert discover("solar", 3, chain=chain)[0].startswith("https://en.wikipedia.org")

    def test_provider_errors_become_empty(self):
        chain = MagicMock(spec=SearchProviderChain)
        chain.search.side_effect = RuntimeError("boom")
        assert discover("anything", 3, chain=chain) == []


# ---------------------------------------------------------------------------
# pipeline.py
# ---------------------------------------------------------------------------

@pytest.fixture()
def graph_parts(tmp_path):
    from harvester.db.artifacts import ArtifactStore

    config = Settings(workspace_dir=tmp_path, llm_provider="none", use_rendered_fetch=True)
    lightweight = MagicMock(spec=LightweightFetcher)
    rendered = MagicMock(spec=RenderedFetcher)
    artifacts = ArtifactStore(tmp_path / "artifacts")
    return config, lightweight, rendered, artifacts


class TestPageGraph:
    def test_lightweight_page_produces_full_result(self, graph_parts):
        config, lightweight, rendered, artifacts = graph_parts
        url = "https://en.wikipedia.org/wiki/Battery"
        lightweight.fetch.return_value = RawPage(
            url=url, html=page_html("Battery", "A battery stores energy. Battery!"), status_code=200, requested_url=url
        )
        graph = build_page_graph(config, lightweight, rendered, _summarizer(structured=_STRUCTURED), artifacts)

        result = run_page(graph, config, url, ["battery"])

        assert result.success is True
        assert result.method is FetchMethod.LIGHTWEIGHT
        assert result.title == "Battery"
        assert result.keyword_matches == {"battery": 3}
        assert result.total_keyword_matches == 3
        assert result.text_length == len(result.main_text)
        assert result.summary["summary"] == "Batteries are improving."
        assert result.screenshot_url is None
        rendered.fetch.assert_not_called()

    def test_rendered_page_stores_screenshot(self, graph_parts):
        config, lightweight, rendered, artifacts = graph_parts
        url = "https://app.example.com/"
        rendered.fetch.return_value = RenderedPage(
            url=url,
            html="<html><body><div id='root'></div></body></html>",
            visible_text="Visible app text",
            title="App",
            description="An app",
            screenshot=b"png-bytes",
            requested_url=url,
        )
        graph = build_page_graph(config, lightweight, rendered, NullSummarizer(), artifacts)

        result = run_page(graph, config, url, [])

        assert result.success is True
        assert result.method is FetchMethod.RENDERED
        assert result.title == "App"
        assert result.main_text == "Visible app text"
        assert result.screenshot_url.startswith("file://")
        assert result.screenshot_url.endswith(".png")
        assert result.summary["degraded"] is True

    def test_fetch_failure_becomes_failed_result(self, graph_parts):
        config, lightweight, rendered, artifacts = graph_parts
        url = "https://en.wikipedia.org/wiki/Missing"
        lightweight.fetch.side_effect = FetchError(url, "HTTP 404")
        graph = build_page_graph(config, lightweight, rendered, NullSummarizer(), artifacts)

        result = run_page(graph, config, url, ["x"])

        assert result.success is False
        assert "HTTP 404" in result.error
        assert result.url == url
        assert result.method is FetchMethod.LIGHTWEIGHT

    def test_render_option_disables_browser(self, graph_parts):
        config, lightweight, rendered, artifacts = graph_parts
        url = "https://app.example.com/"
        lightweight.fetch.return_value = RawPage(url=url, html=page_html("T", "b"), status_code=200)
        graph = build_page_graph(config, lightweight, rendered, NullSummarizer(), artifacts)

        result = run_page(graph, config, url, [], options={"render": False, "max_retries": 5})

        assert result.method is FetchMethod.LIGHTWEIGHT
        assert lightweight.fetch.call_args.kwargs["retry_spec"].max_attempts == 5
        rendered.fetch.assert_not_called()
        assert lightweight.fetch.call_args.kwargs["retry_spec"].base_delay == config.retry_base_delay

    def test_max_retries_keeps_configured_backoff(self, graph_parts):
        config, lightweight, rendered, artifacts = graph_parts
        config = dataclasses.replace(config, retry_base_delay=0.25)
        url = "https://en.wikipedia.org/wiki/Backoff"
        lightweight.fetch.return_value = RawPage(url=url, html=page_html("T", "b"), status_code=200)
        graph = build_page_graph(config, lightweight, rendered, NullSummarizer(), artifacts)

        run_page(graph, config, url, [], options={"max_retries": 4})

        spec = lightweight.fetch.call_args.kwargs["retry_spec"]
        assert (spec.max_attempts, spec.base_delay) == (4, 0.25)

    def test_long_url_screenshot_name_is_bounded(self, graph_parts):
        config, lightweight, rendered, artifacts = graph_parts
        url = "https://app.example.com/search?q=" + "x" * 300
        rendered.fetch.return_value = RenderedPage(
            url=url,
            html="<html><body></body></html>",
            visible_text="Long query page",
            screenshot=b"png-bytes",
            requested_url=url,
        )
        graph = build_page_graph(config, lightweight, rendered, NullSummarizer(), artifacts)

        result = run_page(graph, config, url, [])

        assert result.success is True
        stored = Path(urlparse(result.screenshot_url).path)
        assert stored.read_bytes() == b"png-bytes"
        assert len(stored.name) < 255
