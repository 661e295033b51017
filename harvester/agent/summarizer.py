"""Summarization capability and its staged fallback chain.

``summarize`` never raises.  It tries, in order:

1. a structured call (summary, key points, topics, sentiment, entities)
   biased toward the caller's keywords;
2. a plain-text extraction prompt on a cheaper model with a smaller output
   budget;
3. the truncated raw text itself, flagged ``degraded``.

Which backend answers stages 1 and 2 is decided once, when the service is
built by :func:`build_summarizer`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, List, Sequence

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from harvester.config import Settings
from harvester.errors import SummarizationError
from harvester.scraper.models import Heading

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "...[truncated]"

_STRUCTURED_SYSTEM_PROMPT = (
    "You are an expert content analyst for a team of research agents.\n"
    "Extract the most important and relevant information from web content and "
    "return it in the requested structure:\n"
    "- summary: a concise summary of the main content (200-300 words)\n"
    "- key_points: the 5-7 most important points\n"
    "- topics: the main topics covered\n"
    "- sentiment: positive, negative, neutral or mixed\n"
    "- entities: key people, organizations and products mentioned"
)

_PLAIN_SYSTEM_PROMPT = (
    "You are an expert content analyst. Extract the most relevant information "
    "from web content."
)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class StructuredSummary(BaseModel):
    """Schema the structured stage asks the model to fill in."""

    summary: str = Field(description="Concise summary of the main content.")
    key_points: List[str] = Field(default_factory=list, description="Most important points.")
    topics: List[str] = Field(default_factory=list, description="Main topics covered.")
    sentiment: str = Field(default="neutral", description="positive, negative, neutral or mixed.")
    entities: List[str] = Field(default_factory=list, description="Key people, organizations, products.")


@dataclass
class SummaryResult:
    summary: str
    key_points: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)
    sentiment: str = "unknown"
    entities: List[str] = field(default_factory=list)
    stage: str = "structured"
    degraded: bool = False
    truncated: bool = False
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Summarizer services
# ---------------------------------------------------------------------------

class SummarizerService(ABC):
    """A backend able to answer the structured and plain stages."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""

    @abstractmethod
    def structured(self, context: str, keywords: Sequence[str]) -> StructuredSummary:
        """Return a structured summary of *context* or raise ``SummarizationError``."""

    @abstractmethod
    def plain(self, text: str, keywords: Sequence[str]) -> str:
        """Return a plain-text extraction of *text* or raise ``SummarizationError``."""


class NullSummarizer(SummarizerService):
    """Stand-in used when no backend is configured; every stage fails fast."""

    @property
    def name(self) -> str:
        return "none"

    def structured(self, context: str, keywords: Sequence[str]) -> StructuredSummary:
        raise SummarizationError("No summarization backend configured")

    def plain(self, text: str, keywords: Sequence[str]) -> str:
        raise SummarizationError("No summarization backend configured")


class LangChainSummarizer(SummarizerService):
    """OpenAI or Ollama chat models driven through LangChain."""

    def __init__(self, config: Settings) -> None:
        self._config = config

    @property
    def name(self) -> str:
        return f"langchain:{self._config.llm_provider}"

    def _get_llm(self, fallback: bool = False, max_tokens: int | None = None) -> Any:
        """Return a configured LangChain chat model for the current provider."""
        config = self._config
        if config.llm_provider == "openai":
            from langchain_openai import ChatOpenAI  # noqa: PLC0415

            model = config.openai_fallback_model if fallback else config.openai_chat_model
            return ChatOpenAI(
                model=model,
                temperature=0.3,
                max_tokens=max_tokens,
                api_key=config.openai_api_key,
            )

        from langchain_ollama import ChatOllama  # noqa: PLC0415

        return ChatOllama(
            model=config.ollama_chat_model,
            base_url=config.ollama_base_url,
            temperature=0.3,
            num_predict=max_tokens,
        )

    def structured(self, context: str, keywords: Sequence[str]) -> StructuredSummary:
        focus = ", ".join(keywords) or "(none)"
        llm = self._get_llm().with_structured_output(StructuredSummary)
        messages = [
            SystemMessage(content=_STRUCTURED_SYSTEM_PROMPT),
            HumanMessage(content=f"Focus especially on these keywords: {focus}\n\n{context}"),
        ]
        try:
            result = llm.invoke(messages)
        except Exception as exc:
            raise SummarizationError(f"structured call failed: {exc}") from exc
        if not isinstance(result, StructuredSummary) or not result.summary.strip():
            raise SummarizationError("malformed structured response")
        return result

    def plain(self, text: str, keywords: Sequence[str]) -> str:
        focus = ", ".join(keywords) or "(none)"
        llm = self._get_llm(fallback=True, max_tokens=self._config.summary_plain_max_tokens)
        prompt = (
            "Extract the most important and relevant information from this web page text.\n"
            f"Focus especially on information related to these keywords: {focus}.\n\n"
            f"Page text:\n{text}\n\n"
            "Extract only the main meaningful content. Ignore navigation menus, ads, "
            "footers, headers, and other boilerplate elements. Format the extracted "
            "content in a clean, readable way."
        )
        try:
            response = llm.invoke(
                [SystemMessage(content=_PLAIN_SYSTEM_PROMPT), HumanMessage(content=prompt)]
            )
        except Exception as exc:
            raise SummarizationError(f"plain call failed: {exc}") from exc
        content = response.content if hasattr(response, "content") else str(response)
        if not isinstance(content, str) or not content.strip():
            raise SummarizationError("empty plain-text response")
        return content.strip()


def build_summarizer(config: Settings) -> SummarizerService:
    """Pick the summarization backend once, from *config*.

    ``LLM_PROVIDER=none`` and an OpenAI provider without an API key both
    yield a :class:`NullSummarizer`, so every summary degrades to raw text.
    """
    provider = config.llm_provider.strip().lower()
    if provider == "none":
        return NullSummarizer()
    if provider == "openai" and not config.openai_api_key:
        logger.warning("[SUMMARY] OPENAI_API_KEY not set; summaries will be raw text")
        return NullSummarizer()
    return LangChainSummarizer(config)


# ---------------------------------------------------------------------------
# Fallback chain
# ---------------------------------------------------------------------------

def truncate_text(text: str, max_length: int) -> tuple[str, bool]:
    """Hard-cut *text* to *max_length* characters plus :data:`TRUNCATION_MARKER`."""
    if max_length <= 0 or len(text) <= max_length:
        return text, False
    return text[:max_length] + TRUNCATION_MARKER, True


def _build_context(
    text: str,
    url: str,
    title: str,
    description: str,
    headings: Iterable[Heading],
) -> str:
    outline = "\n".join(f"{'-' * h.level} {h.text}" for h in headings)
    return (
        f"URL: {url}\n"
        f"TITLE: {title}\n"
        f"DESCRIPTION: {description}\n\n"
        f"CONTENT:\n{text}\n\n"
        f"HEADINGS:\n{outline}\n"
    )


def summarize(
    text: str,
    keywords: Sequence[str],
    max_length: int,
    summarizer: SummarizerService,
    *,
    url: str = "",
    title: str = "",
    description: str = "",
    headings: Iterable[Heading] = (),
) -> SummaryResult:
    """Summarize *text*, degrading stage by stage instead of raising."""
    clipped, truncated = truncate_text(text or "", max_length)
    keywords = list(keywords)
    errors: list[str] = []

    if not clipped.strip():
        return SummaryResult(
            summary="",
            stage="raw",
            degraded=True,
            errors=["no text to summarize"],
        )

    context = _build_context(clipped, url, title, description, headings)
    try:
        result = summarizer.structured(context, keywords)
        logger.info("[SUMMARY] structured summary via %s", summarizer.name)
        return SummaryResult(
            summary=result.summary,
            key_points=list(result.key_points),
            topics=list(result.topics),
            sentiment=result.sentiment,
            entities=list(result.entities),
            stage="structured",
            truncated=truncated,
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("[SUMMARY] structured stage failed: %s", exc)
        errors.append(f"structured: {exc}")

    try:
        plain = summarizer.plain(clipped, keywords)
        logger.info("[SUMMARY] plain-text summary via %s", summarizer.name)
        return SummaryResult(summary=plain, stage="plain", truncated=truncated, errors=errors)
    except Exception as exc:  # noqa: BLE001
        logger.warning("[SUMMARY] plain stage failed: %s", exc)
        errors.append(f"plain: {exc}")

    return SummaryResult(
        summary=clipped,
        stage="raw",
        degraded=True,
        truncated=truncated,
        errors=errors,
    )
