"""Scraper package: fetch strategy, fetchers, extraction and scoring."""

from harvester.scraper.extractor import extract_content
from harvester.scraper.fetcher import LightweightFetcher, RenderedFetcher
from harvester.scraper.models import (
    Extraction,
    FetchMethod,
    PageResult,
    RawPage,
    RenderedPage,
)
from harvester.scraper.retry import RetrySpec, with_retry
from harvester.scraper.scorer import score_keywords, total_matches
from harvester.scraper.strategy import select_strategy

__all__ = [
    "extract_content",
    "LightweightFetcher",
    "RenderedFetcher",
    "Extraction",
    "FetchMethod",
    "PageResult",
    "RawPage",
    "RenderedPage",
    "RetrySpec",
    "with_retry",
    "score_keywords",
    "total_matches",
    "select_strategy",
]
