"""Shared fixtures: isolated settings, an in-memory record store and a
service wired with fake fetchers so no network or browser is touched."""

from __future__ import annotations

from typing import Callable
from unittest.mock import MagicMock

import pytest

from harvester.agent.jobs import ScrapeService
from harvester.agent.summarizer import NullSummarizer
from harvester.config import Settings
from harvester.db.artifacts import ArtifactStore
from harvester.db.connection import get_connection
from harvester.db.migrations import init_db
from harvester.db.records import RecordStore
from harvester.scraper.fetcher import LightweightFetcher, RenderedFetcher
from harvester.scraper.models import RawPage


def page_html(title: str, body: str) -> str:
    return (
        f"<html><head><title>{title}</title>"
        f'<meta name="description" content="About {title}"></head>'
        f"<body><main><h1>{title}</h1><p>{body}</p>"
        f'<a href="https://example.com/more">More</a></main></body></html>'
    )


@pytest.fixture()
def config(tmp_path) -> Settings:
    return Settings(
        workspace_dir=tmp_path,
        llm_provider="none",
        use_rendered_fetch=False,
        retry_max_attempts=1,
        max_concurrent_scrapes=3,
        max_concurrent_jobs=2,
    )


@pytest.fixture()
def conn():
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture()
def records(conn) -> RecordStore:
    return RecordStore(conn)


@pytest.fixture()
def artifacts(tmp_path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "artifacts")


def fake_lightweight(handler: Callable[[str], RawPage]) -> MagicMock:
    """A LightweightFetcher stand-in whose ``fetch`` delegates to *handler*."""
    fetcher = MagicMock(spec=LightweightFetcher)
    fetcher.fetch.side_effect = lambda url, cancel=None, retry_spec=None: handler(url)
    return fetcher


def ok_page(url: str) -> RawPage:
    return RawPage(
        url=url,
        html=page_html(f"Page {url}", f"Content for {url} about pricing and pricing plans."),
        status_code=200,
        requested_url=url,
    )


@pytest.fixture()
def make_service(config, records, artifacts):
    """Factory building a ScrapeService around a fake lightweight fetcher."""
    created: list[ScrapeService] = []

    def _make(handler: Callable[[str], RawPage] = ok_page, summarizer=None, **kwargs) -> ScrapeService:
        service = ScrapeService(
            kwargs.pop("config", config),
            kwargs.pop("records", records),
            kwargs.pop("artifacts", artifacts),
            summarizer=summarizer or NullSummarizer(),
            lightweight=fake_lightweight(handler),
            rendered=kwargs.pop("rendered", MagicMock(spec=RenderedFetcher)),
            **kwargs,
        )
        created.append(service)
        return service

    yield _make
    for service in created:
        service.shutdown()
