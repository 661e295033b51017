"""Scrape job orchestration.

:class:`ScrapeService` is built once per process (or per test) with its
collaborators injected: settings, the record store, the artifact store, the
summarizer and both fetchers.  It owns every job from ``queued`` to a
terminal status:

    queued → running → completed | failed

Jobs run on a small background pool so ``create_job`` returns at once.
Inside a job, URLs are scraped on a second bounded pool and the results are
slotted back by their original index, so output order always matches input
order.  A job is only ever marked ``failed`` when something outside the
per-URL loop breaks (in practice, persistence); per-URL failures are data.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional, Sequence

from harvester.agent.discovery import SearchProviderChain, build_default_chain, discover
from harvester.agent.pipeline import build_page_graph, run_page
from harvester.agent.summarizer import SummarizerService, build_summarizer
from harvester.config import Settings, settings
from harvester.db.artifacts import ArtifactStore
from harvester.db.connection import get_connection
from harvester.db.migrations import init_db
from harvester.db.records import (
    AGENT_TASKS,
    SCRAPE_ERRORS,
    SCRAPE_JOBS,
    SCRAPED_DATA,
    SCRAPES,
    SCRAPING_SOURCES,
    RecordStore,
)
from harvester.errors import InputError, PersistenceError
from harvester.scraper.fetcher import LightweightFetcher, RenderedFetcher
from harvester.scraper.models import PageResult

logger = logging.getLogger(__name__)

QUEUED = "queued"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"

CANCELLED_ERROR = "cancelled"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def assistant_tool_definition() -> dict[str, Any]:
    """Function-tool schema an upstream assistant can use to call the scraper."""
    return {
        "type": "function",
        "function": {
            "name": "searchWeb",
            "description": (
                "Search for information on the web and extract relevant content "
                "from web pages"
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "url": {
                        "type": "string",
                        "description": "Specific URL to scrape for information",
                    },
                    "query": {
                        "type": "string",
                        "description": "Search query if no specific URL is provided",
                    },
                    "keywords": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Keywords to focus on when extracting content",
                    },
                },
                "required": [],
            },
        },
    }


class ScrapeService:
    """Job controller and caller-facing entry points for the scraper."""

    def __init__(
        self,
        config: Settings,
        records: RecordStore,
        artifacts: ArtifactStore,
        summarizer: Optional[SummarizerService] = None,
        lightweight: Optional[LightweightFetcher] = None,
        rendered: Optional[RenderedFetcher] = None,
        discovery: Optional[SearchProviderChain] = None,
    ) -> None:
        self._config = config
        self._records = records
        self._artifacts = artifacts
        self._summarizer = summarizer or build_summarizer(config)
        self._discovery = discovery or build_default_chain(config)
        self._graph = build_page_graph(
            config,
            lightweight or LightweightFetcher.from_settings(config),
            rendered or RenderedFetcher.from_settings(config),
            self._summarizer,
            artifacts,
        )

        self._executor = ThreadPoolExecutor(
            max_workers=max(1, config.max_concurrent_jobs),
            thread_name_prefix="scrape-job",
        )
        self._lock = threading.Lock()
        self._futures: dict[str, Future] = {}
        self._cancels: dict[str, threading.Event] = {}

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> "ScrapeService":
        """Wire a service from *config*, opening the configured database if needed."""
        config = config or settings
        if conn is None:
            conn = get_connection(config=config)
        init_db(conn)
        return cls(
            config,
            RecordStore(conn),
            ArtifactStore(config.artifacts_dir),
        )

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    def create_job(
        self,
        urls: Sequence[str],
        keywords: Iterable[str] = (),
        task_id: Optional[str] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> str:
        """Persist a ``queued`` job, schedule it, and return its id at once.

        Raises:
            InputError: If *urls* holds no usable URL.
            PersistenceError: If the job record cannot be written.
        """
        targets = [u.strip() for u in urls if u and u.strip()]
        if not targets:
            raise InputError("At least one URL is required to start a scraping job")

        job_id = _new_id("scrape")
        self._records.create_record(
            SCRAPE_JOBS,
            job_id,
            {
                "urls": targets,
                "keywords": [k for k in keywords if k],
                "task_id": task_id,
                "options": options or {},
                "status": QUEUED,
            },
        )

        cancel = threading.Event()
        with self._lock:
            self._cancels[job_id] = cancel
            future = self._executor.submit(self.run, job_id)
            self._futures[job_id] = future
        future.add_done_callback(lambda _f, jid=job_id: self._forget(jid))

        logger.info("[JOB] %s queued with %d URL(s)", job_id, len(targets))
        return job_id

    def _forget(self, job_id: str) -> None:
        with self._lock:
            self._futures.pop(job_id, None)
            self._cancels.pop(job_id, None)

    def run(self, job_id: str) -> None:
        """Process every URL of *job_id* and finalise its status.

        Safe to call directly (tests, CLI); a job that has already left
        ``queued`` is left untouched.
        """
        with self._lock:
            cancel = self._cancels.get(job_id) or threading.Event()

        try:
            job = self._records.get_record(SCRAPE_JOBS, job_id)
            if job is None:
                raise PersistenceError(f"Scrape job not found: {job_id}")
            if job.fields.get("status") != QUEUED:
                logger.warning("[JOB] %s is %s; not running it again", job_id, job.fields.get("status"))
                return

            self._records.update_record(
                SCRAPE_JOBS, job_id, {"status": RUNNING, "started_at": _now()}
            )
            logger.info("[JOB] %s running", job_id)

            results = self._scrape_all(
                job.fields.get("urls", []),
                job.fields.get("keywords", []),
                job.fields.get("options", {}),
                cancel,
            )
            payload = [r.to_dict() for r in results]
            success_count = sum(1 for r in results if r.success)

            scraped_data_id = f"scrape_result_{job_id}"
            self._records.create_record(
                SCRAPED_DATA,
                scraped_data_id,
                {
                    "job_id": job_id,
                    "task_id": job.fields.get("task_id"),
                    "results": payload,
                    "auto_process": True,
                },
            )
            raw_data_path = f"scraping/{scraped_data_id}.json"
            raw_data_url = self._artifacts.store(
                json.dumps(payload, indent=2), raw_data_path, "application/json"
            )

            self.notify_next_agent(
                {
                    "job_id": job_id,
                    "scraped_data_id": scraped_data_id,
                    "task_id": job.fields.get("task_id"),
                }
            )

            self._records.update_record(
                SCRAPE_JOBS,
                job_id,
                {
                    "status": COMPLETED,
                    "scraped_data_id": scraped_data_id,
                    "raw_data_path": raw_data_path,
                    "raw_data_url": raw_data_url,
                    "ended_at": _now(),
                    "result_count": len(results),
                    "success_count": success_count,
                    "cancelled": cancel.is_set(),
                },
            )
            logger.info(
                "[JOB] %s completed: %d/%d succeeded", job_id, success_count, len(results)
            )

        except Exception as exc:  # noqa: BLE001
            logger.error("[JOB] %s failed: %s", job_id, exc)
            try:
                self._records.update_record(
                    SCRAPE_JOBS,
                    job_id,
                    {"status": FAILED, "error": str(exc), "ended_at": _now()},
                )
            except PersistenceError as inner:
                logger.error("[JOB] could not record failure of %s: %s", job_id, inner)

    def _scrape_all(
        self,
        urls: Sequence[str],
        keywords: Sequence[str],
        options: dict[str, Any],
        cancel: threading.Event,
    ) -> list[PageResult]:
        """Scrape *urls* on a bounded pool; results keep the input order."""
        results: list[Optional[PageResult]] = [None] * len(urls)

        def work(index: int, url: str) -> tuple[int, PageResult]:
            if cancel.is_set():
                return index, PageResult.failed(url, CANCELLED_ERROR)
            return index, self.scrape_url(url, keywords, options, cancel)

        workers = max(1, min(self._config.max_concurrent_scrapes, len(urls)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scrape-url") as pool:
            futures = [pool.submit(work, i, url) for i, url in enumerate(urls)]
            for future in as_completed(futures):
                index, result = future.result()
                results[index] = result

        return [r for r in results if r is not None]

    def scrape_url(
        self,
        url: str,
        keywords: Sequence[str] = (),
        options: Optional[dict[str, Any]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> PageResult:
        """Run a single URL through the pipeline.  Never raises."""
        result = run_page(self._graph, self._config, url, list(keywords), options, cancel)
        if result.success:
            logger.info(
                "[SCRAPE] ✓ %s (%s, %d chars, %d keyword hits)",
                result.url,
                result.method.value if result.method else "?",
                result.text_length,
                result.total_keyword_matches,
            )
        return result

    def cancel(self, job_id: str) -> bool:
        """Raise the cancellation signal of a job that is still in flight."""
        with self._lock:
            event = self._cancels.get(job_id)
        if event is None:
            return False
        event.set()
        logger.info("[JOB] %s cancellation requested", job_id)
        return True

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[dict[str, Any]]:
        """Block until *job_id* has finished, then return its job record."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.get_job(job_id)

    def get_job(self, job_id: str) -> Optional[dict[str, Any]]:
        record = self._records.get_record(SCRAPE_JOBS, job_id)
        return record.to_dict() if record else None

    def get_results(self, job_id: str) -> Optional[dict[str, Any]]:
        record = self._records.get_record(SCRAPED_DATA, f"scrape_result_{job_id}")
        return record.to_dict() if record else None

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs; with ``wait=False`` in-flight jobs are cancelled."""
        if not wait:
            with self._lock:
                for event in self._cancels.values():
                    event.set()
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Caller entry points
    # ------------------------------------------------------------------

    def discover(self, query: str, max_results: Optional[int] = None) -> list[str]:
        limit = self._config.discovery_max_results if max_results is None else max_results
        return discover(query, limit, chain=self._discovery)

    def _resolve_targets(
        self, url: Optional[str], query: Optional[str], max_results: int
    ) -> list[str]:
        if not url and not query:
            raise InputError("Either url or query must be provided")
        if url:
            return [url]
        urls = self.discover(query or "", max_results)
        if not urls:
            raise InputError(f"No URLs found for query {query!r}")
        return urls

    def start(
        self,
        url: Optional[str] = None,
        query: Optional[str] = None,
        keywords: Iterable[str] = (),
        options: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Fire-and-forget entry point: create a job and return its id and URLs."""
        options = options or {}
        max_results = int(options.get("max_search_results") or self._config.discovery_max_results)
        urls = self._resolve_targets(url, query, max_results)
        job_id = self.create_job(urls, keywords, task_id=options.get("task_id"), options=options)
        return {
            "job_id": job_id,
            "urls": urls,
            "message": f"Scraping job started with {len(urls)} URLs",
        }

    def scrape_sync(
        self,
        url: Optional[str] = None,
        query: Optional[str] = None,
        keywords: Iterable[str] = (),
        options: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Scrape one URL (or the best match for *query*) and return the payload.

        A failed scrape is recorded under ``scrape_errors`` and reported as
        ``{"success": False, ...}``.

        Raises:
            InputError: If neither *url* nor a discoverable *query* is given.
        """
        options = options or {}
        target = self._resolve_targets(url, query, 1)[0]
        result = self.scrape_url(target, list(keywords), options)
        if not result.success:
            return self._record_error(target, query, result.error or "unknown error")

        scrape_id = _new_id("scrape")
        summary = result.summary or {}
        try:
            self._records.create_record(
                SCRAPES,
                scrape_id,
                {
                    "url": result.url,
                    "query": query,
                    "raw": {
                        "title": result.title,
                        "description": result.description,
                        "text_length": result.text_length,
                    },
                    "result": result.to_dict(),
                    "status": COMPLETED,
                },
            )
        except PersistenceError as exc:
            return self._record_error(target, query, str(exc))

        self.notify_next_agent({"scrape_id": scrape_id, "url": result.url, "title": result.title})
        return {
            "success": True,
            "id": scrape_id,
            "data": {
                "url": result.url,
                "title": result.title,
                "method": result.method.value if result.method else None,
                "summary": summary.get("summary", ""),
                "key_points": summary.get("key_points", []),
                "degraded": summary.get("degraded", False),
                "keyword_matches": result.keyword_matches,
                "total_keyword_matches": result.total_keyword_matches,
            },
        }

    def _record_error(self, url: str, query: Optional[str], error: str) -> dict[str, Any]:
        error_id = _new_id("scrape_error")
        self._records.create_record(
            SCRAPE_ERRORS,
            error_id,
            {"url": url, "query": query, "error": error},
        )
        return {"success": False, "error": error, "error_id": error_id}

    def notify_next_agent(self, data: dict[str, Any], agent_type: str = "copywriter") -> bool:
        """Queue a task for the next agent in the workflow.

        Returns ``False`` (after logging) instead of raising when the task
        cannot be written; the scrape itself already succeeded.
        """
        try:
            self._records.create_record(
                AGENT_TASKS,
                _new_id("task"),
                {
                    "type": agent_type,
                    "source": "web_scraper",
                    "status": "pending",
                    "data": data,
                },
            )
        except PersistenceError as exc:
            logger.error("[JOB] failed to notify %s agent: %s", agent_type, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Daily scraping from configured sources
    # ------------------------------------------------------------------

    def add_source(
        self,
        urls: Sequence[str],
        keywords: Iterable[str] = (),
        name: Optional[str] = None,
        active: bool = True,
    ) -> str:
        """Register a recurring scraping source and return its id."""
        source_id = _new_id("source")
        self._records.create_record(
            SCRAPING_SOURCES,
            source_id,
            {"name": name, "urls": list(urls), "keywords": list(keywords), "active": active},
        )
        return source_id

    def list_sources(self, active_only: bool = False) -> list[dict[str, Any]]:
        filters = {"active": True} if active_only else {}
        return [r.to_dict() for r in self._records.list_records(SCRAPING_SOURCES, **filters)]

    def run_daily(self, today: Optional[date] = None) -> list[str]:
        """Create one job per active source; returns the new job ids."""
        stamp = (today or date.today()).isoformat()
        job_ids: list[str] = []
        for source in self._records.list_records(SCRAPING_SOURCES, active=True):
            try:
                job_ids.append(
                    self.create_job(
                        source.fields.get("urls", []),
                        source.fields.get("keywords", []),
                        task_id=f"daily_{stamp}_{source.id}",
                    )
                )
            except InputError as exc:
                logger.warning("[JOB] skipping source %s: %s", source.id, exc)
        logger.info("[JOB] daily scraping initiated: %d job(s)", len(job_ids))
        return job_ids
