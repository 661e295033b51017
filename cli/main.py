"""Harvester CLI: entry-point for scraping operations.

Usage:
    harvester --help

Command groups:
    db        → database setup
    scrape    → scrape one page synchronously
    discover  → map a query to candidate URLs
    job       → submit and inspect background scrape jobs
    sources   → manage recurring scraping sources
    daily     → run one job per active source
"""

from __future__ import annotations

import json
from typing import Any, List, Optional

import typer

from harvester.config import configure_logging, settings
from harvester.db import get_connection, init_db
from harvester.errors import HarvesterError

app = typer.Typer(
    name="harvester",
    help="Harvester web scraping CLI.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at INFO level."),
) -> None:
    configure_logging("INFO" if verbose else "WARNING")


def _service():
    from harvester.agent.jobs import ScrapeService

    return ScrapeService.from_settings()


def _dump(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


# ---------------------------------------------------------------------------
# db
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create tables if they do not exist)."""
    conn = get_connection()
    init_db(conn)
    conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path}")


# ---------------------------------------------------------------------------
# scrape / discover
# ---------------------------------------------------------------------------
@app.command("scrape")
def scrape(
    url: Optional[str] = typer.Option(None, help="URL to scrape."),
    query: Optional[str] = typer.Option(None, help="Query to discover a URL for."),
    keyword: List[str] = typer.Option([], "--keyword", "-k", help="Keyword to score (repeatable)."),
    render: bool = typer.Option(True, "--render/--no-render", help="Allow headless rendering."),
) -> None:
    """Scrape a single page and print its summary."""
    if not url and not query:
        typer.echo("[scrape] Provide --url or --query.")
        raise typer.Exit(1)

    service = _service()
    try:
        typer.echo(f"[scrape] Scraping {url or query!r} …")
        outcome = service.scrape_sync(
            url=url, query=query, keywords=keyword, options={"render": render}
        )
    except HarvesterError as exc:
        typer.echo(f"[scrape] {exc}")
        raise typer.Exit(1)
    finally:
        service.shutdown()

    if not outcome["success"]:
        typer.echo(f"[scrape] Failed: {outcome['error']}")
        raise typer.Exit(1)

    data = outcome["data"]
    typer.echo(f"[scrape] Title   : {data['title'] or '(none)'}")
    typer.echo(f"[scrape] Method  : {data['method']}")
    typer.echo(f"[scrape] Matches : {data['total_keyword_matches']} {data['keyword_matches']}")
    if data["degraded"]:
        typer.echo("[scrape] Summary unavailable; showing raw text.")
    typer.echo("")
    typer.echo(data["summary"])


@app.command("discover")
def discover_cmd(
    query: str = typer.Argument(..., help="Topic or question."),
    max_results: int = typer.Option(3, help="Maximum number of URLs."),
) -> None:
    """Print candidate URLs for a query."""
    from harvester.agent.discovery import discover

    urls = discover(query, max_results, config=settings)
    if not urls:
        typer.echo(f"[discover] No URLs found for {query!r}.")
        return
    for u in urls:
        typer.echo(f"  {u}")


# ---------------------------------------------------------------------------
# job
# ---------------------------------------------------------------------------
job_app = typer.Typer(help="Background scrape jobs.", no_args_is_help=True)
app.add_typer(job_app, name="job")


@job_app.command("submit")
def job_submit(
    urls: List[str] = typer.Argument(..., help="URLs to scrape, in order."),
    keyword: List[str] = typer.Option([], "--keyword", "-k", help="Keyword to score (repeatable)."),
    task_id: Optional[str] = typer.Option(None, help="Upstream task id to attach."),
) -> None:
    """Create a job, wait for it to finish and print its final status."""
    service = _service()
    try:
        job_id = service.create_job(urls, keyword, task_id=task_id)
        typer.echo(f"[job submit] {job_id} queued with {len(urls)} URL(s) …")
        job = service.wait(job_id)
    except HarvesterError as exc:
        typer.echo(f"[job submit] {exc}")
        raise typer.Exit(1)
    finally:
        service.shutdown()

    typer.echo(
        f"[job submit] {job_id} {job['status']}: "
        f"{job.get('success_count', 0)}/{job.get('result_count', 0)} succeeded"
    )
    if job["status"] == "failed":
        typer.echo(f"[job submit] Error: {job.get('error')}")
        raise typer.Exit(1)


@job_app.command("status")
def job_status(job_id: str = typer.Argument(..., help="Job id.")) -> None:
    """Print the stored job record."""
    service = _service()
    job = service.get_job(job_id)
    service.shutdown()
    if job is None:
        typer.echo(f"[job status] Job {job_id!r} not found.")
        raise typer.Exit(1)
    _dump(job)


@job_app.command("results")
def job_results(job_id: str = typer.Argument(..., help="Job id.")) -> None:
    """Print the stored per-URL results of a finished job."""
    service = _service()
    results = service.get_results(job_id)
    service.shutdown()
    if results is None:
        typer.echo(f"[job results] No results for {job_id!r}.")
        raise typer.Exit(1)
    _dump(results)


# ---------------------------------------------------------------------------
# sources / daily
# ---------------------------------------------------------------------------
sources_app = typer.Typer(help="Recurring scraping sources.", no_args_is_help=True)
app.add_typer(sources_app, name="sources")


@sources_app.command("add")
def sources_add(
    url: List[str] = typer.Option(..., "--url", help="Source URL (repeatable)."),
    keyword: List[str] = typer.Option([], "--keyword", "-k", help="Keyword (repeatable)."),
    name: Optional[str] = typer.Option(None, help="Display name."),
) -> None:
    """Register a source scraped by ``harvester daily``."""
    service = _service()
    source_id = service.add_source(url, keyword, name=name)
    service.shutdown()
    typer.echo(f"[sources add] Created source: {source_id}")


@sources_app.command("list")
def sources_list() -> None:
    service = _service()
    sources = service.list_sources()
    service.shutdown()
    if not sources:
        typer.echo("[sources list] No sources configured.")
        return
    for s in sources:
        state = "active" if s.get("active") else "inactive"
        typer.echo(f"  {s['id']}  [{state}]  {s.get('name') or ''}  {', '.join(s.get('urls', []))}")


@app.command("daily")
def daily() -> None:
    """Start one scrape job per active source and wait for them."""
    service = _service()
    try:
        job_ids = service.run_daily()
        for job_id in job_ids:
            job = service.wait(job_id)
            typer.echo(f"  {job_id}  {job['status'] if job else 'unknown'}")
    finally:
        service.shutdown()
    typer.echo(f"[daily] {len(job_ids)} job(s) run.")


if __name__ == "__main__":
    app()
