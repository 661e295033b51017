"""FastAPI application factory.

Lifespan
--------
On startup the app builds one :class:`~harvester.agent.jobs.ScrapeService`
(shared across all requests via ``request.app.state.service``) unless one was
injected through :func:`create_app`.  On shutdown it stops the job pool.

Routers
-------
    /scrape   : start a job, scrape synchronously, assistant tool schema
    /jobs     : job status, results, cancellation, daily runs

Errors
------
``InputError`` maps to 422 and ``PersistenceError`` to 503; unknown jobs are
raised as 404 inside the routers.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from harvester.agent.jobs import ScrapeService
from harvester.config import configure_logging
from harvester.errors import InputError, PersistenceError

from harvester.api.routers import jobs as jobs_router
from harvester.api.routers import scrape as scrape_router


def create_app(service: Optional[ScrapeService] = None) -> FastAPI:
    """Return a fully-configured FastAPI application instance."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        owned = service is None
        app.state.service = service or ScrapeService.from_settings()
        try:
            yield
        finally:
            if owned:
                app.state.service.shutdown(wait=False)

    app = FastAPI(
        title="Harvester API",
        description=(
            "REST interface for the Harvester scraping service. Starts "
            "background scrape jobs, scrapes single pages synchronously and "
            "exposes job status and results."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InputError)
    async def input_error_handler(request: Request, exc: InputError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    app.include_router(scrape_router.router, prefix="/scrape", tags=["scrape"])
    app.include_router(jobs_router.router, prefix="/jobs", tags=["jobs"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn harvester.api.app:app --reload
app = create_app()
