"""Scrape endpoints.

Routes
------
POST /scrape          Start a background job for a URL or a discovery query
POST /scrape/sync     Scrape one page and return the summary payload
GET  /scrape/tool     Function-tool schema for assistant integrations
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from harvester.agent.jobs import assistant_tool_definition

router = APIRouter()


class ScrapeOptions(BaseModel):
    render: Optional[bool] = None
    max_length: Optional[int] = Field(default=None, gt=0)
    max_retries: Optional[int] = Field(default=None, gt=0)
    max_search_results: Optional[int] = Field(default=None, gt=0)
    task_id: Optional[str] = None


class ScrapeRequest(BaseModel):
    url: Optional[str] = None
    query: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)
    options: ScrapeOptions = Field(default_factory=ScrapeOptions)


@router.post("", status_code=202, response_model=dict[str, Any])
def start_scrape(body: ScrapeRequest, request: Request) -> dict[str, Any]:
    """Create a scrape job and return its id without waiting for it."""
    service = request.app.state.service
    return service.start(
        url=body.url,
        query=body.query,
        keywords=body.keywords,
        options=body.options.model_dump(exclude_none=True),
    )


@router.post("/sync", response_model=dict[str, Any])
def scrape_sync(body: ScrapeRequest, request: Request) -> dict[str, Any]:
    """Scrape a single page in the request and return its summary."""
    service = request.app.state.service
    return service.scrape_sync(
        url=body.url,
        query=body.query,
        keywords=body.keywords,
        options=body.options.model_dump(exclude_none=True),
    )


@router.get("/tool", response_model=dict[str, Any])
def tool_definition() -> dict[str, Any]:
    return assistant_tool_definition()
