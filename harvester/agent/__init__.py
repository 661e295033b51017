"""Scrape orchestration package.

Public API::

    from harvester.agent import ScrapeService
    service = ScrapeService.from_settings()
    job_id = service.create_job(["https://example.com"], ["pricing"])
"""

from harvester.agent.discovery import discover
from harvester.agent.jobs import ScrapeService, assistant_tool_definition

__all__ = ["ScrapeService", "assistant_tool_definition", "discover"]
