"""Centralised settings for the Harvester backend.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv

if TYPE_CHECKING:
    from harvester.scraper.retry import RetrySpec

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.environ.get(name, default)
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("HARVESTER_WORKSPACE", Path.home() / ".harvester_data")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite database file."""
        return self.workspace_dir / "harvester.db"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    @property
    def artifacts_dir(self) -> Path:
        """Root directory for screenshots and raw result dumps."""
        return self.workspace_dir / "artifacts"

    # ------------------------------------------------------------------
    # Summarization model
    # ------------------------------------------------------------------
    llm_provider: str = field(
        default_factory=lambda: os.environ.get("LLM_PROVIDER", "openai")
    )
    openai_api_key: str = field(
        default_factory=lambda: os.environ.get("OPENAI_API_KEY", "")
    )
    openai_chat_model: str = field(
        default_factory=lambda: os.environ.get("OPENAI_CHAT_MODEL", "gpt-4o")
    )
    openai_fallback_model: str = field(
        default_factory=lambda: os.environ.get("OPENAI_FALLBACK_MODEL", "gpt-4o-mini")
    )
    ollama_base_url: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    )
    ollama_chat_model: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_CHAT_MODEL", "ministral-3:8b")
    )
    summary_max_length: int = field(
        default_factory=lambda: int(os.environ.get("SUMMARY_MAX_LENGTH", "12000"))
    )
    summary_plain_max_tokens: int = field(
        default_factory=lambda: int(os.environ.get("SUMMARY_PLAIN_MAX_TOKENS", "1000"))
    )

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "15.0"))
    )
    render_timeout: float = field(
        default_factory=lambda: float(os.environ.get("RENDER_TIMEOUT", "60.0"))
    )
    retry_max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("RETRY_MAX_ATTEMPTS", "3"))
    )
    retry_base_delay: float = field(
        default_factory=lambda: float(os.environ.get("RETRY_BASE_DELAY", "1.0"))
    )
    use_rendered_fetch: bool = field(
        default_factory=lambda: _env_bool("USE_RENDERED_FETCH", "true")
    )
    capture_screenshots: bool = field(
        default_factory=lambda: _env_bool("CAPTURE_SCREENSHOTS", "true")
    )
    # Server-rendered reference sites that never need a browser.
    static_domains: tuple[str, ...] = field(
        default_factory=lambda: _env_list(
            "STATIC_DOMAINS", "wikipedia.org,britannica.com,wiktionary.org"
        )
    )

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------
    max_concurrent_scrapes: int = field(
        default_factory=lambda: int(os.environ.get("MAX_CONCURRENT_SCRAPES", "3"))
    )
    max_concurrent_jobs: int = field(
        default_factory=lambda: int(os.environ.get("MAX_CONCURRENT_JOBS", "2"))
    )
    max_links: int = field(
        default_factory=lambda: int(os.environ.get("MAX_LINKS", "20"))
    )

    # ------------------------------------------------------------------
    # URL discovery
    # ------------------------------------------------------------------
    discovery_max_results: int = field(
        default_factory=lambda: int(os.environ.get("DISCOVERY_MAX_RESULTS", "3"))
    )
    discovery_web_search: bool = field(
        default_factory=lambda: _env_bool("DISCOVERY_WEB_SEARCH", "false")
    )

    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )

    @property
    def retry_spec(self) -> RetrySpec:
        """The shared retry policy for lightweight fetches."""
        from harvester.scraper.retry import RetrySpec  # noqa: PLC0415

        return RetrySpec(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
        )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


def configure_logging(level: str | None = None) -> None:
    """Route every ``harvester.*`` logger to stderr at the configured level."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


# Module-level singleton: import this everywhere:
#   from harvester.config import settings
settings = Settings()
