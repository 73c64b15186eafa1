"""Configuration settings for docsift."""

import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """docsift configuration.

    Environment variables:
    - MAX_DEPTH: Per-branch link/directory depth cap (default: 4)
    - MAX_PAGES: Global page cap per crawl (default: 1000)
    - MIN_PAGES: Pages a tier must yield to count as successful (default: 2)
    - BROWSER_ENABLED: Try the headless browser tier (default: false)
    - BROWSER_AUTHORITATIVE: Treat the browser tier as final when it
        raises or yields too little, instead of falling through to the
        static tiers (default: false)
    - GITHUB_TOKEN / GH_TOKEN: Bearer token for the GitHub contents API
    - FETCH_TIMEOUT: Per-request timeout in seconds (default: 30)
    - RATE_LIMIT_MIN_DELAY: Minimum seconds between requests (default: 0.25)
    - RETRY_ATTEMPTS: Tries per network operation (default: 3)
    - CANCEL_TIMEOUT: Seconds to wait for a superseded indexing job (default: 5)
    - LOG_LEVEL: loguru level for the CLI (default: INFO)
    """

    # Crawl scope
    max_depth: int = 4
    max_pages: int = 1000
    min_pages: int = 2
    path_prefix: str = ""

    # Browser tier
    browser_enabled: bool = False
    browser_authoritative: bool = False
    browser_headless: bool = True
    browser_concurrency: int = 3
    browser_page_timeout: int = 30
    browser_storage_state: str | None = None

    # GitHub tier
    github_token: str | None = None

    # Static / fallback tiers
    fetch_timeout: float = 30.0
    fetch_batch_size: int = 50
    fetch_batch_delay: float = 1.0

    # Rate limiting
    rate_limit_min_delay: float = 0.25
    rate_limit_max_requests: int = 60
    rate_limit_window: float = 60.0

    # Retry
    retry_attempts: int = 3
    retry_base_delay: float = 1.0

    # Indexing
    cancel_timeout: float = 5.0

    # Logging
    log_level: str = "INFO"

    model_config = {"env_prefix": "", "case_sensitive": False}

    def resolve_github_token(self) -> str | None:
        """Return the configured GitHub token, falling back to GH_TOKEN."""
        return self.github_token or os.environ.get("GH_TOKEN") or None


settings = Settings()
