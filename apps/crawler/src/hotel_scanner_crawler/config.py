"""Crawler configuration via environment variables."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from hotel_scanner_core.schemas import CrawlInput

from .errors import ConfigurationError


class CrawlerSettings(BaseSettings):
    """Settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="HOTEL_CRAWLER_", env_file=".env", extra="ignore"
    )

    # Target site
    base_url: str = "https://www.booking.com"
    page_size: int = 20

    # Worker pool
    default_concurrency: int = 10

    # Session validation and retry policy
    max_session_attempts: int = 1000
    max_session_retirements: int = 10
    max_request_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0

    # Timeouts (seconds)
    navigation_timeout: float = 200.0
    probe_timeout: float = 60.0
    detail_wait_timeout: float = 30.0

    # Asynchronous price rendering on listing cards
    price_poll_interval: float = 0.5
    price_poll_attempts: int = 11

    # Browser
    headless: bool = True
    proxy_urls: list[str] = []

    # Storage
    storage_dir: str = "./storage"
    dataset_name: str = "default"
    state_key: str = "STATE"
    redis_url: str = ""


settings = CrawlerSettings()


def load_crawl_input(data: dict[str, Any]) -> CrawlInput:
    """Validate raw run input, raising ConfigurationError on bad input."""
    try:
        return CrawlInput.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
