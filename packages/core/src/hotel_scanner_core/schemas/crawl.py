"""Crawl input, queued request, persisted state and run result schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator

from .common import CamelModel
from .enums import RequestLabel

DEFAULT_SORT_BY = "bayesian_review_score"


class FetchRequest(CamelModel):
    """A pending fetch task as stored in the request queue.

    ``unique_key`` is the queue's dedup identity and defaults to the URL.
    Retried copies derive a new key from ``(origin_key, retirements)`` so the
    queue does not swallow them.
    """

    url: str
    label: RequestLabel = RequestLabel.START
    unique_key: str = ""
    user_data: dict[str, Any] = Field(default_factory=dict)
    retirements: int = Field(default=0, ge=0)
    origin_key: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_label(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"url": data}
        if isinstance(data, dict) and "label" not in data:
            user_data = data.get("userData") or data.get("user_data") or {}
            if isinstance(user_data, dict) and user_data.get("label"):
                data = {**data, "label": user_data["label"]}
        return data

    @model_validator(mode="after")
    def _default_key(self) -> FetchRequest:
        if not self.unique_key:
            self.unique_key = self.url
        return self

    def retry_copy(self) -> FetchRequest:
        """Return the same task under a fresh, deterministic unique key."""
        attempt = self.retirements + 1
        origin = self.origin_key or self.unique_key
        return self.model_copy(
            update={
                "unique_key": f"{origin}#retry-{attempt}",
                "retirements": attempt,
                "origin_key": origin,
            }
        )


class CrawlInput(CamelModel):
    """Run input: what to crawl and how."""

    search: str | None = None
    start_urls: list[FetchRequest] = Field(default_factory=list)
    check_in: str | None = None
    check_out: str | None = None
    currency: str | None = None
    language: str | None = None
    adults: int | None = Field(default=None, ge=1)
    children: int | None = Field(default=None, ge=0)
    rooms: int | None = Field(default=None, ge=1)
    sort_by: str = DEFAULT_SORT_BY
    min_score: float | None = None
    use_filters: bool = False
    max_pages: int | None = Field(default=None, ge=1)
    simple: bool = False
    concurrency: int | None = Field(default=None, ge=1)
    cache_responses: bool = False
    test_proxy: bool = True
    proxy_config: dict[str, Any] = Field(default_factory=dict)

    @field_validator("search")
    @classmethod
    def _blank_search(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @field_validator("start_urls", mode="before")
    @classmethod
    def _coerce_start_urls(cls, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, list):
            msg = "startUrls must be an array"
            raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def _validate_seed(self) -> CrawlInput:
        if not self.search and not self.start_urls:
            msg = 'Missing "search" or "startUrls" attribute in input'
            raise ValueError(msg)
        if self.search and self.start_urls:
            msg = '"search" and "startUrls" are mutually exclusive'
            raise ValueError(msg)
        return self

    def meets_min_score(self, rating: float | None) -> bool:
        """True when *rating* satisfies ``min_score`` (inclusive)."""
        if self.min_score is None:
            return True
        return rating is not None and rating >= self.min_score


class CrawlState(CamelModel):
    """Persisted dedup memory of already-emitted listings."""

    crawled_keys: set[str] = Field(default_factory=set)


class FailureRecord(CamelModel):
    """Terminal record for a request that could not be completed."""

    url: str
    succeeded: Literal[False] = False
    errors: list[str] = Field(default_factory=list)


class CrawlSummary(CamelModel):
    """Result of one crawler run."""

    requests_handled: int = 0
    records_emitted: int = 0
    failures: int = 0
    sessions_retired: int = 0
    crawled_at: datetime
    duration_ms: int = 0
    error: str | None = None
    success: bool = True
