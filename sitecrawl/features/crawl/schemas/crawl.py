"""
Crawl Schemas

Queue message and pipeline output models. These never touch the database
directly; the dispatcher maps PageAnalysis onto the CrawlResult row.
"""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CrawlJob(BaseModel):
    """Queue message: one request to crawl one page."""
    page_id: int
    enqueued_at: datetime = Field(default_factory=_utcnow)


class LinkStatus(BaseModel):
    """Outcome of a single liveness check."""
    url: str
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_broken(self) -> bool:
        return self.error is not None or (self.status_code is not None and self.status_code >= 400)


class BrokenLinkInfo(BaseModel):
    url: str
    status_code: Optional[int] = None
    error_message: Optional[str] = None


class PageAnalysis(BaseModel):
    """Structural metrics extracted from one successfully fetched page."""
    html_version: str
    title: str = ""

    h1_count: int = 0
    h2_count: int = 0
    h3_count: int = 0
    h4_count: int = 0
    h5_count: int = 0
    h6_count: int = 0

    internal_links: int = 0
    external_links: int = 0
    has_login_form: bool = False

    broken_links: List[BrokenLinkInfo] = Field(default_factory=list)

    @property
    def broken_link_count(self) -> int:
        return len(self.broken_links)
