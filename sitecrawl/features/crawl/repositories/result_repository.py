import logging
from typing import List, Optional, Protocol

from sqlalchemy.orm import Session

from sitecrawl.features.crawl.models.crawl_result import BrokenLink, CrawlResult

logger = logging.getLogger(__name__)

# Columns copied from an incoming result onto the stored row on upsert
_RESULT_FIELDS = (
    "html_version",
    "title",
    "h1_count",
    "h2_count",
    "h3_count",
    "h4_count",
    "h5_count",
    "h6_count",
    "internal_links",
    "external_links",
    "has_login_form",
    "error_message",
)


class ResultRepository(Protocol):
    def get_by_page_id(self, page_id: int) -> Optional[CrawlResult]: ...

    def upsert(self, result: CrawlResult, broken_links: List[BrokenLink]) -> CrawlResult: ...


class SqlAlchemyResultRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_page_id(self, page_id: int) -> Optional[CrawlResult]:
        return self.db.query(CrawlResult).filter(CrawlResult.page_id == page_id).first()

    def upsert(self, result: CrawlResult, broken_links: List[BrokenLink]) -> CrawlResult:
        """
        Replace the page's stored result and its broken links with the given ones.

        Old broken links are deleted (flushed) before the new ones are attached,
        so a page never accumulates rows across crawls. Nothing is committed here;
        the unit of work commits the page update and this upsert together.
        """
        existing = self.get_by_page_id(result.page_id)

        if existing is None:
            result.broken_links = list(broken_links)
            self.db.add(result)
            self.db.flush()
            logger.debug(f"[page {result.page_id}] Inserted crawl result")
            return result

        for field in _RESULT_FIELDS:
            setattr(existing, field, getattr(result, field))

        existing.broken_links.clear()
        self.db.flush()
        existing.broken_links.extend(broken_links)
        self.db.flush()
        logger.debug(f"[page {result.page_id}] Replaced crawl result {existing.id}")
        return existing
