from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence

from sqlalchemy.orm import Session

from sitecrawl.features.pages.models.page import Page, PageStatus


class PageRepository(Protocol):
    """Page persistence capabilities the crawl core depends on. Implementations never commit."""

    def get(self, page_id: int) -> Optional[Page]: ...

    def get_by_normalized_url(self, url: str) -> Optional[Page]: ...

    def get_soft_deleted_by_url(self, url: str) -> Optional[Page]: ...

    def get_many(self, page_ids: Sequence[int]) -> List[Page]: ...

    def create(self, page: Page) -> Page: ...

    def update(self, page: Page) -> Page: ...

    def update_status(self, page_id: int, status: PageStatus) -> None: ...

    def soft_delete(self, page_id: int) -> bool: ...

    def restore(self, page_id: int) -> None: ...


class SqlAlchemyPageRepository:
    """PageRepository over a caller-owned Session; the caller commits or rolls back."""

    def __init__(self, db: Session):
        self.db = db

    def _active(self):
        return self.db.query(Page).filter(Page.deleted_at.is_(None))

    def get(self, page_id: int) -> Optional[Page]:
        return self._active().filter(Page.id == page_id).first()

    def get_by_normalized_url(self, url: str) -> Optional[Page]:
        return self._active().filter(Page.url == url).first()

    def get_soft_deleted_by_url(self, url: str) -> Optional[Page]:
        return (
            self.db.query(Page)
            .filter(Page.url == url, Page.deleted_at.isnot(None))
            .first()
        )

    def get_many(self, page_ids: Sequence[int]) -> List[Page]:
        if not page_ids:
            return []
        return self._active().filter(Page.id.in_(list(page_ids))).all()

    def create(self, page: Page) -> Page:
        self.db.add(page)
        self.db.flush()
        return page

    def update(self, page: Page) -> Page:
        self.db.add(page)
        self.db.flush()
        return page

    def update_status(self, page_id: int, status: PageStatus) -> None:
        self.db.query(Page).filter(Page.id == page_id).update(
            {Page.status: status}, synchronize_session="fetch"
        )

    def soft_delete(self, page_id: int) -> bool:
        updated = (
            self._active()
            .filter(Page.id == page_id)
            .update({Page.deleted_at: datetime.now(timezone.utc)}, synchronize_session="fetch")
        )
        return updated > 0

    def restore(self, page_id: int) -> None:
        self.db.query(Page).filter(Page.id == page_id).update(
            {Page.deleted_at: None}, synchronize_session="fetch"
        )
