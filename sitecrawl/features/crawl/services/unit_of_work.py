from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

# Import all related models so SQLAlchemy mappers are configured
from sitecrawl.features.crawl.models.crawl_result import BrokenLink, CrawlResult  # noqa: F401
from sitecrawl.features.crawl.repositories.result_repository import SqlAlchemyResultRepository
from sitecrawl.features.pages.models.page import Page  # noqa: F401
from sitecrawl.features.pages.repositories.page_repository import SqlAlchemyPageRepository
from sitecrawl.platform.db.session import get_session_factory
from sitecrawl.platform.exceptions import PersistenceError


class CrawlUnitOfWork:
    """
    One session, both repositories, one commit.

        with uow_factory() as uow:
            page = uow.pages.get(page_id)
            ...
            uow.results.upsert(result, broken_links)
            uow.commit()

    Leaving the block without commit() rolls back.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self.session: Optional[Session] = None

    def __enter__(self) -> "CrawlUnitOfWork":
        self.session = self._session_factory()
        self.pages = SqlAlchemyPageRepository(self.session)
        self.results = SqlAlchemyResultRepository(self.session)
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            self.session.rollback()
        finally:
            self.session.close()
        return False

    def commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(str(e)) from e


def default_uow_factory() -> CrawlUnitOfWork:
    return CrawlUnitOfWork(get_session_factory())
