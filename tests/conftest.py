"""
Test configuration and fixtures for the SiteCrawl service.

Every test gets its own in-memory SQLite database and an in-memory crawl
queue, so nothing here needs Postgres or Redis.
"""

import os
import tempfile
from typing import Generator

# Settings are read at import time; these must be in place before sitecrawl is imported
os.environ["FORCE_IN_MEMORY_QUEUE"] = "true"
os.environ["RUN_WORKER_IN_PROCESS"] = "false"
os.environ["DEQUEUE_TIMEOUT_SECONDS"] = "1"
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="sitecrawl-logs-"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sitecrawl.features.crawl.services.queue_service import InMemoryCrawlQueue
from sitecrawl.features.crawl.services.unit_of_work import CrawlUnitOfWork
from sitecrawl.features.pages.models.page import Page, PageStatus
from sitecrawl.features.pages.services import PageService
from sitecrawl.platform.db.base import Base


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def uow_factory(session_factory):
    return lambda: CrawlUnitOfWork(session_factory)


@pytest.fixture
def queue() -> InMemoryCrawlQueue:
    return InMemoryCrawlQueue()


@pytest.fixture
def page_service(queue, uow_factory) -> PageService:
    return PageService(queue, uow_factory)


@pytest.fixture
def make_page(session_factory):
    """Insert a page row directly, bypassing the service and the queue."""

    def _make_page(url: str, status: PageStatus = PageStatus.queued, **fields) -> Page:
        session = session_factory()
        try:
            page = Page(url=url, status=status, **fields)
            session.add(page)
            session.commit()
            session.refresh(page)
            return page
        finally:
            session.close()

    return _make_page


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from sitecrawl.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    Test client that runs the app lifespan, so the in-process worker is
    started and stopped when RUN_WORKER_IN_PROCESS is on.
    """
    with TestClient(test_app) as test_client:
        yield test_client
