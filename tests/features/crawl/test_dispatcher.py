"""
Tests for the crawl dispatch loop and per-job finalization.
"""

import threading
import time
from types import SimpleNamespace

import httpx
import pytest
import respx
from bs4.builder import ParserRejectedMarkup
from sqlalchemy.exc import OperationalError

from sitecrawl.features.crawl.repositories.result_repository import SqlAlchemyResultRepository
from sitecrawl.features.crawl.schemas.crawl import CrawlJob
from sitecrawl.features.crawl.services import html_analyzer
from sitecrawl.features.crawl.services.crawler_service import PageCrawler
from sitecrawl.features.crawl.workers.dispatcher import CrawlDispatcher, JobOutcome
from sitecrawl.features.pages.models.page import PageStatus
from sitecrawl.platform.exceptions import PersistenceError, QueueError

PAGE_URL = "https://site.test/home"

PAGE_HTML = """
<html>
<head><title>Landing</title></head>
<body>
  <h1>A</h1><h1>B</h1><h1>C</h1>
  <a href="/pricing">Pricing</a>
  <a href="https://external.test/missing">Broken</a>
</body>
</html>
"""


@pytest.fixture
def crawler():
    with PageCrawler(fetch_timeout=1, link_check_timeout=1) as crawler:
        yield crawler


@pytest.fixture
def dispatcher(queue, uow_factory, crawler):
    return CrawlDispatcher(queue, uow_factory, crawler, dequeue_timeout=0.05)


def load(uow_factory, page_id):
    """Snapshot page and result state; instances expire when the unit of work rolls back on exit."""
    with uow_factory() as uow:
        page = uow.pages.get(page_id)
        page = SimpleNamespace(status=page.status, title=page.title, error_message=page.error_message)
        result = uow.results.get_by_page_id(page_id)
        if result is None:
            return page, None, None
        broken = [(link.url, link.status_code) for link in result.broken_links]
        result = SimpleNamespace(
            title=result.title,
            h1_count=result.h1_count,
            h2_count=result.h2_count,
            internal_links=result.internal_links,
            external_links=result.external_links,
            error_message=result.error_message,
        )
        return page, result, broken


class TestProcessJob:
    @respx.mock
    def test_successful_crawl_is_finalized(self, dispatcher, page_service, queue, uow_factory):
        respx.get(PAGE_URL).mock(return_value=httpx.Response(200, text=PAGE_HTML))
        respx.head("https://site.test/pricing").mock(return_value=httpx.Response(200))
        respx.head("https://external.test/missing").mock(return_value=httpx.Response(404))
        respx.get("https://external.test/missing").mock(return_value=httpx.Response(404))

        added = page_service.add_url(PAGE_URL)
        job = queue.dequeue(0.1)

        assert dispatcher.process_job(job) == JobOutcome.done

        page, result, broken = load(uow_factory, added.page.id)
        assert page.status == PageStatus.done
        assert page.title == "Landing"
        assert page.error_message is None
        assert result.h1_count == 3
        assert result.internal_links == 1
        assert result.external_links == 1
        assert result.error_message is None
        assert broken == [("https://external.test/missing", 404)]

    @respx.mock
    def test_cancelled_job_is_skipped_silently(self, dispatcher, page_service, queue, uow_factory):
        added = page_service.add_url(PAGE_URL)
        queue.mark_cancelled(added.page.id)

        assert dispatcher.process_job(queue.dequeue(0.1)) == JobOutcome.skipped_cancelled

        page, result, _ = load(uow_factory, added.page.id)
        assert page.status == PageStatus.queued
        assert result is None

    @respx.mock
    def test_operator_stop_before_dequeue(self, dispatcher, page_service, queue, uow_factory):
        added = page_service.add_url(PAGE_URL)
        page_service.stop([added.page.id])

        assert dispatcher.process_job(queue.dequeue(0.1)) == JobOutcome.skipped_cancelled

        page, result, _ = load(uow_factory, added.page.id)
        assert page.status == PageStatus.stopped
        assert page.error_message is None
        assert result is None

    @respx.mock
    def test_stop_during_fetch_ends_stopped(self, dispatcher, page_service, queue, uow_factory):
        added = page_service.add_url(PAGE_URL)

        def operator_stops(request):
            page_service.stop([added.page.id])
            return httpx.Response(200, text=PAGE_HTML)

        respx.get(PAGE_URL).mock(side_effect=operator_stops)

        assert dispatcher.process_job(queue.dequeue(0.1)) == JobOutcome.stopped

        page, result, broken = load(uow_factory, added.page.id)
        assert page.status == PageStatus.stopped
        assert page.error_message is None
        assert result.error_message == "crawl stopped"
        assert broken == []

    @respx.mock
    def test_fetch_failure_ends_in_error(self, dispatcher, page_service, queue, uow_factory):
        respx.get(PAGE_URL).mock(return_value=httpx.Response(503))
        added = page_service.add_url(PAGE_URL)

        assert dispatcher.process_job(queue.dequeue(0.1)) == JobOutcome.error

        page, result, _ = load(uow_factory, added.page.id)
        assert page.status == PageStatus.error
        assert page.error_message == "HTTP error: 503"
        assert result.error_message == "HTTP error: 503"
        assert result.h1_count == 0

    @respx.mock
    def test_recrawl_overwrites_previous_result(self, dispatcher, page_service, queue, uow_factory):
        route = respx.get(PAGE_URL)
        route.side_effect = [
            httpx.Response(500),
            httpx.Response(200, text="<html><head><title>Back</title></head><h2>x</h2></html>"),
        ]
        added = page_service.add_url(PAGE_URL)
        dispatcher.process_job(queue.dequeue(0.1))

        page_service.recrawl([added.page.id])
        assert dispatcher.process_job(queue.dequeue(0.1)) == JobOutcome.done

        page, result, broken = load(uow_factory, added.page.id)
        assert page.status == PageStatus.done
        assert page.error_message is None
        assert result.title == "Back"
        assert result.h2_count == 1
        assert result.error_message is None
        assert broken == []

    def test_missing_page_is_dropped(self, dispatcher):
        assert dispatcher.process_job(CrawlJob(page_id=999)) == JobOutcome.skipped_missing

    def test_locked_page_is_dropped(self, dispatcher, queue, make_page):
        page = make_page(PAGE_URL)
        queue.acquire_page_lock(page.id)

        assert dispatcher.process_job(CrawlJob(page_id=page.id)) == JobOutcome.skipped_busy

    def test_running_page_is_not_crawled_twice(self, dispatcher, make_page, queue):
        page = make_page(PAGE_URL, status=PageStatus.running)

        assert dispatcher.process_job(CrawlJob(page_id=page.id)) == JobOutcome.skipped_busy
        # Lock released even on an early return
        assert queue.acquire_page_lock(page.id) is not None

    @respx.mock
    def test_unparseable_page_is_recorded_as_error(
        self, dispatcher, page_service, queue, uow_factory, monkeypatch
    ):
        respx.get(PAGE_URL).mock(return_value=httpx.Response(200, text=PAGE_HTML))

        def reject_markup(markup, features):
            raise ParserRejectedMarkup("markup could not be decoded")

        monkeypatch.setattr(html_analyzer, "BeautifulSoup", reject_markup)
        added = page_service.add_url(PAGE_URL)

        assert dispatcher.process_job(queue.dequeue(0.1)) == JobOutcome.error

        page, result, broken = load(uow_factory, added.page.id)
        assert page.status == PageStatus.error
        assert page.error_message.startswith("failed to parse HTML")
        assert result.error_message.startswith("failed to parse HTML")
        assert broken == []

    @respx.mock
    def test_finalize_failure_raises_persistence_error(self, dispatcher, page_service, queue, monkeypatch):
        respx.get(PAGE_URL).mock(return_value=httpx.Response(500))

        def broken_upsert(self, result, broken_links):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(SqlAlchemyResultRepository, "upsert", broken_upsert)
        page_service.add_url(PAGE_URL)

        with pytest.raises(PersistenceError):
            dispatcher.process_job(queue.dequeue(0.1))

    @respx.mock
    def test_finalize_failure_leaves_page_in_error(
        self, dispatcher, page_service, queue, uow_factory, monkeypatch
    ):
        respx.get(PAGE_URL).mock(return_value=httpx.Response(500))

        def broken_upsert(self, result, broken_links):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(SqlAlchemyResultRepository, "upsert", broken_upsert)
        added = page_service.add_url(PAGE_URL)

        with pytest.raises(PersistenceError, match="failed to save crawl result"):
            dispatcher.process_job(queue.dequeue(0.1))

        page, result, _ = load(uow_factory, added.page.id)
        assert page.status == PageStatus.error
        assert page.error_message.startswith("failed to save crawl result")
        assert result is None

        recrawled = page_service.recrawl([added.page.id])

        assert recrawled.succeeded == [added.page.id]
        assert page_service.get(added.page.id).status == PageStatus.queued
        assert queue.depth() == 1


class ScriptedQueue:
    """Queue stand-in that replays dequeue results, then stops the loop."""

    def __init__(self, results, stop_event):
        self.results = list(results)
        self.stop_event = stop_event

    def dequeue(self, timeout):
        if not self.results:
            self.stop_event.set()
            return None
        item = self.results.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class TestRunLoop:
    def test_loop_survives_job_and_queue_failures(self, uow_factory, crawler):
        stop_event = threading.Event()
        queue = ScriptedQueue([QueueError("down"), CrawlJob(page_id=1), CrawlJob(page_id=2)], stop_event)
        dispatcher = CrawlDispatcher(queue, uow_factory, crawler, dequeue_timeout=0.01)
        processed = []

        def process_job(job):
            processed.append(job.page_id)
            if job.page_id == 1:
                raise PersistenceError("commit failed")
            return JobOutcome.done

        dispatcher.process_job = process_job
        dispatcher.run(stop_event)

        assert processed == [1, 2]

    def test_background_handle_stops_gracefully(self, dispatcher):
        handle = dispatcher.start()
        time.sleep(0.05)
        assert handle.is_running is True

        assert handle.stop(grace=2) is True
        assert handle.is_running is False
