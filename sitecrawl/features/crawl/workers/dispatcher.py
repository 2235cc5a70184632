"""
Crawl dispatch loop.

A single logical worker: pop a job, honor the cancellation mark, run the
pipeline, then write the page status and the result in one commit. Jobs are
processed strictly one at a time per worker, and a per-page lock keeps that
"one crawl per page" guarantee if more workers are ever started.

Nothing is retried here. A failed finalization moves the page to error
from a fresh session and the page is only processed again on an explicit
recrawl.
"""
import enum
import threading
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from sitecrawl.features.crawl.schemas.crawl import CrawlJob
from sitecrawl.features.crawl.services.crawler_service import PageCrawler
from sitecrawl.features.crawl.services.queue_service import CrawlQueue
from sitecrawl.features.crawl.services.result_builder import build_crawl_result
from sitecrawl.features.crawl.services.unit_of_work import CrawlUnitOfWork
from sitecrawl.features.pages.models.page import PageStatus
from sitecrawl.features.pages.services.lifecycle import transition
from sitecrawl.platform.config import settings
from sitecrawl.platform.exceptions import CrawlError, PersistenceError, QueueError
from sitecrawl.platform.logger import get_logger

logger = get_logger(__name__)


class JobOutcome(enum.Enum):
    skipped_cancelled = "skipped_cancelled"
    skipped_missing = "skipped_missing"
    skipped_busy = "skipped_busy"
    done = "done"
    error = "error"
    stopped = "stopped"


class DispatcherHandle:
    """Join handle for a dispatcher running on a background thread."""

    def __init__(self, thread: threading.Thread, stop_event: threading.Event):
        self.thread = thread
        self.stop_event = stop_event

    @property
    def is_running(self) -> bool:
        return self.thread.is_alive()

    def stop(self, grace: float = settings.WORKER_SHUTDOWN_GRACE_SECONDS) -> bool:
        """Signal the loop and wait up to `grace` seconds. Returns True if it exited in time."""
        logger.info("Shutting down crawl dispatcher...")
        self.stop_event.set()
        self.thread.join(timeout=grace)

        if self.thread.is_alive():
            # Daemon thread; the process exit will take it down
            logger.warning(f"Crawl dispatcher still busy after {grace}s, forcing exit")
            return False

        logger.info("Crawl dispatcher stopped gracefully")
        return True


class CrawlDispatcher:
    def __init__(
        self,
        queue: CrawlQueue,
        uow_factory: Callable[[], CrawlUnitOfWork],
        crawler: PageCrawler,
        dequeue_timeout: float = settings.DEQUEUE_TIMEOUT_SECONDS,
    ):
        self.queue = queue
        self.uow_factory = uow_factory
        self.crawler = crawler
        self.dequeue_timeout = dequeue_timeout

    # ── Loop ──────────────────────────────────

    def run(self, stop_event: threading.Event) -> None:
        """
        Process jobs until stop_event is set.

        The bounded dequeue wait is the only place the loop checks for
        shutdown, so a crawl already started always finishes.
        """
        logger.info("Starting background crawler worker...")

        while not stop_event.is_set():
            try:
                job = self.queue.dequeue(self.dequeue_timeout)
            except QueueError as e:
                logger.error(f"Error popping from queue: {e}")
                stop_event.wait(self.dequeue_timeout)
                continue

            if job is None:
                continue

            try:
                self.process_job(job)
            except PersistenceError as e:
                logger.error(f"[page {job.page_id}] Failed to persist crawl outcome, not retrying: {e}")
            except Exception as e:
                logger.exception(f"[page {job.page_id}] Unexpected error processing crawl job: {e}")

        logger.info("Crawler worker stopped")

    def start(self) -> DispatcherHandle:
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self.run,
            args=(stop_event,),
            name="crawl-dispatcher",
            daemon=True,
        )
        thread.start()
        return DispatcherHandle(thread, stop_event)

    # ── One job ───────────────────────────────

    def process_job(self, job: CrawlJob) -> JobOutcome:
        page_id = job.page_id

        if self.queue.cancellation_token(page_id).is_cancelled():
            # Silent drop: no work attempted, page status left to the stop operation
            logger.info(f"[page {page_id}] Skipping cancelled job")
            return JobOutcome.skipped_cancelled

        lock = self.queue.acquire_page_lock(page_id)
        if lock is None:
            # Another worker is crawling this page right now; its result covers this request
            logger.info(f"[page {page_id}] Crawl already in flight, dropping duplicate job")
            return JobOutcome.skipped_busy

        try:
            return self._crawl_locked(page_id)
        finally:
            self.queue.release_page_lock(lock)

    def _crawl_locked(self, page_id: int) -> JobOutcome:
        token = self.queue.cancellation_token(page_id)

        with self.uow_factory() as uow:
            try:
                page = uow.pages.get(page_id)
                if page is None:
                    logger.warning(f"[page {page_id}] Page no longer exists, dropping job")
                    return JobOutcome.skipped_missing

                if page.status == PageStatus.running:
                    logger.warning(f"[page {page_id}] Page already marked running, dropping job")
                    return JobOutcome.skipped_busy

                url = page.url
                transition(page, PageStatus.running)
                uow.pages.update(page)
                uow.commit()
            except SQLAlchemyError as e:
                raise PersistenceError(str(e)) from e

            logger.info(f"[page {page_id}] Processing crawl job for {url}")

            analysis = None
            failure = None
            try:
                analysis = self.crawler.crawl(url, token)
            except CrawlError as e:
                failure = e
            except Exception as e:
                logger.exception(f"[page {page_id}] Unexpected crawler failure: {e}")
                failure = e

            try:
                if failure is None:
                    transition(page, PageStatus.done, title=analysis.title)
                    outcome = JobOutcome.done
                    result, broken_links = build_crawl_result(page_id, analysis)
                else:
                    message = str(failure) or failure.__class__.__name__
                    if token.is_cancelled():
                        transition(page, PageStatus.stopped)
                        outcome = JobOutcome.stopped
                        logger.info(f"[page {page_id}] Crawl stopped by operator")
                    else:
                        transition(page, PageStatus.error, error_message=message)
                        outcome = JobOutcome.error
                        logger.warning(f"[page {page_id}] Crawl failed: {message}")
                    # Failures are recorded, not dropped
                    result, broken_links = build_crawl_result(page_id, error_message=message)

                uow.pages.update(page)
                uow.results.upsert(result, broken_links)
                uow.commit()
                save_error = None
            except (SQLAlchemyError, PersistenceError) as e:
                save_error = e

        if save_error is not None:
            # The first session is rolled back by now; record the failure from a fresh one
            message = f"failed to save crawl result: {save_error}"
            self._mark_failed(page_id, message)
            raise PersistenceError(message) from save_error

        logger.info(f"[page {page_id}] Crawl finished with status {outcome.value}")
        return outcome

    def _mark_failed(self, page_id: int, message: str) -> None:
        """Move a page left in running to error after its result could not be saved."""
        try:
            with self.uow_factory() as uow:
                page = uow.pages.get(page_id)
                if page is None or page.status != PageStatus.running:
                    return
                transition(page, PageStatus.error, error_message=message)
                uow.pages.update(page)
                uow.commit()
        except (SQLAlchemyError, PersistenceError) as e:
            logger.error(f"[page {page_id}] Could not mark page as failed, left running: {e}")
