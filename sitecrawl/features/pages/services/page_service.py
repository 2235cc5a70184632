from typing import Callable, Iterable, List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sitecrawl.features.crawl.services.queue_service import CrawlQueue
from sitecrawl.features.crawl.services.unit_of_work import CrawlUnitOfWork, default_uow_factory
from sitecrawl.features.pages.models.page import Page, PageStatus
from sitecrawl.features.pages.schemas.page import AddURLResult, BulkResult, PageRead
from sitecrawl.features.pages.services.lifecycle import transition
from sitecrawl.platform.exceptions import (
    BulkOperationError,
    InvalidURLError,
    PageNotFoundError,
    PersistenceError,
    QueueError,
)
from sitecrawl.platform.logger import get_logger
from sitecrawl.platform.utils.url_validator import validate_url

logger = get_logger(__name__)


def _unique(page_ids: Iterable[int]) -> List[int]:
    return list(dict.fromkeys(page_ids))


class PageService:
    """
    Operator-facing page operations: add, start, stop, delete, recrawl.

    Bulk calls treat every id independently. A failure on one id is recorded
    in the returned BulkResult and processing moves on; BulkOperationError is
    raised only when every id failed.
    """

    def __init__(self, queue: CrawlQueue, uow_factory: Callable[[], CrawlUnitOfWork] = default_uow_factory):
        self.queue = queue
        self.uow_factory = uow_factory

    # ── Single page ───────────────────────────

    def add_url(self, raw_url: str) -> AddURLResult:
        """
        Register a URL for crawling.

        An active page with the same normalized URL is returned unchanged.
        A soft-deleted one is restored and queued again instead of duplicated.
        """
        is_valid, normalized_url, error = validate_url(raw_url)
        if not is_valid:
            raise InvalidURLError(error)

        with self.uow_factory() as uow:
            existing = uow.pages.get_by_normalized_url(normalized_url)
            if existing is not None:
                return AddURLResult(page=PageRead.model_validate(existing), message="URL already exists", is_new=False)

            deleted = uow.pages.get_soft_deleted_by_url(normalized_url)
            if deleted is not None:
                uow.pages.restore(deleted.id)
                if deleted.status == PageStatus.running:
                    # Deleted mid-crawl; the in-flight job will finalize it
                    uow.commit()
                    return AddURLResult(
                        page=PageRead.model_validate(deleted), message="URL restored, crawl in progress", is_new=False
                    )
                transition(deleted, PageStatus.queued)
                uow.pages.update(deleted)
                uow.commit()
                page, message, is_new = deleted, "URL restored and queued for crawling", False
                logger.info(f"[page {page.id}] Restored {normalized_url}")
            else:
                try:
                    page = uow.pages.create(Page(url=normalized_url, status=PageStatus.queued))
                    uow.commit()
                except IntegrityError:
                    # Lost a race with a concurrent add of the same URL
                    uow.session.rollback()
                    existing = uow.pages.get_by_normalized_url(normalized_url)
                    if existing is None:
                        raise PersistenceError(f"Could not create page for {normalized_url}")
                    return AddURLResult(page=PageRead.model_validate(existing), message="URL already exists", is_new=False)
                message, is_new = "URL added and queued for crawling", True
                logger.info(f"[page {page.id}] Added {normalized_url}")

            # A stop issued before a delete must not swallow the restored page's job
            self._enqueue(uow, page, clear_mark=not is_new)
            return AddURLResult(page=PageRead.model_validate(page), message=message, is_new=is_new)

    def get(self, page_id: int) -> PageRead:
        with self.uow_factory() as uow:
            page = uow.pages.get(page_id)
            if page is None:
                raise PageNotFoundError(page_id)
            return PageRead.model_validate(page)

    def _enqueue(self, uow: CrawlUnitOfWork, page: Page, clear_mark: bool = False) -> None:
        """Push a job for a page already committed as queued; on failure the page goes to error."""
        try:
            if clear_mark:
                self.queue.clear_cancellation(page.id)
            self.queue.enqueue(page.id)
        except QueueError as e:
            logger.error(f"[page {page.id}] Failed to enqueue crawl job: {e}")
            transition(page, PageStatus.error, error_message=str(e))
            uow.pages.update(page)
            uow.commit()
            raise

    # ── Bulk ──────────────────────────────────

    def start(self, page_ids: Iterable[int]) -> BulkResult:
        return self._finish("start", self._start(_unique(page_ids)))

    def _start(self, page_ids: List[int]) -> BulkResult:
        result = BulkResult()
        if not page_ids:
            return result

        with self.uow_factory() as uow:
            pages = {page.id: page for page in uow.pages.get_many(page_ids)}

            for page_id in page_ids:
                page = pages.get(page_id)
                if page is None:
                    result.failed[page_id] = str(PageNotFoundError(page_id))
                    continue

                if page.status == PageStatus.running:
                    # Already crawling; the running job covers this request
                    result.succeeded.append(page_id)
                    continue

                try:
                    transition(page, PageStatus.queued)
                    uow.pages.update(page)
                    uow.commit()
                    self._enqueue(uow, page)
                except (QueueError, PersistenceError, SQLAlchemyError) as e:
                    uow.session.rollback()
                    result.failed[page_id] = str(e)
                    continue

                result.succeeded.append(page_id)

        return result

    def stop(self, page_ids: Iterable[int]) -> BulkResult:
        """
        Mark each page cancelled and force it to stopped with no error text,
        whatever its current status. A queued job is left in the queue; the
        dispatcher drops it when it sees the mark.
        """
        result = BulkResult()

        with self.uow_factory() as uow:
            for page_id in _unique(page_ids):
                try:
                    self.queue.mark_cancelled(page_id)
                except QueueError as e:
                    logger.error(f"[page {page_id}] Failed to mark cancelled: {e}")
                    result.failed[page_id] = str(e)
                    continue

                try:
                    page = uow.pages.get(page_id)
                    if page is None:
                        result.failed[page_id] = str(PageNotFoundError(page_id))
                        continue
                    transition(page, PageStatus.stopped)
                    uow.pages.update(page)
                    uow.commit()
                except (PersistenceError, SQLAlchemyError) as e:
                    uow.session.rollback()
                    result.failed[page_id] = str(e)
                    continue

                logger.info(f"[page {page_id}] Stopped by operator")
                result.succeeded.append(page_id)

        return self._finish("stop", result)

    def delete(self, page_ids: Iterable[int]) -> BulkResult:
        """Soft delete; the row is kept so the URL can be restored later."""
        result = BulkResult()

        with self.uow_factory() as uow:
            for page_id in _unique(page_ids):
                try:
                    deleted = uow.pages.soft_delete(page_id)
                    if not deleted:
                        result.failed[page_id] = str(PageNotFoundError(page_id))
                        continue
                    uow.commit()
                except (PersistenceError, SQLAlchemyError) as e:
                    uow.session.rollback()
                    result.failed[page_id] = str(e)
                    continue

                logger.info(f"[page {page_id}] Deleted")
                result.succeeded.append(page_id)

        return self._finish("delete", result)

    def recrawl(self, page_ids: Iterable[int]) -> BulkResult:
        """Clear any cancellation mark, then start. An id whose mark cannot be cleared is not started."""
        cleared = BulkResult()

        for page_id in _unique(page_ids):
            try:
                self.queue.clear_cancellation(page_id)
            except QueueError as e:
                logger.error(f"[page {page_id}] Failed to clear cancellation: {e}")
                cleared.failed[page_id] = str(e)
                continue
            cleared.succeeded.append(page_id)

        return self._finish("recrawl", cleared.merge(self._start(cleared.succeeded)))

    def _finish(self, operation: str, result: BulkResult) -> BulkResult:
        if result.failed:
            logger.warning(f"{operation}: {len(result.failed)} page(s) failed: {result.failed}")
        if result.all_failed:
            raise BulkOperationError(operation, result.failed, result.succeeded)
        return result
