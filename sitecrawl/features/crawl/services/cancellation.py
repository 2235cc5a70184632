import logging
from typing import Optional, Protocol

from sitecrawl.platform.exceptions import CrawlCancelled, QueueError

logger = logging.getLogger(__name__)


class CancellationSource(Protocol):
    def is_cancelled(self, page_id: int) -> bool: ...


class CancellationToken:
    """
    Cooperative stop signal for one page's crawl.

    Backed by the external cancellation mark, so an operator stop issued from
    any process is seen at the next checkpoint. A failed lookup counts as "not
    cancelled": the crawl carries on rather than being dropped on a transient
    queue error.
    """

    def __init__(self, source: Optional[CancellationSource], page_id: Optional[int]):
        self._source = source
        self.page_id = page_id

    @classmethod
    def never(cls) -> "CancellationToken":
        return cls(None, None)

    def is_cancelled(self) -> bool:
        if self._source is None or self.page_id is None:
            return False
        try:
            return self._source.is_cancelled(self.page_id)
        except QueueError as e:
            logger.warning(f"[page {self.page_id}] Cancellation check failed, continuing: {e}")
            return False

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled():
            raise CrawlCancelled()
