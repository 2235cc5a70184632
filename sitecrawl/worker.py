"""
Standalone crawl worker.

    python -m sitecrawl.worker

Runs the dispatch loop in the foreground. SIGINT/SIGTERM end the current
dequeue wait and let an in-flight crawl finish before the process exits.
"""
import signal
import threading

from sitecrawl.features.crawl.services.crawler_service import PageCrawler
from sitecrawl.features.crawl.services.queue_service import get_crawl_queue
from sitecrawl.features.crawl.services.unit_of_work import default_uow_factory
from sitecrawl.features.crawl.workers.dispatcher import CrawlDispatcher
from sitecrawl.platform.logger import get_logger

logger = get_logger(__name__)


def main() -> None:
    stop_event = threading.Event()

    def _request_stop(signum, frame):
        logger.info(f"Received signal {signum}, stopping after the current job")
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    with PageCrawler() as crawler:
        dispatcher = CrawlDispatcher(get_crawl_queue(), default_uow_factory, crawler)
        dispatcher.run(stop_event)


if __name__ == "__main__":
    main()
