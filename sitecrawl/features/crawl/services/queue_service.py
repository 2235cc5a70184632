"""
Crawl job queue and cancellation marks.

The queue and the marks are independent structures: cancelling a page never
removes its queued job (that would be an O(n) scan of the list). The
dispatcher checks the mark when it eventually pops the job.

Two backends share the CrawlQueue contract:
- RedisCrawlQueue: durable LPUSH/BRPOP list plus TTL'd marker keys
- InMemoryCrawlQueue: process-local, for tests and single-process runs
"""
import math
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional, Protocol, Set

import redis
from pydantic import ValidationError
from redis.exceptions import LockError, RedisError

from sitecrawl.features.crawl.schemas.crawl import CrawlJob
from sitecrawl.features.crawl.services.cancellation import CancellationToken
from sitecrawl.platform.cache.redis import get_redis_client
from sitecrawl.platform.config import settings
from sitecrawl.platform.exceptions import QueueError
from sitecrawl.platform.logger import get_logger

logger = get_logger(__name__)


class CrawlQueue(Protocol):
    def enqueue(self, page_id: int) -> CrawlJob: ...

    def dequeue(self, timeout: float) -> Optional[CrawlJob]: ...

    def mark_cancelled(self, page_id: int) -> None: ...

    def clear_cancellation(self, page_id: int) -> None: ...

    def is_cancelled(self, page_id: int) -> bool: ...

    def cancellation_token(self, page_id: int) -> CancellationToken: ...

    def acquire_page_lock(self, page_id: int) -> Optional[Any]: ...

    def release_page_lock(self, lock: Any) -> None: ...

    def depth(self) -> int: ...


class RedisCrawlQueue:
    def __init__(
        self,
        client: redis.Redis,
        queue_name: str = settings.CRAWL_QUEUE_NAME,
        cancellation_prefix: str = settings.CANCELLATION_KEY_PREFIX,
        cancellation_ttl: int = settings.CANCELLATION_TTL_SECONDS,
        lock_prefix: str = settings.CRAWL_LOCK_KEY_PREFIX,
        lock_ttl: int = settings.CRAWL_LOCK_TTL_SECONDS,
    ):
        self.client = client
        self.queue_name = queue_name
        self.cancellation_prefix = cancellation_prefix
        self.cancellation_ttl = cancellation_ttl
        self.lock_prefix = lock_prefix
        self.lock_ttl = lock_ttl

    def _cancellation_key(self, page_id: int) -> str:
        return f"{self.cancellation_prefix}:{page_id}"

    def enqueue(self, page_id: int) -> CrawlJob:
        job = CrawlJob(page_id=page_id)
        try:
            self.client.lpush(self.queue_name, job.model_dump_json())
        except RedisError as e:
            raise QueueError(f"Failed to enqueue page {page_id}: {e}") from e
        logger.info(f"[page {page_id}] Enqueued crawl job")
        return job

    def dequeue(self, timeout: float) -> Optional[CrawlJob]:
        """
        Block up to `timeout` seconds for the oldest job.

        Returns None on timeout or for a message that cannot be decoded
        (logged and dropped). Transport failures raise QueueError.
        """
        # BRPOP treats 0 as "block forever"
        wait = max(1, math.ceil(timeout))
        try:
            item = self.client.brpop([self.queue_name], timeout=wait)
        except RedisError as e:
            raise QueueError(f"Failed to pop from {self.queue_name}: {e}") from e

        if item is None:
            return None

        _, raw = item
        try:
            return CrawlJob.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Dropping malformed crawl job {raw!r}: {e}")
            return None

    def mark_cancelled(self, page_id: int) -> None:
        try:
            self.client.set(self._cancellation_key(page_id), "true", ex=self.cancellation_ttl)
        except RedisError as e:
            raise QueueError(f"Failed to mark page {page_id} cancelled: {e}") from e

    def clear_cancellation(self, page_id: int) -> None:
        try:
            self.client.delete(self._cancellation_key(page_id))
        except RedisError as e:
            raise QueueError(f"Failed to clear cancellation for page {page_id}: {e}") from e

    def is_cancelled(self, page_id: int) -> bool:
        try:
            value = self.client.get(self._cancellation_key(page_id))
        except RedisError as e:
            raise QueueError(f"Failed to read cancellation for page {page_id}: {e}") from e
        return value == "true"

    def cancellation_token(self, page_id: int) -> CancellationToken:
        return CancellationToken(self, page_id)

    def acquire_page_lock(self, page_id: int):
        lock = self.client.lock(f"{self.lock_prefix}:{page_id}", timeout=self.lock_ttl, blocking=False)
        try:
            acquired = lock.acquire(blocking=False)
        except RedisError as e:
            raise QueueError(f"Failed to lock page {page_id}: {e}") from e
        return lock if acquired else None

    def release_page_lock(self, lock) -> None:
        try:
            lock.release()
        except LockError as e:
            # Lock TTL ran out mid-crawl; someone else may own it now
            logger.warning(f"Page lock {lock.name} was no longer held on release: {e}")
        except RedisError as e:
            logger.error(f"Failed to release page lock {lock.name}: {e}")

    def depth(self) -> int:
        try:
            return int(self.client.llen(self.queue_name))
        except RedisError as e:
            raise QueueError(f"Failed to read length of {self.queue_name}: {e}") from e


class _MemoryPageLock:
    def __init__(self, page_id: int):
        self.page_id = page_id
        self.name = f"{settings.CRAWL_LOCK_KEY_PREFIX}:{page_id}"


class InMemoryCrawlQueue:
    """Thread-safe, process-local CrawlQueue. Marks expire after cancellation_ttl seconds."""

    def __init__(
        self,
        cancellation_ttl: float = settings.CANCELLATION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cancellation_ttl = cancellation_ttl
        self._clock = clock
        self._jobs: Deque[CrawlJob] = deque()
        self._cond = threading.Condition()
        self._marks: Dict[int, float] = {}
        self._locked: Set[int] = set()
        self._state_lock = threading.Lock()

    def enqueue(self, page_id: int) -> CrawlJob:
        job = CrawlJob(page_id=page_id)
        with self._cond:
            self._jobs.append(job)
            self._cond.notify()
        logger.info(f"[page {page_id}] Enqueued crawl job")
        return job

    def dequeue(self, timeout: float) -> Optional[CrawlJob]:
        with self._cond:
            if not self._cond.wait_for(lambda: len(self._jobs) > 0, timeout=timeout):
                return None
            return self._jobs.popleft()

    def mark_cancelled(self, page_id: int) -> None:
        with self._state_lock:
            now = self._clock()
            # Drop expired marks so pages stopped and never recrawled do not pile up
            for expired in [pid for pid, expires_at in self._marks.items() if expires_at <= now]:
                del self._marks[expired]
            self._marks[page_id] = now + self.cancellation_ttl

    def clear_cancellation(self, page_id: int) -> None:
        with self._state_lock:
            self._marks.pop(page_id, None)

    def is_cancelled(self, page_id: int) -> bool:
        with self._state_lock:
            expires_at = self._marks.get(page_id)
            if expires_at is None:
                return False
            if self._clock() >= expires_at:
                del self._marks[page_id]
                return False
            return True

    def cancellation_token(self, page_id: int) -> CancellationToken:
        return CancellationToken(self, page_id)

    def acquire_page_lock(self, page_id: int) -> Optional[_MemoryPageLock]:
        with self._state_lock:
            if page_id in self._locked:
                return None
            self._locked.add(page_id)
        return _MemoryPageLock(page_id)

    def release_page_lock(self, lock: _MemoryPageLock) -> None:
        with self._state_lock:
            self._locked.discard(lock.page_id)

    def depth(self) -> int:
        with self._cond:
            return len(self._jobs)


_queue: Optional[CrawlQueue] = None


def get_crawl_queue() -> CrawlQueue:
    """Shared queue for this process, backend chosen by FORCE_IN_MEMORY_QUEUE."""
    global _queue

    if _queue is None:
        if settings.FORCE_IN_MEMORY_QUEUE:
            _queue = InMemoryCrawlQueue()
            logger.info("Using in-memory crawl queue")
        else:
            _queue = RedisCrawlQueue(get_redis_client())
            logger.info(f"Using Redis crawl queue '{settings.CRAWL_QUEUE_NAME}'")
    return _queue
