import logging
from typing import Dict, List, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from sitecrawl.platform.response import api_response


class CrawlError(Exception):
    """Base for every failure the crawl pipeline reports. str(exc) is what gets stored."""


class FetchError(CrawlError):
    """Transport failure: connection, DNS, timeout."""


class BadStatusError(CrawlError):
    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"HTTP error: {status_code}")


class ContentError(CrawlError):
    """Response body could not be parsed as HTML."""


class CrawlCancelled(CrawlError):
    def __init__(self, message: str = "crawl stopped"):
        super().__init__(message)


class InvalidURLError(ValueError):
    pass


class PageNotFoundError(LookupError):
    def __init__(self, page_id: int):
        self.page_id = page_id
        super().__init__(f"Page {page_id} not found")


class InvalidTransitionError(Exception):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move page from {current.value} to {target.value}")


class QueueError(Exception):
    """Queue transport failure (enqueue, cancellation marks, locks)."""


class PersistenceError(Exception):
    """A repository write could not be committed."""


class BulkOperationError(Exception):
    """Raised only when every id in a bulk call failed."""

    def __init__(self, operation: str, failed: Dict[int, str], succeeded: Optional[List[int]] = None):
        self.operation = operation
        self.failed = failed
        self.succeeded = succeeded or []
        super().__init__(f"{operation} failed for all {len(failed)} page(s)")


def add_exception_handlers(app):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(QueueError)
    async def queue_exception_handler(request: Request, exc: QueueError):
        logging.error(f"Crawl queue unavailable: {exc}")
        return api_response(
            message="Crawl queue unavailable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logging.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
