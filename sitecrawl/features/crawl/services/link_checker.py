import logging
import time
from typing import Optional

import httpx

from sitecrawl.features.crawl.schemas.crawl import LinkStatus
from sitecrawl.platform.config import settings

logger = logging.getLogger(__name__)

_CHECK_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


def _describe(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


class LinkChecker:
    """
    Lightweight liveness check for one outbound link.

    HEAD first; when HEAD errors or answers >= 400 the link gets one GET
    (some servers reject HEAD outright). Redirects are followed by hand up to
    max_redirects hops, after which the last redirect response is taken as the
    answer instead of raising. Bodies are streamed and closed unread. timeout
    is a total budget for the whole check, not a per-request one.
    """

    def __init__(
        self,
        client: httpx.Client,
        timeout: float = settings.LINK_CHECK_TIMEOUT_SECONDS,
        max_redirects: int = settings.LINK_CHECK_MAX_REDIRECTS,
    ):
        self.client = client
        self.timeout = timeout
        self.max_redirects = max_redirects

    def _request(self, method: str, url: str, deadline: float) -> int:
        # Each hop only gets what is left of the overall budget
        request = self.client.build_request(method, url, timeout=self._remaining(deadline))
        response = self.client.send(request, follow_redirects=False, stream=True)
        try:
            hops = 0
            while response.next_request is not None and hops < self.max_redirects:
                next_request = response.next_request
                response.close()
                next_request.extensions["timeout"] = httpx.Timeout(self._remaining(deadline)).as_dict()
                response = self.client.send(next_request, follow_redirects=False, stream=True)
                hops += 1
            return response.status_code
        finally:
            response.close()

    def _remaining(self, deadline: float) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise httpx.TimeoutException(f"link check exceeded {self.timeout}s timeout")
        return remaining

    def check(self, url: str) -> LinkStatus:
        # HEAD, its GET fallback and every redirect share one timeout budget
        deadline = time.monotonic() + self.timeout
        head_status: Optional[int] = None
        try:
            head_status = self._request("HEAD", url, deadline)
            if head_status < 400:
                return LinkStatus(url=url, status_code=head_status)
        except _CHECK_ERRORS as e:
            logger.debug(f"HEAD {url} failed, retrying with GET: {e}")

        try:
            status_code = self._request("GET", url, deadline)
        except _CHECK_ERRORS as e:
            return LinkStatus(url=url, status_code=head_status, error=_describe(e))

        return LinkStatus(url=url, status_code=status_code)
