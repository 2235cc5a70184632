import logging
import time
from typing import Optional

import httpx

from sitecrawl.features.crawl.schemas.crawl import BrokenLinkInfo, PageAnalysis
from sitecrawl.features.crawl.services import html_analyzer
from sitecrawl.features.crawl.services.cancellation import CancellationToken
from sitecrawl.features.crawl.services.link_checker import LinkChecker
from sitecrawl.platform.config import settings
from sitecrawl.platform.exceptions import BadStatusError, FetchError

logger = logging.getLogger(__name__)


class PageCrawler:
    """
    Fetch, parse and link-verify a single page.

    crawl() returns a PageAnalysis or raises a CrawlError subclass; it never
    touches the database. Cancellation is polled twice: before the fetch and
    after the response arrives, before any link is checked. A link check in
    progress always runs to completion.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        fetch_timeout: float = settings.FETCH_TIMEOUT_SECONDS,
        link_check_timeout: float = settings.LINK_CHECK_TIMEOUT_SECONDS,
        max_redirects: int = settings.LINK_CHECK_MAX_REDIRECTS,
        user_agent: str = settings.CRAWLER_USER_AGENT,
    ):
        self._owns_client = client is None
        self.client = client or httpx.Client(headers={"User-Agent": user_agent})
        self.fetch_timeout = fetch_timeout
        self.link_checker = LinkChecker(self.client, timeout=link_check_timeout, max_redirects=max_redirects)

    def __enter__(self) -> "PageCrawler":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def fetch(self, url: str) -> str:
        """
        GET the page and return its decoded body.

        fetch_timeout bounds the whole exchange, redirects and body included,
        not just each socket read, so a server trickling bytes cannot hold the
        worker past it.
        """
        deadline = time.monotonic() + self.fetch_timeout
        try:
            with self.client.stream("GET", url, timeout=self.fetch_timeout, follow_redirects=True) as response:
                if response.status_code >= 400:
                    raise BadStatusError(response.status_code)
                self._check_deadline(deadline)

                chunks = []
                for chunk in response.iter_text():
                    chunks.append(chunk)
                    self._check_deadline(deadline)
                return "".join(chunks)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(f"failed to fetch URL: {str(e) or e.__class__.__name__}") from e

    def _check_deadline(self, deadline: float) -> None:
        if time.monotonic() > deadline:
            raise FetchError(f"failed to fetch URL: exceeded {self.fetch_timeout}s timeout")

    def crawl(self, url: str, token: Optional[CancellationToken] = None) -> PageAnalysis:
        token = token or CancellationToken.never()

        token.raise_if_cancelled()
        body = self.fetch(url)
        token.raise_if_cancelled()

        soup = html_analyzer.parse_html(body)
        headings = html_analyzer.count_headings(soup)

        # Relative hrefs resolve against the URL we were asked to crawl
        links = html_analyzer.collect_links(soup, url)
        broken_links = []
        for target in links.all:
            status = self.link_checker.check(target)
            if status.is_broken:
                broken_links.append(
                    BrokenLinkInfo(url=target, status_code=status.status_code, error_message=status.error)
                )

        logger.info(
            f"Crawled {url}: {len(links.internal)} internal, {len(links.external)} external, "
            f"{len(broken_links)} broken"
        )

        return PageAnalysis(
            html_version=html_analyzer.HTML_VERSION,
            title=html_analyzer.extract_title(soup),
            internal_links=len(links.internal),
            external_links=len(links.external),
            has_login_form=html_analyzer.detect_login_form(soup),
            broken_links=broken_links,
            **{f"{tag}_count": count for tag, count in headings.items()},
        )
