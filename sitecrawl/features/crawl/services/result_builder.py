from typing import List, Optional, Tuple

from sitecrawl.features.crawl.models.crawl_result import BrokenLink, CrawlResult
from sitecrawl.features.crawl.schemas.crawl import PageAnalysis


def build_crawl_result(
    page_id: int,
    analysis: Optional[PageAnalysis] = None,
    error_message: Optional[str] = None,
) -> Tuple[CrawlResult, List[BrokenLink]]:
    """
    Map a pipeline outcome onto a fresh (unsaved) CrawlResult and its broken links.

    Every column is set explicitly so an upsert over an older row resets counts
    that a failed crawl did not produce.
    """
    if analysis is None:
        result = CrawlResult(
            page_id=page_id,
            html_version=None,
            title=None,
            h1_count=0,
            h2_count=0,
            h3_count=0,
            h4_count=0,
            h5_count=0,
            h6_count=0,
            internal_links=0,
            external_links=0,
            has_login_form=False,
            error_message=error_message,
        )
        return result, []

    result = CrawlResult(
        page_id=page_id,
        html_version=analysis.html_version,
        title=analysis.title,
        h1_count=analysis.h1_count,
        h2_count=analysis.h2_count,
        h3_count=analysis.h3_count,
        h4_count=analysis.h4_count,
        h5_count=analysis.h5_count,
        h6_count=analysis.h6_count,
        internal_links=analysis.internal_links,
        external_links=analysis.external_links,
        has_login_form=analysis.has_login_form,
        error_message=error_message,
    )
    broken_links = [
        BrokenLink(url=link.url, status_code=link.status_code, error_message=link.error_message)
        for link in analysis.broken_links
    ]
    return result, broken_links
