from sitecrawl.features.crawl.schemas.crawl import (
    BrokenLinkInfo,
    CrawlJob,
    LinkStatus,
    PageAnalysis,
)

__all__ = ["BrokenLinkInfo", "CrawlJob", "LinkStatus", "PageAnalysis"]
