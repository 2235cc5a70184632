from sitecrawl.features.crawl.models.crawl_result import BrokenLink, CrawlResult

__all__ = ["BrokenLink", "CrawlResult"]
