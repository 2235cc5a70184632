"""Crawl dispatch worker."""

from sitecrawl.features.crawl.workers.dispatcher import CrawlDispatcher, DispatcherHandle, JobOutcome

__all__ = ["CrawlDispatcher", "DispatcherHandle", "JobOutcome"]
