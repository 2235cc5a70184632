"""
Crawl Services

Organized by responsibility:

1. queue_service.py - durable job queue, cancellation marks, per-page locks
   - RedisCrawlQueue (production) / InMemoryCrawlQueue (tests, single process)
2. cancellation.py - CancellationToken polled by the pipeline at its checkpoints
3. crawler_service.py - PageCrawler: fetch -> parse -> verify links for one page
   - html_analyzer.py: title, headings, login form, link inventory
   - link_checker.py: HEAD/GET liveness checks with a redirect cap
4. result_builder.py - maps pipeline output onto CrawlResult rows
5. unit_of_work.py - one session + both repositories + one commit

The dispatch loop that ties these together lives in workers/dispatcher.py.
"""
