import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sitecrawl.features.crawl.services.crawler_service import PageCrawler
from sitecrawl.features.crawl.services.queue_service import get_crawl_queue
from sitecrawl.features.crawl.services.unit_of_work import default_uow_factory
from sitecrawl.features.crawl.workers.dispatcher import CrawlDispatcher
from sitecrawl.features.health.routes.health import router as health_router
from sitecrawl.platform.config import settings
from sitecrawl.platform.exceptions import add_exception_handlers

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.dispatcher = None
    crawler = None

    if settings.RUN_WORKER_IN_PROCESS:
        crawler = PageCrawler()
        dispatcher = CrawlDispatcher(get_crawl_queue(), default_uow_factory, crawler)
        app.state.dispatcher = dispatcher.start()

    try:
        yield
    finally:
        if app.state.dispatcher is not None:
            # The grace wait blocks, keep it off the event loop
            await asyncio.to_thread(app.state.dispatcher.stop, settings.WORKER_SHUTDOWN_GRACE_SECONDS)
        if crawler is not None:
            crawler.close()


app = FastAPI(
    title="SiteCrawl API",
    description="Page registration and background structural crawling",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/", tags=["Info"])
def root():
    return {
        "app_name": settings.APP_NAME,
        "description": "Background crawler that extracts page structure and verifies links.",
        "version": "1.0.0",
        "docs_url": "/docs",
    }


add_exception_handlers(app)

app.include_router(health_router)
