from fastapi import APIRouter, Request, status

from sitecrawl.features.crawl.services.queue_service import get_crawl_queue
from sitecrawl.platform.exceptions import QueueError
from sitecrawl.platform.response import api_response

router = APIRouter()


@router.get("/health", tags=["health"])
def health_check(request: Request):
    handle = getattr(request.app.state, "dispatcher", None)

    try:
        queue_depth = get_crawl_queue().depth()
    except QueueError:
        return api_response(
            data={"status": "degraded", "service": "SiteCrawl", "queue": "unreachable"},
            message="Crawl queue is unreachable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return api_response(
        data={
            "status": "ok",
            "service": "SiteCrawl",
            "worker_running": bool(handle and handle.is_running),
            "queue_depth": queue_depth,
        },
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )
