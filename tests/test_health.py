from sitecrawl.features.health.routes import health
from sitecrawl.platform.config import settings
from sitecrawl.platform.exceptions import QueueError


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200

    payload = response.json()
    assert payload["status_code"] == 200
    assert payload["status"] == "success"
    assert payload["message"] == "Service is healthy"
    assert payload["data"]["status"] == "ok"
    assert payload["data"]["service"] == "SiteCrawl"
    assert payload["data"]["worker_running"] is False
    assert isinstance(payload["data"]["queue_depth"], int)


def test_health_reports_in_process_worker(test_app, monkeypatch):
    from fastapi.testclient import TestClient

    monkeypatch.setattr(settings, "RUN_WORKER_IN_PROCESS", True)
    monkeypatch.setattr(settings, "WORKER_SHUTDOWN_GRACE_SECONDS", 5.0)

    with TestClient(test_app) as client:
        response = client.get("/health")
        assert response.json()["data"]["worker_running"] is True

    # Lifespan shutdown joined the worker thread
    assert test_app.state.dispatcher.is_running is False


def test_health_degraded_when_queue_unreachable(client, monkeypatch):
    class BrokenQueue:
        def depth(self):
            raise QueueError("connection refused")

    monkeypatch.setattr(health, "get_crawl_queue", lambda: BrokenQueue())

    response = client.get("/health")
    assert response.status_code == 503

    payload = response.json()
    assert payload["status"] == "error"
    assert payload["data"]["status"] == "degraded"


def test_root_info(client):
    response = client.get("/")
    assert response.status_code == 200
    payload = response.json()
    assert payload["app_name"] == "SiteCrawl"
    assert payload["version"] == "1.0.0"
    assert payload["docs_url"] == "/docs"


def test_unknown_route_uses_envelope(client):
    response = client.get("/does-not-exist")
    assert response.status_code == 404

    payload = response.json()
    assert payload["status"] == "error"
    assert payload["message"] == "Not Found"
