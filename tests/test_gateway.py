"""
Gateway integration tests: FastAPI TestClient against backend/main.py with a fake origin.
"""
import json

import pytest
from fastapi.testclient import TestClient

import main
from offline_worker.worker import build_worker


@pytest.fixture
def gateway(monkeypatch, config, origin):
    main.Base.metadata.drop_all(bind=main.engine)
    main.Base.metadata.create_all(bind=main.engine)
    worker = build_worker(main.SessionLocal, config, origin)
    monkeypatch.setattr(main, "WORKER", worker)
    monkeypatch.setattr(main, "FETCHER", origin)
    with TestClient(main.app) as client:
        yield client, worker


@pytest.fixture
def installed(gateway):
    client, worker = gateway
    r = client.post("/sw/install")
    assert r.status_code == 200
    worker.fetcher.calls.clear()
    return client, worker


def test_health(gateway):
    client, _ = gateway
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/health/db").json() == {"db": "ok"}


def test_install_activates_and_claims(gateway):
    client, worker = gateway
    client.post("/sw/clients", json={"url": "/"})

    body = client.post("/sw/install").json()

    assert body["activated"] is True
    assert "/index.html" in body["precached"]
    state = client.get("/sw/state").json()
    assert state["state"] == "activated"
    assert state["clients_claimed"] is True
    assert worker.clients.match_all()[0].messages == [{"type": "UPDATE_AVAILABLE", "version": "v1"}]


def test_install_failure_returns_409(gateway):
    client, worker = gateway
    worker.fetcher.failing.add("/index.html")

    r = client.post("/sw/install")

    assert r.status_code == 409
    assert r.json()["code"] == "INSTALL_FAILED"
    assert "/index.html" in r.json()["details"]["failed"]
    assert client.get("/sw/state").json()["state"] is None


def test_requests_pass_through_before_install(gateway):
    client, worker = gateway
    worker.fetcher.add("/api/events", body="[]", content_type="application/json")

    r = client.get("/api/events")

    assert r.status_code == 200
    assert r.headers["X-Served-From"] == "passthrough"
    assert worker.storage.keys() == []


def test_api_cached_then_served_offline(installed):
    client, worker = installed
    worker.fetcher.add("/api/events?page=1", body='{"events": [1]}', content_type="application/json")

    online = client.get("/api/events?page=1")
    assert online.headers["X-Served-From"] == "network"
    assert online.headers["X-Route-Class"] == "api"

    worker.fetcher.offline = True
    offline = client.get("/api/events?page=1")
    assert offline.status_code == 200
    assert offline.headers["X-Served-From"] == "cache"
    assert offline.json() == {"events": [1]}


def test_uncached_api_offline_is_503_json(installed):
    client, worker = installed
    worker.fetcher.offline = True

    r = client.get("/api/unknown")

    assert r.status_code == 503
    assert r.json()["offline"] is True
    assert r.headers["X-Served-From"] == "fallback"


def test_image_placeholder_when_offline(installed):
    client, worker = installed
    worker.fetcher.offline = True

    r = client.get("/images/hero.png")

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("image/svg+xml")
    assert "オフライン中" in r.text


def test_document_navigation_gets_offline_page(installed):
    client, worker = installed
    worker.fetcher.offline = True

    r = client.get("/events/42", headers={"Sec-Fetch-Dest": "document"})

    assert r.text == "<html>offline page</html>"
    assert r.headers["X-Served-From"] == "fallback"


def test_static_subresource_offline_is_504(installed):
    client, worker = installed
    worker.fetcher.offline = True

    r = client.get("/js/app.js", headers={"Sec-Fetch-Dest": "script"})

    assert r.status_code == 504
    assert r.json()["code"] == "NETWORK_ERROR"


def test_precached_page_served_from_cache(installed):
    client, worker = installed

    r = client.get("/index.html")

    assert r.text == "<html>/index.html</html>"
    assert r.headers["X-Served-From"] == "cache"
    assert worker.fetcher.calls == []


def test_post_is_passed_through(installed):
    client, worker = installed
    worker.fetcher.add("/api/posts", body="{}", status=201, content_type="application/json")

    r = client.post("/api/posts", json={"title": "x"})

    assert r.status_code == 201
    assert r.headers["X-Served-From"] == "passthrough"


def test_caches_listing(installed):
    client, worker = installed
    names = {p["name"]: p["entries"] for p in client.get("/sw/caches").json()}

    assert names[worker.config.partition_name("static")] == 4
    assert names[worker.config.partition_name("offline")] == 1
    assert client.get("/sw/caches/nope").status_code == 404


def test_push_and_notification_click(installed):
    client, worker = installed

    shown = client.post("/sw/push", json={"data": json.dumps({"title": "新着", "body": "イベント"})}).json()
    assert shown["title"] == "新着"
    assert len(client.get("/sw/notifications").json()) == 1

    clicked = client.post("/sw/notificationclick", json={"action": "view"}).json()
    assert clicked["client"]["url"] == "/"
    assert client.get("/sw/notifications").json() == []


def test_search_history_sync(installed):
    client, worker = installed
    worker.fetcher.add(worker.config.sync_endpoint, body="{}", content_type="application/json")
    client.post("/sw/search-history", json={"query": "harajuku"})

    result = client.post("/sw/sync", json={"tag": "sync-search-history"}).json()

    assert result["synced"] == 1
    assert client.get("/sw/search-history", params={"unsynced_only": True}).json() == []
    sent = json.loads(worker.fetcher.calls[-1].body)
    assert sent["searches"][0]["query"] == "harajuku"


def test_unknown_sync_tag_is_404(installed):
    client, _ = installed
    assert client.post("/sw/sync", json={"tag": "nope"}).status_code == 404


def test_outbox_drained_by_background_sync(installed):
    client, worker = installed
    worker.fetcher.add("/api/posts", body="{}", status=201, content_type="application/json")
    assert client.post("/sw/outbox", json={"url": "/api/posts", "body": {"title": "x"}}).json()["pending"] == 1

    result = client.post("/sw/sync", json={"tag": "background-sync"}).json()

    assert result["synced"] == 1
    assert len(worker.outbox) == 0


def test_message_get_version(installed):
    client, _ = installed
    assert client.post("/sw/message", json={"type": "GET_VERSION"}).json() == {
        "reply": {"type": "VERSION", "version": "v1"}
    }


def test_stats_counts_sources(installed):
    client, worker = installed
    client.get("/index.html")
    worker.fetcher.offline = True
    client.get("/api/unknown")

    stats = client.get("/sw/stats").json()

    assert stats["total"] == 2
    assert stats["cache_pct"] == 50.0
    assert stats["fallback_pct"] == 50.0
    assert stats["by_route"] == {"api": 1, "static": 1}
