"""
Offline gateway - test configuration and fixtures
"""
import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set testing environment before the gateway modules are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ORIGIN_BASE_URL", "http://origin.test")

from offline_worker.config import WorkerConfig
from offline_worker.errors import NetworkError
from offline_worker.http import Request, ResponseSnapshot
from offline_worker.models import Base
from offline_worker.store import CacheStorage
from offline_worker.worker import build_worker


class FakeFetcher:
    """
    Network double. Responses are keyed by URL; unknown URLs return 404.
    offline=True (or a URL listed in `failing`) raises NetworkError.
    """

    def __init__(self, routes=None, offline=False):
        self.routes = dict(routes or {})
        self.failing = set()
        self.offline = offline
        self.calls = []

    def add(self, url, body=b"ok", status=200, content_type="text/html; charset=utf-8"):
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[url] = ResponseSnapshot(status=status, headers={"Content-Type": content_type}, body=body, url=url)
        return self

    def fetch(self, request: Request) -> ResponseSnapshot:
        self.calls.append(request)
        if self.offline or request.url in self.failing:
            raise NetworkError(request.url, reason="ConnectionError")
        response = self.routes.get(request.url)
        if response is None:
            return ResponseSnapshot(status=404, headers={"Content-Type": "text/plain"}, body=b"not found", url=request.url)
        return response.clone()

    def urls(self):
        return [r.url for r in self.calls]


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def config():
    return WorkerConfig(
        precache_manifest=["/", "/index.html", "/offline.html", "https://cdn.test/all.min.css"],
        offline_manifest=["/offline.html"],
    )


@pytest.fixture
def origin(config):
    fetcher = FakeFetcher()
    for url in config.precache_manifest + config.offline_manifest:
        fetcher.add(url, body=f"<html>{url}</html>")
    fetcher.add("/offline.html", body="<html>offline page</html>")
    return fetcher


@pytest.fixture
def storage(session_factory):
    return CacheStorage(session_factory)


@pytest.fixture
def worker(session_factory, config, origin):
    return build_worker(session_factory, config, origin)


@pytest.fixture
def active_worker(worker):
    worker.lifecycle.install()
    worker.lifecycle.activate()
    worker.fetcher.calls.clear()
    return worker
