# offline_worker/strategies.py - per-route caching strategies + offline fallbacks
import json
import logging
from dataclasses import dataclass
from typing import Callable, Dict

from offline_worker.classifier import RouteClass, classify
from offline_worker.config import WorkerConfig
from offline_worker.errors import NetworkError, StorageError
from offline_worker.http import Fetcher, Request, ResponseSnapshot
from offline_worker.store import CacheStorage, Partition

logger = logging.getLogger(__name__)

SOURCE_NETWORK = "network"
SOURCE_CACHE = "cache"
SOURCE_FALLBACK = "fallback"

OFFLINE_IMAGE_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="300" height="200" viewBox="0 0 300 200">'
    '<rect width="300" height="200" fill="#1a1a1a"/>'
    '<text x="150" y="100" text-anchor="middle" dominant-baseline="middle" '
    'fill="#888888" font-family="sans-serif" font-size="18">オフライン中</text>'
    "</svg>"
)

OFFLINE_HTML = (
    "<!DOCTYPE html><html lang=\"ja\"><head><meta charset=\"utf-8\"><title>オフライン</title></head>"
    "<body><h1>オフライン</h1><p>ネットワーク接続を確認してください。</p></body></html>"
)


@dataclass
class FetchOutcome:
    response: ResponseSnapshot
    route_class: RouteClass
    strategy: str
    source: str  # network | cache | fallback


def offline_api_response(message: str) -> ResponseSnapshot:
    body = json.dumps({"error": message, "offline": True}, ensure_ascii=False).encode("utf-8")
    return ResponseSnapshot(
        status=503,
        headers={"Content-Type": "application/json; charset=utf-8"},
        body=body,
    )


def offline_image_response() -> ResponseSnapshot:
    return ResponseSnapshot(
        status=200,
        headers={"Content-Type": "image/svg+xml"},
        body=OFFLINE_IMAGE_SVG.encode("utf-8"),
    )


def offline_document_response() -> ResponseSnapshot:
    return ResponseSnapshot(
        status=503,
        headers={"Content-Type": "text/html; charset=utf-8"},
        body=OFFLINE_HTML.encode("utf-8"),
    )


def _store(partition: Partition, request: Request, response: ResponseSnapshot):
    # fire-and-forget: the caller gets its response even if the write fails
    try:
        partition.put(request, response.clone())
    except StorageError as e:
        logger.warning("[SW] cache write to %s failed for %s: %s", partition.name, request.identity, e)


class StrategyExecutor:
    """
    Picks one strategy per route class and runs it for the whole request:
      API    -> network-first, dynamic partition, JSON 503 when nothing cached
      IMAGE  -> cache-first, image partition, SVG placeholder when offline
      STATIC -> cache-first, static partition, offline page for documents
    """

    def __init__(self, storage: CacheStorage, fetcher: Fetcher, config: WorkerConfig):
        self.storage = storage
        self.fetcher = fetcher
        self.config = config
        self._strategies: Dict[RouteClass, Callable[[Request], FetchOutcome]] = {
            RouteClass.API: self.network_first,
            RouteClass.IMAGE: self.cache_first,
            RouteClass.STATIC: self.cache_first_with_document_fallback,
        }

    def _partition(self, logical_name: str) -> Partition:
        return self.storage.open(self.config.partition_name(logical_name))

    def handle(self, request: Request) -> FetchOutcome:
        route_class = classify(request, self.config)
        return self._strategies[route_class](request)

    def network_first(self, request: Request) -> FetchOutcome:
        dynamic = self._partition("dynamic")
        try:
            response = self.fetcher.fetch(request)
        except NetworkError:
            cached = dynamic.match(request)
            if cached is not None:
                logger.info("[SW] offline, serving cached API response for %s", request.identity)
                return FetchOutcome(cached, RouteClass.API, "network-first", SOURCE_CACHE)
            return FetchOutcome(
                offline_api_response(self.config.offline_message),
                RouteClass.API,
                "network-first",
                SOURCE_FALLBACK,
            )

        if response.ok:
            _store(dynamic, request, response)
        return FetchOutcome(response, RouteClass.API, "network-first", SOURCE_NETWORK)

    def cache_first(self, request: Request) -> FetchOutcome:
        images = self._partition("images")
        cached = images.match(request)
        if cached is not None:
            return FetchOutcome(cached, RouteClass.IMAGE, "cache-first", SOURCE_CACHE)

        try:
            response = self.fetcher.fetch(request)
        except NetworkError:
            return FetchOutcome(offline_image_response(), RouteClass.IMAGE, "cache-first", SOURCE_FALLBACK)

        # 404s and other non-200 responses are passed through but never cached
        if response.status == 200:
            _store(images, request, response)
        return FetchOutcome(response, RouteClass.IMAGE, "cache-first", SOURCE_NETWORK)

    def cache_first_with_document_fallback(self, request: Request) -> FetchOutcome:
        strategy = "cache-first-document-fallback"
        static = self._partition("static")
        cached = static.match(request)
        if cached is not None:
            return FetchOutcome(cached, RouteClass.STATIC, strategy, SOURCE_CACHE)

        try:
            response = self.fetcher.fetch(request)
        except NetworkError:
            if request.destination != "document":
                raise
            page = self._partition("offline").match(self.config.offline_page)
            if page is None:
                page = self.storage.match(self.config.offline_page)
            if page is None:
                page = offline_document_response()
            logger.info("[SW] offline, serving fallback document for %s", request.identity)
            return FetchOutcome(page, RouteClass.STATIC, strategy, SOURCE_FALLBACK)

        if response.status == 200:
            _store(static, request, response)
        return FetchOutcome(response, RouteClass.STATIC, strategy, SOURCE_NETWORK)
