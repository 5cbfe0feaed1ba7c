# offline_worker/http.py - request/response snapshots and the network fetch primitive
import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Protocol
from urllib.parse import urljoin, urlsplit

import requests

from offline_worker.errors import NetworkError

logger = logging.getLogger(__name__)


@dataclass
class Request:
    url: str
    method: str = "GET"
    destination: str = ""  # "document", "image", "style", "script", ... ("" = unknown)
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def identity(self) -> str:
        # method + full URL (query included) is the cache key
        return f"{self.method.upper()} {self.url}"

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"


@dataclass
class ResponseSnapshot:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status <= 299

    @property
    def content_type(self) -> str:
        for k, v in self.headers.items():
            if k.lower() == "content-type":
                return v
        return ""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)

    def clone(self) -> "ResponseSnapshot":
        return replace(self, headers=dict(self.headers))


class Fetcher(Protocol):
    def fetch(self, request: Request) -> ResponseSnapshot: ...


# hop-by-hop / transport headers that must not be replayed from a snapshot
_DROP_HEADERS = {"content-encoding", "content-length", "transfer-encoding", "connection", "keep-alive"}


class RequestsFetcher:
    """
    Network primitive backed by a requests.Session.
    Root-relative URLs ("/index.html") are resolved against origin_base_url.
    Raises NetworkError on transport failure; HTTP error statuses are returned as-is.
    """

    def __init__(self, origin_base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.origin_base_url = origin_base_url.rstrip("/") + "/"
        self.timeout = timeout
        self.session = session or requests.Session()

    def resolve(self, url: str) -> str:
        if urlsplit(url).scheme:
            return url
        return urljoin(self.origin_base_url, url.lstrip("/"))

    def fetch(self, request: Request) -> ResponseSnapshot:
        target = self.resolve(request.url)
        try:
            r = self.session.request(
                request.method.upper(),
                target,
                headers=request.headers or None,
                data=request.body or None,
                timeout=self.timeout,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            logger.debug("fetch %s failed: %r", target, e)
            raise NetworkError(request.url, reason=type(e).__name__) from e

        headers = {k: v for k, v in r.headers.items() if k.lower() not in _DROP_HEADERS}
        return ResponseSnapshot(status=r.status_code, headers=headers, body=r.content, url=request.url)
