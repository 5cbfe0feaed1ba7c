import pytest

from offline_worker.classifier import RouteClass, classify, is_intercepted
from offline_worker.config import WorkerConfig
from offline_worker.http import Request

CONFIG = WorkerConfig()


@pytest.mark.parametrize("url,destination,expected", [
    ("/api/events", "", RouteClass.API),
    ("/api/search?q=shoes.png", "", RouteClass.API),
    ("https://example.test/api/posts", "", RouteClass.API),
    ("/images/post-1.JPG", "", RouteClass.IMAGE),
    ("/icons/favicon.ico", "", RouteClass.IMAGE),
    ("/avatar?id=3", "image", RouteClass.IMAGE),
    ("/logo.svg", "document", RouteClass.IMAGE),
    ("/", "document", RouteClass.STATIC),
    ("/js/advanced-search.js", "script", RouteClass.STATIC),
    ("/apiary.html", "document", RouteClass.STATIC),
    ("/photo.png.html", "document", RouteClass.STATIC),
])
def test_classify(url, destination, expected):
    assert classify(Request(url=url, destination=destination), CONFIG) == expected


def test_classify_is_deterministic():
    req = Request(url="/images/a.webp")
    assert {classify(req, CONFIG) for _ in range(5)} == {RouteClass.IMAGE}


def test_custom_api_prefix():
    cfg = WorkerConfig(api_prefix="/v2/")
    assert classify(Request(url="/v2/events"), cfg) == RouteClass.API
    assert classify(Request(url="/api/events"), cfg) == RouteClass.STATIC


def test_extension_scheme_is_not_intercepted():
    assert not is_intercepted(Request(url="chrome-extension://abcdef/popup.html"), CONFIG)
    assert not is_intercepted(Request(url="moz-extension://abcdef/icon.png"), CONFIG)
    assert is_intercepted(Request(url="https://example.test/"), CONFIG)
    assert is_intercepted(Request(url="/index.html"), CONFIG)
