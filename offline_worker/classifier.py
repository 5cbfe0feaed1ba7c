# offline_worker/classifier.py - request -> route class
from enum import Enum

from offline_worker.config import WorkerConfig
from offline_worker.http import Request


class RouteClass(str, Enum):
    API = "api"
    IMAGE = "image"
    STATIC = "static"


def is_intercepted(request: Request, config: WorkerConfig) -> bool:
    """Browser-extension schemes are never intercepted; they go straight through."""
    return request.scheme.lower() not in {s.lower() for s in config.ignored_schemes}


def classify(request: Request, config: WorkerConfig) -> RouteClass:
    path = request.path
    if path.startswith(config.api_prefix):
        return RouteClass.API

    lowered = path.lower()
    if any(lowered.endswith("." + ext.lower()) for ext in config.image_extensions):
        return RouteClass.IMAGE
    if request.destination == "image":
        return RouteClass.IMAGE

    return RouteClass.STATIC
