# offline_worker/worker.py - event-handler registry driven by an external host loop
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

from sqlalchemy.orm import sessionmaker

from offline_worker.classifier import is_intercepted
from offline_worker.clients import NotificationCenter, WindowClients
from offline_worker.config import WorkerConfig
from offline_worker.errors import LifecycleError
from offline_worker.http import Fetcher, Request
from offline_worker.lifecycle import LifecycleManager, LifecycleState
from offline_worker.notifications import NotificationHooks
from offline_worker.store import CacheStorage
from offline_worker.strategies import FetchOutcome, StrategyExecutor
from offline_worker.sync import (
    TAG_BACKGROUND_SYNC,
    TAG_SEARCH_HISTORY,
    OutboxQueue,
    SearchHistoryQueue,
    SyncResult,
    drain_outbox,
    sync_search_history,
)

logger = logging.getLogger(__name__)


@dataclass
class InstallEvent:
    kind = "install"


@dataclass
class ActivateEvent:
    kind = "activate"


@dataclass
class FetchEvent:
    request: Request
    kind = "fetch"


@dataclass
class PushEvent:
    data: Union[bytes, str, None] = None
    kind = "push"


@dataclass
class NotificationClickEvent:
    tag: Optional[str] = None
    action: str = ""
    kind = "notificationclick"


@dataclass
class SyncEvent:
    tag: str
    kind = "sync"


@dataclass
class MessageEvent:
    data: Dict[str, Any] = field(default_factory=dict)
    kind = "message"


class OfflineWorker:
    """
    Holds the partition store handle, config and collaborators; nothing global.
    A host calls dispatch(event) and gets the handler's return value back:
      install -> list of precached URLs       activate -> list of deleted partitions
      fetch   -> FetchOutcome or None (pass-through)
      push    -> NotificationOptions          notificationclick -> WindowClient or None
      sync    -> SyncResult or None           message -> dict or None
    """

    def __init__(
        self,
        config: WorkerConfig,
        storage: CacheStorage,
        fetcher: Fetcher,
        search_queue: SearchHistoryQueue,
        outbox: OutboxQueue,
        notifications: Optional[NotificationCenter] = None,
        clients: Optional[WindowClients] = None,
    ):
        self.config = config
        self.storage = storage
        self.fetcher = fetcher
        self.search_queue = search_queue
        self.outbox = outbox
        self.notifications = notifications or NotificationCenter()
        self.clients = clients or WindowClients()

        self.lifecycle = LifecycleManager(config, storage, fetcher, clients=self.clients)
        self.executor = StrategyExecutor(storage, fetcher, config)
        self.hooks = NotificationHooks(
            self.notifications, self.clients, config.notification_defaults, root_url=config.root_url
        )

        self.handlers: Dict[str, Callable[[Any], Any]] = {
            "install": self.on_install,
            "activate": self.on_activate,
            "fetch": self.on_fetch,
            "push": self.on_push,
            "notificationclick": self.on_notification_click,
            "sync": self.on_sync,
            "message": self.on_message,
        }

    def on(self, kind: str, handler: Callable[[Any], Any]):
        self.handlers[kind] = handler

    def dispatch(self, event) -> Any:
        handler = self.handlers.get(event.kind)
        if handler is None:
            logger.debug("[SW] no handler for %s", event.kind)
            return None
        return handler(event)

    # --- lifecycle ---
    def on_install(self, event: InstallEvent):
        return self.lifecycle.install()

    def on_activate(self, event: ActivateEvent):
        return self.lifecycle.activate()

    # --- fetch ---
    def on_fetch(self, event: FetchEvent) -> Optional[FetchOutcome]:
        request = event.request
        if not is_intercepted(request, self.config):
            return None
        # only GET responses are cacheable; writes go straight to the network
        if request.method.upper() != "GET":
            return None
        if not self.lifecycle.is_controlling:
            return None
        return self.executor.handle(request)

    # --- push / notifications ---
    def on_push(self, event: PushEvent):
        return self.hooks.on_push(event.data)

    def on_notification_click(self, event: NotificationClickEvent):
        if event.tag is None:
            # untagged click: the most recent open notification
            open_ = self.notifications.list()
            notification = open_[-1] if open_ else None
        else:
            notification = self.notifications.get(event.tag)
        if notification is None:
            logger.warning("[PUSH] click for unknown notification tag=%s", event.tag)
            return None
        return self.hooks.on_notification_click(notification, event.action)

    # --- background sync ---
    def on_sync(self, event: SyncEvent) -> Optional[SyncResult]:
        if event.tag == TAG_SEARCH_HISTORY:
            return sync_search_history(self.search_queue, self.fetcher, self.config.sync_endpoint)
        if event.tag == TAG_BACKGROUND_SYNC:
            return drain_outbox(self.outbox, self.fetcher)
        logger.info("[SYNC] ignoring unknown sync tag %s", event.tag)
        return None

    # --- messages from pages ---
    def on_message(self, event: MessageEvent) -> Optional[Dict[str, Any]]:
        kind = (event.data or {}).get("type")
        if kind == "SKIP_WAITING":
            self.lifecycle.skip_waiting()
            if self.lifecycle.state == LifecycleState.INSTALLED:
                self.lifecycle.activate()
            return {"type": "SKIP_WAITING", "state": self.lifecycle.describe()["state"]}
        if kind == "GET_VERSION":
            return {"type": "VERSION", "version": self.config.version}
        if kind == "CLEAR_CACHE":
            if not self.lifecycle.is_controlling:
                raise LifecycleError("Cannot clear caches before activation")
            cleared = []
            for logical in ("dynamic", "images"):
                name = self.config.partition_name(logical)
                self.storage.delete(name)
                self.storage.open(name)
                cleared.append(name)
            return {"type": "CACHE_CLEARED", "partitions": cleared}
        logger.debug("[SW] ignoring message %r", event.data)
        return None


def build_worker(session_factory: sessionmaker, config: WorkerConfig, fetcher: Fetcher) -> OfflineWorker:
    return OfflineWorker(
        config=config,
        storage=CacheStorage(session_factory),
        fetcher=fetcher,
        search_queue=SearchHistoryQueue(session_factory),
        outbox=OutboxQueue(session_factory),
    )
