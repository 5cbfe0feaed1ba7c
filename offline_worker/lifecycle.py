# offline_worker/lifecycle.py - install / activate state machine for one worker version
import logging
from enum import Enum
from typing import Dict, List, Optional, Tuple

from offline_worker.config import WorkerConfig
from offline_worker.errors import InstallError, LifecycleError, NetworkError
from offline_worker.http import Fetcher, Request, ResponseSnapshot
from offline_worker.store import CacheStorage

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"


class LifecycleManager:
    """
    installing -> installed -> activating -> activated
    Once activated the version keeps controlling clients, including while a
    re-install runs and after it lands in "installed" again.

    install(): fetch the whole precache batch, then store it in one transaction.
               Any failed asset aborts the install and nothing is written.
    activate(): drop every partition whose name is not one of the current four,
                then take control of all open clients.
    """

    def __init__(self, config: WorkerConfig, storage: CacheStorage, fetcher: Fetcher, clients=None):
        self.config = config
        self.storage = storage
        self.fetcher = fetcher
        self.clients = clients
        self.state: Optional[LifecycleState] = None
        self.skip_waiting_requested = False
        self.clients_claimed = False
        # set by the first activate(); a later install does not take control away
        self.controlling = False

    @property
    def is_controlling(self) -> bool:
        return self.controlling

    def _fetch_batch(self, urls: List[str]) -> Tuple[List[Tuple[str, ResponseSnapshot]], Dict[str, str]]:
        fetched, failed = [], {}
        for url in urls:
            try:
                response = self.fetcher.fetch(Request(url=url))
            except NetworkError as e:
                failed[url] = e.details.get("reason", "network error")
                continue
            if not response.ok:
                failed[url] = f"HTTP {response.status}"
                continue
            fetched.append((url, response))
        return fetched, failed

    def install(self) -> List[str]:
        previous = self.state
        self.state = LifecycleState.INSTALLING
        logger.info("[SW] installing version %s", self.config.version)

        static_pairs, failed = self._fetch_batch(self.config.precache_manifest)
        offline_pairs, offline_failed = self._fetch_batch(self.config.offline_manifest)
        failed.update(offline_failed)
        if failed:
            self.state = previous
            logger.error("[SW] install failed, %d asset(s) unavailable: %s", len(failed), ", ".join(failed))
            raise InstallError(f"Precache failed for {len(failed)} asset(s)", failed=failed)

        batches = {name: [] for name in self.config.current_cache_names()}
        batches[self.config.partition_name("static")] = static_pairs
        batches[self.config.partition_name("offline")] = offline_pairs
        try:
            self.storage.seed(batches)
        except Exception:
            self.state = previous
            raise

        self.state = LifecycleState.INSTALLED
        self.skip_waiting()
        logger.info("[SW] installed version %s (%d assets)", self.config.version, len(static_pairs) + len(offline_pairs))
        return [url for url, _ in static_pairs + offline_pairs]

    def skip_waiting(self):
        self.skip_waiting_requested = True

    def activate(self) -> List[str]:
        if self.state not in (LifecycleState.INSTALLED, LifecycleState.ACTIVATED):
            raise LifecycleError(f"Cannot activate from state {self.state.value if self.state else 'none'}")

        self.state = LifecycleState.ACTIVATING
        deleted = self.storage.delete_partitions_not_in(self.config.current_cache_names())
        for name in deleted:
            logger.info("[SW] removed stale partition %s", name)
        self.state = LifecycleState.ACTIVATED
        self.controlling = True
        self.claim()
        return deleted

    def claim(self):
        self.clients_claimed = True
        if self.clients is not None:
            self.clients.claim()
            self.clients.post_message({"type": "UPDATE_AVAILABLE", "version": self.config.version})

    def describe(self) -> Dict[str, object]:
        return {
            "state": self.state.value if self.state else None,
            "version": self.config.version,
            "skip_waiting": self.skip_waiting_requested,
            "clients_claimed": self.clients_claimed,
            "controlling": self.is_controlling,
            "partitions": self.config.describe(),
        }
