# offline_worker/__init__.py - offline request-caching worker
from offline_worker.config import PartitionSpec, WorkerConfig, load_worker_config
from offline_worker.errors import (
    OfflineWorkerError,
    ConfigError,
    NetworkError,
    InstallError,
    LifecycleError,
    PayloadError,
    StorageError,
)
from offline_worker.http import Request, ResponseSnapshot, RequestsFetcher
from offline_worker.classifier import RouteClass, classify, is_intercepted
from offline_worker.store import CacheStorage, Partition
from offline_worker.strategies import StrategyExecutor, FetchOutcome
from offline_worker.lifecycle import LifecycleManager, LifecycleState
from offline_worker.worker import OfflineWorker, build_worker

__all__ = [
    "PartitionSpec",
    "WorkerConfig",
    "load_worker_config",
    "OfflineWorkerError",
    "ConfigError",
    "NetworkError",
    "InstallError",
    "LifecycleError",
    "PayloadError",
    "StorageError",
    "Request",
    "ResponseSnapshot",
    "RequestsFetcher",
    "RouteClass",
    "classify",
    "is_intercepted",
    "CacheStorage",
    "Partition",
    "StrategyExecutor",
    "FetchOutcome",
    "LifecycleManager",
    "LifecycleState",
    "OfflineWorker",
    "build_worker",
]
