# offline_worker/errors.py - error taxonomy shared by the worker and the gateway
from typing import Any, Dict, Optional


class OfflineWorkerError(Exception):
    """Base error for the offline worker."""

    def __init__(
        self,
        message: str,
        code: str = "WORKER_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigError(OfflineWorkerError):
    def __init__(self, message: str):
        super().__init__(message, code="CONFIG_INVALID")


class NetworkError(OfflineWorkerError):
    """Transport-level fetch failure (connection refused, DNS, timeout)."""

    def __init__(self, url: str, reason: str = "network unreachable"):
        super().__init__(
            f"Fetch failed for {url}: {reason}",
            code="NETWORK_ERROR",
            details={"url": url, "reason": reason},
        )
        self.url = url


class InstallError(OfflineWorkerError):
    """Seeding the precache manifest failed; the version never reaches 'installed'."""

    def __init__(self, message: str, failed: Optional[Dict[str, str]] = None):
        super().__init__(message, code="INSTALL_FAILED", details={"failed": failed or {}})
        self.failed = failed or {}


class LifecycleError(OfflineWorkerError):
    def __init__(self, message: str):
        super().__init__(message, code="LIFECYCLE_INVALID")


class PayloadError(OfflineWorkerError):
    def __init__(self, message: str):
        super().__init__(message, code="PAYLOAD_INVALID")


class StorageError(OfflineWorkerError):
    def __init__(self, message: str):
        super().__init__(message, code="STORAGE_ERROR")
