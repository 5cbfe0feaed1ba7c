# offline_worker/config.py - versioned partition names + worker policy tables
import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from offline_worker.errors import ConfigError
from offline_worker.notifications import NotificationOptions

REQUIRED_PARTITIONS = ("static", "dynamic", "images", "offline")

DEFAULT_PRECACHE_MANIFEST = [
    "/",
    "/index.html",
    "/login.html",
    "/register.html",
    "/offline.html",
    "/js/advanced-search.js",
    "/components/search-filter-panel.html",
    "/manifest.json",
    "https://fonts.googleapis.com/css2?family=Bebas+Neue&family=Montserrat:wght@300;400;500;700;900"
    "&family=Inter:wght@300;400;500;600;700;900&family=Noto+Sans+JP:wght@300;400;500;700;900&display=swap",
    "https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.4.0/css/all.min.css",
]


class PartitionSpec(BaseModel):
    logical_name: str
    version_tag: str = "v1"


def default_partitions(version_tag: str = "v1") -> List[PartitionSpec]:
    return [PartitionSpec(logical_name=n, version_tag=version_tag) for n in REQUIRED_PARTITIONS]


class WorkerConfig(BaseModel):
    cache_prefix: str = "hcc"
    partitions: List[PartitionSpec] = Field(default_factory=default_partitions)

    api_prefix: str = "/api/"
    image_extensions: List[str] = Field(
        default_factory=lambda: ["jpg", "jpeg", "png", "gif", "webp", "svg", "ico"]
    )
    ignored_schemes: List[str] = Field(default_factory=lambda: ["chrome-extension", "moz-extension"])

    precache_manifest: List[str] = Field(default_factory=lambda: list(DEFAULT_PRECACHE_MANIFEST))
    offline_manifest: List[str] = Field(default_factory=lambda: ["/offline.html"])
    offline_page: str = "/offline.html"
    root_url: str = "/"

    offline_message: str = "オフラインです。ネットワーク接続を確認してください。"
    sync_endpoint: str = "/api/search/sync-history"

    notification_defaults: NotificationOptions = Field(default_factory=NotificationOptions)

    @model_validator(mode="after")
    def _check_partitions(self):
        names = [p.logical_name for p in self.partitions]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ConfigError(f"Duplicate partition names: {', '.join(dupes)}")
        missing = [n for n in REQUIRED_PARTITIONS if n not in names]
        if missing:
            raise ConfigError(f"Missing partitions: {', '.join(missing)}")
        return self

    def _spec(self, logical_name: str) -> PartitionSpec:
        for p in self.partitions:
            if p.logical_name == logical_name:
                return p
        raise ConfigError(f"Unknown partition: {logical_name}")

    def partition_name(self, logical_name: str) -> str:
        spec = self._spec(logical_name)
        return f"{self.cache_prefix}-{spec.logical_name}-{spec.version_tag}"

    def current_cache_names(self) -> List[str]:
        return [self.partition_name(p.logical_name) for p in self.partitions]

    @property
    def version(self) -> str:
        """Version tag of the static shell; what clients see as 'the' version."""
        return self._spec("static").version_tag

    def with_version(self, version_tag: str) -> "WorkerConfig":
        parts = [PartitionSpec(logical_name=p.logical_name, version_tag=version_tag) for p in self.partitions]
        return self.model_copy(update={"partitions": parts})

    def describe(self) -> Dict[str, str]:
        return {p.logical_name: self.partition_name(p.logical_name) for p in self.partitions}


def _split_list(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None or raw.strip() == "":
        return None
    return [x.strip() for x in raw.split(",") if x.strip()]


def load_worker_config(env_file: Optional[Path] = None) -> WorkerConfig:
    """
    Build a WorkerConfig from the environment. Recognised variables:
      CACHE_PREFIX, CACHE_VERSION, API_PREFIX, OFFLINE_PAGE,
      PRECACHE_MANIFEST (comma-separated), SYNC_ENDPOINT
    """
    if env_file is not None:
        load_dotenv(env_file)

    overrides: Dict[str, object] = {}
    if os.getenv("CACHE_PREFIX"):
        overrides["cache_prefix"] = os.environ["CACHE_PREFIX"]
    if os.getenv("CACHE_VERSION"):
        overrides["partitions"] = default_partitions(os.environ["CACHE_VERSION"])
    if os.getenv("API_PREFIX"):
        overrides["api_prefix"] = os.environ["API_PREFIX"]
    if os.getenv("OFFLINE_PAGE"):
        overrides["offline_page"] = os.environ["OFFLINE_PAGE"]
        overrides["offline_manifest"] = [os.environ["OFFLINE_PAGE"]]
    manifest = _split_list(os.getenv("PRECACHE_MANIFEST"))
    if manifest is not None:
        overrides["precache_manifest"] = manifest
    if os.getenv("SYNC_ENDPOINT"):
        overrides["sync_endpoint"] = os.environ["SYNC_ENDPOINT"]

    return WorkerConfig(**overrides)
