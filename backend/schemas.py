# backend/schemas.py - shapes of data going in/out of the gateway API (validation layer)
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

class PushIn(BaseModel):
    data: Optional[str] = None            # raw push data; JSON text or plain text

class NotificationClickIn(BaseModel):
    tag: Optional[str] = None
    action: str = ""

class SyncIn(BaseModel):
    tag: str

class MessageIn(BaseModel):
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)

class SearchHistoryIn(BaseModel):
    query: str
    filters: Dict[str, Any] = Field(default_factory=dict)
    ts: Optional[str] = None

class OutboxIn(BaseModel):
    url: str
    method: str = "POST"
    body: Optional[Any] = None

class ClientIn(BaseModel):
    url: str = "/"

class LifecycleOut(BaseModel):
    state: Optional[str]
    version: str
    skip_waiting: bool
    clients_claimed: bool
    controlling: bool = False
    partitions: Dict[str, str]

class PartitionOut(BaseModel):
    name: str
    entries: int

class StatsOut(BaseModel):
    total: int
    network_pct: float
    cache_pct: float
    fallback_pct: float
    passthrough_pct: float
    avg_latency_ms: float
    by_route: Dict[str, int]

class InstallOut(BaseModel):
    precached: List[str]
    activated: bool
    deleted: List[str] = Field(default_factory=list)
