# backend/main.py - FastAPI host: feeds lifecycle/push/sync events to the offline worker and proxies fetches through it
import os
import sys
import time
import json
import logging
from typing import List, Dict

from fastapi import FastAPI, Depends, Request as HTTPRequest, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.exceptions import RequestValidationError
from starlette.concurrency import run_in_threadpool

from sqlalchemy import text, func
from sqlalchemy.orm import Session

import settings
from settings import REPO_ROOT, BASE_DIR

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from db import Base, engine, get_db, SessionLocal
import models
from schemas import (
    PushIn, NotificationClickIn, SyncIn, MessageIn, SearchHistoryIn, OutboxIn, ClientIn,
    LifecycleOut, PartitionOut, StatsOut, InstallOut,
)

from offline_worker.config import load_worker_config
from offline_worker.errors import OfflineWorkerError, NetworkError, InstallError
from offline_worker.http import Request, RequestsFetcher, ResponseSnapshot
from offline_worker.worker import (
    build_worker, InstallEvent, ActivateEvent, FetchEvent, PushEvent,
    NotificationClickEvent, SyncEvent, MessageEvent,
)

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("offline_gateway")

# --- Worker (one version per process) ---
WORKER_CONFIG = load_worker_config(BASE_DIR / ".env")
FETCHER = RequestsFetcher(settings.ORIGIN_BASE_URL, timeout=settings.FETCH_TIMEOUT_S)
WORKER = build_worker(SessionLocal, WORKER_CONFIG, FETCHER)

app = FastAPI(title="Offline Cache Gateway")

STATUS_BY_CODE = {
    "NETWORK_ERROR": 504,
    "INSTALL_FAILED": 409,
    "LIFECYCLE_INVALID": 409,
    "PAYLOAD_INVALID": 422,
    "CONFIG_INVALID": 500,
    "STORAGE_ERROR": 500,
}

# Terse error surfaces for client; keep server logs for details
@app.exception_handler(OfflineWorkerError)
async def worker_exc_handler(request, exc: OfflineWorkerError):
    status = STATUS_BY_CODE.get(exc.code, 500)
    if isinstance(exc, NetworkError):
        return JSONResponse(status_code=status, content={"detail": "Origin unreachable", **exc.to_dict()})
    return JSONResponse(status_code=status, content={"detail": exc.message, **exc.to_dict()})

@app.exception_handler(RequestValidationError)
async def validation_exc_handler(request, exc):
    return JSONResponse(status_code=422, content={"detail": "Validation error", "errors": exc.errors()})

@app.exception_handler(Exception)
async def unhandled_exc_handler(request, exc):
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Server error", "hint": str(exc)[:200]})

# --- CORS (localhost + 127.0.0.1) ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.FRONTEND_ORIGIN,
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Startup: create tables, optionally install + activate ---
@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    if settings.AUTO_INSTALL:
        try:
            WORKER.dispatch(InstallEvent())
            if WORKER.lifecycle.skip_waiting_requested:
                WORKER.dispatch(ActivateEvent())
        except InstallError as e:
            logger.error("[SW] auto-install failed: %s", e.details.get("failed"))

@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/health/db")
def health_db(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"db": "ok"}

# --- Config probe (optional) ---
REDACT = {"DATABASE_URL"}

@app.get("/sw/config")
def api_config_probe():
    env_pairs: Dict[str, str] = {}
    for k, v in os.environ.items():
        if k in REDACT:
            env_pairs[k] = "***"
        elif k.startswith("CACHE_") or k in {"FRONTEND_ORIGIN", "ORIGIN_BASE_URL", "API_PREFIX", "OFFLINE_PAGE", "SYNC_ENDPOINT"}:
            env_pairs[k] = v
    return {
        "repo_root": str(REPO_ROOT),
        "origin": settings.ORIGIN_BASE_URL,
        "partitions": WORKER_CONFIG.describe(),
        "precache_manifest": WORKER_CONFIG.precache_manifest,
        "env": env_pairs,
    }

# --- Lifecycle ---
@app.get("/sw/state", response_model=LifecycleOut)
def sw_state():
    return WORKER.lifecycle.describe()

@app.post("/sw/install", response_model=InstallOut)
def sw_install():
    precached = WORKER.dispatch(InstallEvent())
    activated, deleted = False, []
    # skipWaiting: the new version takes over without waiting for old clients
    if WORKER.lifecycle.skip_waiting_requested:
        deleted = WORKER.dispatch(ActivateEvent())
        activated = True
    return InstallOut(precached=precached, activated=activated, deleted=deleted)

@app.post("/sw/activate")
def sw_activate():
    deleted = WORKER.dispatch(ActivateEvent())
    return {"status": "ok", "deleted": deleted, "state": WORKER.lifecycle.describe()["state"]}

@app.post("/sw/message")
def sw_message(payload: MessageIn):
    reply = WORKER.dispatch(MessageEvent(data={"type": payload.type, **payload.payload}))
    return {"reply": reply}

# --- Push / notifications / clients ---
@app.post("/sw/push")
def sw_push(payload: PushIn):
    options = WORKER.dispatch(PushEvent(data=payload.data))
    return options.model_dump()

@app.post("/sw/notificationclick")
def sw_notification_click(payload: NotificationClickIn):
    client = WORKER.dispatch(NotificationClickEvent(tag=payload.tag, action=payload.action))
    return {"client": client.to_dict() if client else None}

@app.get("/sw/notifications")
def sw_notifications(include_closed: bool = False):
    return [n.to_dict() for n in WORKER.notifications.list(include_closed=include_closed)]

@app.get("/sw/clients")
def sw_clients():
    return [c.to_dict() for c in WORKER.clients.match_all()]

@app.post("/sw/clients")
def sw_register_client(payload: ClientIn):
    return WORKER.clients.register(payload.url).to_dict()

# --- Background sync ---
@app.post("/sw/sync")
def sw_sync(payload: SyncIn):
    result = WORKER.dispatch(SyncEvent(tag=payload.tag))
    if result is None:
        raise HTTPException(status_code=404, detail=f"Unknown sync tag: {payload.tag}")
    return result.to_dict()

@app.post("/sw/search-history")
def sw_search_history(payload: SearchHistoryIn):
    record = WORKER.search_queue.add(payload.model_dump(exclude_none=True))
    return record.to_dict()

@app.get("/sw/search-history")
def sw_search_history_list(unsynced_only: bool = False):
    return [r.to_dict() for r in WORKER.search_queue.get_all(unsynced_only=unsynced_only)]

@app.post("/sw/outbox")
def sw_outbox(payload: OutboxIn):
    body = b"" if payload.body is None else json.dumps(payload.body, ensure_ascii=False).encode("utf-8")
    write_id = WORKER.outbox.add(payload.url, body=body, method=payload.method)
    return {"id": write_id, "pending": len(WORKER.outbox)}

# --- Cache partitions ---
@app.get("/sw/caches", response_model=List[PartitionOut])
def sw_caches():
    return WORKER.storage.stats()

@app.get("/sw/caches/{name}")
def sw_cache_entries(name: str):
    if not WORKER.storage.has(name):
        raise HTTPException(status_code=404, detail="Partition not found")
    return {"name": name, "keys": WORKER.storage.open(name).keys()}

# --- Stats over the fetch log ---
@app.get("/sw/stats", response_model=StatsOut)
def sw_stats(db: Session = Depends(get_db)):
    total = db.query(func.count(models.FetchRecord.id)).scalar() or 0
    by_source = dict(
        db.query(models.FetchRecord.source, func.count(models.FetchRecord.id))
          .group_by(models.FetchRecord.source).all()
    )
    by_route = dict(
        db.query(models.FetchRecord.route_class, func.count(models.FetchRecord.id))
          .filter(models.FetchRecord.route_class.isnot(None))
          .group_by(models.FetchRecord.route_class).all()
    )
    avg_latency = db.query(func.avg(models.FetchRecord.latency_ms)).scalar() or 0.0

    def pct(source: str) -> float:
        return round(100.0 * by_source.get(source, 0) / total, 2) if total else 0.0

    return StatsOut(
        total=int(total),
        network_pct=pct("network"),
        cache_pct=pct("cache"),
        fallback_pct=pct("fallback"),
        passthrough_pct=pct("passthrough"),
        avg_latency_ms=round(float(avg_latency), 2),
        by_route={str(k): int(v) for k, v in by_route.items()},
    )

@app.get("/sw/fetches")
def sw_fetches(limit: int = 100, db: Session = Depends(get_db)):
    rows = db.query(models.FetchRecord).order_by(models.FetchRecord.id.desc()).limit(limit).all()
    return [
        {
            "ts": r.ts.isoformat() if r.ts else None,
            "identity": r.identity,
            "destination": r.destination,
            "route_class": r.route_class,
            "strategy": r.strategy,
            "source": r.source,
            "status": r.status,
            "latency_ms": r.latency_ms,
        } for r in reversed(rows)
    ]

# --- Fetch interception (everything else) ---
_SKIP_FORWARD = {"host", "content-length", "connection", "accept-encoding"}

def _to_worker_request(req: HTTPRequest, body: bytes) -> Request:
    url = req.url.path
    if req.url.query:
        url += "?" + req.url.query
    headers = {k: v for k, v in req.headers.items() if k.lower() not in _SKIP_FORWARD}
    destination = req.headers.get("sec-fetch-dest", "")
    return Request(url=url, method=req.method, destination=destination, headers=headers, body=body)

def _to_http_response(snapshot: ResponseSnapshot) -> Response:
    return Response(content=snapshot.body, status_code=snapshot.status, headers=dict(snapshot.headers))

def _record(db: Session, request: Request, started: float, **fields):
    db.add(models.FetchRecord(
        identity=request.identity,
        destination=request.destination or None,
        latency_ms=int((time.perf_counter() - started) * 1000),
        **fields,
    ))
    db.commit()

def _handle_fetch(request: Request, db: Session) -> Response:
    started = time.perf_counter()
    try:
        outcome = WORKER.dispatch(FetchEvent(request=request))
        if outcome is None:
            # not ours: plain network round-trip, no caching
            snapshot = FETCHER.fetch(request)
            _record(db, request, started, route_class=None, strategy=None, source="passthrough", status=snapshot.status)
            response = _to_http_response(snapshot)
            response.headers["X-Served-From"] = "passthrough"
            return response
    except NetworkError:
        _record(db, request, started, route_class=None, strategy=None, source="error", status=504)
        raise

    _record(
        db, request, started,
        route_class=outcome.route_class.value,
        strategy=outcome.strategy,
        source=outcome.source,
        status=outcome.response.status,
    )
    response = _to_http_response(outcome.response)
    response.headers["X-Served-From"] = outcome.source
    response.headers["X-Route-Class"] = outcome.route_class.value
    return response

@app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"])
async def intercept(path: str, req: HTTPRequest, db: Session = Depends(get_db)):
    request = _to_worker_request(req, await req.body())
    # worker + DB calls are blocking; keep them off the event loop
    return await run_in_threadpool(_handle_fetch, request, db)
