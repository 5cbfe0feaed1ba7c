# offline_worker/sync.py - background sync: search-history queue + outbox of pending writes
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import sessionmaker

from offline_worker.errors import NetworkError
from offline_worker.http import Fetcher, Request
from offline_worker.models import PendingWriteRow, SearchHistoryRow

logger = logging.getLogger(__name__)

TAG_BACKGROUND_SYNC = "background-sync"
TAG_SEARCH_HISTORY = "sync-search-history"

# 4xx statuses that are still worth retrying
RETRYABLE_CLIENT_STATUSES = {408, 429}


@dataclass
class PendingSyncRecord:
    id: int
    payload: Dict[str, Any]
    synced: bool = False

    def to_dict(self) -> Dict[str, Any]:
        # the server sees the stored entry with its key and flag, like the browser store
        return {**self.payload, "id": self.id, "synced": self.synced}


@dataclass
class SyncResult:
    tag: str
    submitted: int = 0
    synced: int = 0
    error: Optional[str] = None
    ids: List[int] = field(default_factory=list)
    dropped: List[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag": self.tag,
            "submitted": self.submitted,
            "synced": self.synced,
            "error": self.error,
            "ids": list(self.ids),
            "dropped": list(self.dropped),
        }


class SearchHistoryQueue:
    """Durable queue of search-history entries keyed by an auto-incrementing id."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def add(self, payload: Dict[str, Any]) -> PendingSyncRecord:
        with self._session_factory() as db:
            row = SearchHistoryRow(payload=dict(payload), synced=False)
            db.add(row)
            db.commit()
            return PendingSyncRecord(id=row.id, payload=dict(row.payload), synced=row.synced)

    def get_all(self, unsynced_only: bool = True) -> List[PendingSyncRecord]:
        with self._session_factory() as db:
            q = db.query(SearchHistoryRow).order_by(SearchHistoryRow.id.asc())
            if unsynced_only:
                q = q.filter(SearchHistoryRow.synced == False)  # noqa: E712
            return [PendingSyncRecord(id=r.id, payload=dict(r.payload), synced=bool(r.synced)) for r in q.all()]

    def put(self, record: PendingSyncRecord):
        with self._session_factory() as db:
            row = db.get(SearchHistoryRow, record.id)
            if row is None:
                db.add(SearchHistoryRow(id=record.id, payload=dict(record.payload), synced=record.synced))
            else:
                row.payload = dict(record.payload)
                row.synced = record.synced
            db.commit()

    def mark_synced(self, ids: Iterable[int]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        with self._session_factory() as db:
            n = (
                db.query(SearchHistoryRow)
                .filter(SearchHistoryRow.id.in_(ids))
                .update({SearchHistoryRow.synced: True}, synchronize_session=False)
            )
            db.commit()
            return n


class OutboxQueue:
    """Writes made while offline, re-submitted on the 'background-sync' tag."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def add(self, url: str, body: bytes = b"", method: str = "POST", content_type: str = "application/json") -> int:
        with self._session_factory() as db:
            row = PendingWriteRow(method=method.upper(), url=url, body=body, content_type=content_type)
            db.add(row)
            db.commit()
            return row.id

    def get_all(self) -> List[PendingWriteRow]:
        with self._session_factory() as db:
            rows = db.query(PendingWriteRow).order_by(PendingWriteRow.id.asc()).all()
            db.expunge_all()
            return rows

    def remove(self, write_id: int) -> bool:
        with self._session_factory() as db:
            n = db.query(PendingWriteRow).filter(PendingWriteRow.id == write_id).delete(synchronize_session=False)
            db.commit()
            return n > 0

    def __len__(self):
        return len(self.get_all())


def sync_search_history(queue: SearchHistoryQueue, fetcher: Fetcher, endpoint: str) -> SyncResult:
    result = SyncResult(tag=TAG_SEARCH_HISTORY)
    records = queue.get_all(unsynced_only=True)
    if not records:
        return result

    body = json.dumps({"searches": [r.to_dict() for r in records]}, ensure_ascii=False).encode("utf-8")
    request = Request(
        url=endpoint,
        method="POST",
        headers={"Content-Type": "application/json"},
        body=body,
    )
    result.submitted = len(records)
    result.ids = [r.id for r in records]

    try:
        response = fetcher.fetch(request)
    except NetworkError as e:
        result.error = e.message
        logger.error("[SYNC] search history sync failed: %s", e.message)
        return result

    if not response.ok:
        result.error = f"HTTP {response.status}"
        logger.error("[SYNC] search history sync rejected: HTTP %s", response.status)
        return result

    # not transactional with the POST: a crash here means a re-submit next time
    for record in records:
        record.synced = True
        queue.put(record)
    result.synced = len(records)
    logger.info("[SYNC] synced %d search history record(s)", result.synced)
    return result


def drain_outbox(outbox: OutboxQueue, fetcher: Fetcher) -> SyncResult:
    result = SyncResult(tag=TAG_BACKGROUND_SYNC)
    for write in outbox.get_all():
        request = Request(
            url=write.url,
            method=write.method,
            headers={"Content-Type": write.content_type},
            body=write.body or b"",
        )
        result.submitted += 1
        try:
            response = fetcher.fetch(request)
        except NetworkError as e:
            # still offline; keep this and everything after it for the next sync
            result.error = e.message
            logger.warning("[SYNC] outbox drain stopped: %s", e.message)
            break
        if response.ok:
            outbox.remove(write.id)
            result.synced += 1
            result.ids.append(write.id)
        elif 400 <= response.status < 500 and response.status not in RETRYABLE_CLIENT_STATUSES:
            # permanent client error: never retried
            outbox.remove(write.id)
            result.dropped.append(write.id)
            result.error = f"HTTP {response.status}"
            logger.warning("[SYNC] dropping outbox write %s %s: rejected with HTTP %s", write.id, write.url, response.status)
        else:
            result.error = f"HTTP {response.status}"
            logger.warning("[SYNC] outbox write %s rejected: HTTP %s", write.id, response.status)
    return result
