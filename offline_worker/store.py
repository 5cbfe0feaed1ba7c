# offline_worker/store.py - named, durable cache partitions (request identity -> response snapshot)
import logging
from typing import Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from offline_worker.errors import StorageError
from offline_worker.http import Request, ResponseSnapshot
from offline_worker.models import CacheEntryRow, CachePartitionRow

logger = logging.getLogger(__name__)

RequestLike = Union[Request, str]


def _key(request: RequestLike) -> str:
    if isinstance(request, Request):
        return request.identity
    # bare URL -> GET identity; "GET https://..." passes through
    if " " in request:
        return request
    return f"GET {request}"


def _to_snapshot(row: CacheEntryRow) -> ResponseSnapshot:
    return ResponseSnapshot(
        status=row.status,
        headers=dict(row.headers_json or {}),
        body=bytes(row.body or b""),
        url=row.url,
    )


def _find_entry(db: Session, partition_id: int, key: str) -> Optional[CacheEntryRow]:
    return (
        db.query(CacheEntryRow)
        .filter(CacheEntryRow.partition_id == partition_id, CacheEntryRow.request_key == key)
        .first()
    )


def _upsert(db: Session, partition_id: int, request: RequestLike, response: ResponseSnapshot):
    key = _key(request)
    url = request.url if isinstance(request, Request) else key.split(" ", 1)[1]
    row = _find_entry(db, partition_id, key)
    if row is None:
        db.add(CacheEntryRow(
            partition_id=partition_id,
            request_key=key,
            url=url,
            status=response.status,
            headers_json=dict(response.headers),
            body=response.body,
        ))
        db.flush()
    else:
        row.url = url
        row.status = response.status
        row.headers_json = dict(response.headers)
        row.body = response.body


class Partition:
    """Handle on one named partition. Every call opens its own short-lived session."""

    def __init__(self, storage: "CacheStorage", name: str, partition_id: int):
        self._storage = storage
        self.name = name
        self.id = partition_id

    def __repr__(self):
        return f"Partition({self.name!r})"

    def match(self, request: RequestLike) -> Optional[ResponseSnapshot]:
        with self._storage.session() as db:
            row = (
                db.query(CacheEntryRow)
                .filter(CacheEntryRow.partition_id == self.id, CacheEntryRow.request_key == _key(request))
                .first()
            )
            return _to_snapshot(row) if row else None

    get = match

    def put(self, request: RequestLike, response: ResponseSnapshot):
        self.put_many([(request, response)])

    def put_many(self, pairs: Iterable[Tuple[RequestLike, ResponseSnapshot]]):
        # one transaction; a unique-key clash means another writer inserted the same
        # key first, so the batch is replayed once as updates (last write wins)
        pairs = list(pairs)
        for attempt in (1, 2):
            with self._storage.session() as db:
                try:
                    for request, response in pairs:
                        _upsert(db, self.id, request, response)
                    db.commit()
                    return
                except IntegrityError as e:
                    db.rollback()
                    if attempt == 2:
                        raise StorageError(f"Could not write to partition {self.name}: {e}") from e
                    logger.debug("[SW] concurrent insert into %s, retrying as update", self.name)
                except SQLAlchemyError as e:
                    db.rollback()
                    raise StorageError(f"Could not write to partition {self.name}: {e}") from e

    def delete(self, request: RequestLike) -> bool:
        with self._storage.session() as db:
            n = (
                db.query(CacheEntryRow)
                .filter(CacheEntryRow.partition_id == self.id, CacheEntryRow.request_key == _key(request))
                .delete(synchronize_session=False)
            )
            db.commit()
            return n > 0

    def keys(self) -> List[str]:
        with self._storage.session() as db:
            rows = (
                db.query(CacheEntryRow.request_key)
                .filter(CacheEntryRow.partition_id == self.id)
                .order_by(CacheEntryRow.id.asc())
                .all()
            )
            return [r[0] for r in rows]

    def __len__(self):
        return len(self.keys())


class CacheStorage:
    """
    Process-wide partition registry on top of SQLAlchemy.
      open(name)                    -> Partition (create-or-get)
      keys() / has(name) / delete(name)
      delete_partitions_not_in(keep) -> names deleted
      match(request)                -> first hit across partitions
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def session(self) -> Session:
        return self._session_factory()

    def open(self, name: str) -> Partition:
        with self.session() as db:
            row = db.query(CachePartitionRow).filter(CachePartitionRow.name == name).first()
            if row is None:
                row = CachePartitionRow(name=name)
                db.add(row)
                try:
                    db.commit()
                except IntegrityError:
                    # another handler created it first
                    db.rollback()
                    row = db.query(CachePartitionRow).filter(CachePartitionRow.name == name).one()
                else:
                    logger.info("[SW] opened cache partition %s", name)
            return Partition(self, row.name, row.id)

    def _lookup(self, name: str) -> Optional[Partition]:
        with self.session() as db:
            row = db.query(CachePartitionRow).filter(CachePartitionRow.name == name).first()
            return Partition(self, row.name, row.id) if row else None

    def has(self, name: str) -> bool:
        return self._lookup(name) is not None

    def keys(self) -> List[str]:
        with self.session() as db:
            rows = db.query(CachePartitionRow.name).order_by(CachePartitionRow.id.asc()).all()
            return [r[0] for r in rows]

    def delete(self, name: str) -> bool:
        with self.session() as db:
            row = db.query(CachePartitionRow).filter(CachePartitionRow.name == name).first()
            if row is None:
                return False
            db.query(CacheEntryRow).filter(CacheEntryRow.partition_id == row.id).delete(synchronize_session=False)
            db.delete(row)
            db.commit()
        logger.info("[SW] deleted cache partition %s", name)
        return True

    def delete_partitions_not_in(self, keep: Iterable[str]) -> List[str]:
        keep_set = set(keep)
        deleted = []
        for name in self.keys():
            if name not in keep_set and self.delete(name):
                deleted.append(name)
        return deleted

    def seed(self, batches: Dict[str, List[Tuple[RequestLike, ResponseSnapshot]]]) -> List[Partition]:
        """Create the named partitions and store every pair in a single transaction."""
        opened = []
        with self.session() as db:
            try:
                for name, pairs in batches.items():
                    row = db.query(CachePartitionRow).filter(CachePartitionRow.name == name).first()
                    if row is None:
                        row = CachePartitionRow(name=name)
                        db.add(row)
                        db.flush()
                    for request, response in pairs:
                        _upsert(db, row.id, request, response)
                    opened.append((row.name, row.id))
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Could not seed partitions: {e}") from e
        return [Partition(self, name, pid) for name, pid in opened]

    def match(self, request: RequestLike) -> Optional[ResponseSnapshot]:
        key = _key(request)
        with self.session() as db:
            row = (
                db.query(CacheEntryRow)
                .filter(CacheEntryRow.request_key == key)
                .order_by(CacheEntryRow.partition_id.asc())
                .first()
            )
            return _to_snapshot(row) if row else None

    def stats(self) -> List[dict]:
        out = []
        for name in self.keys():
            p = self._lookup(name)
            if p is not None:
                out.append({"name": name, "entries": len(p)})
        return out
