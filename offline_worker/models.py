# offline_worker/models.py - durable tables: cache partitions + sync queues
from sqlalchemy import (
    Column,
    BigInteger,
    Integer,
    Boolean,
    Text,
    LargeBinary,
    TIMESTAMP,
    JSON,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY
PK = BigInteger().with_variant(Integer, "sqlite")


class CachePartitionRow(Base):
    __tablename__ = "cache_partitions"
    id = Column(PK, primary_key=True)
    name = Column(Text, unique=True, nullable=False, index=True)
    created_ts = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    entries = relationship(
        "CacheEntryRow",
        back_populates="partition",
        cascade="all, delete-orphan",
    )


class CacheEntryRow(Base):
    __tablename__ = "cache_entries"
    __table_args__ = (UniqueConstraint("partition_id", "request_key", name="uq_partition_request"),)
    id = Column(PK, primary_key=True)
    partition_id = Column(PK, ForeignKey("cache_partitions.id", ondelete="CASCADE"), nullable=False, index=True)
    request_key = Column(Text, nullable=False)  # "GET https://host/path?q"
    url = Column(Text, nullable=False)
    status = Column(Integer, nullable=False)
    headers_json = Column(JSON, nullable=False)
    body = Column(LargeBinary, nullable=False)
    stored_ts = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    partition = relationship("CachePartitionRow", back_populates="entries")


class SearchHistoryRow(Base):
    __tablename__ = "search_history"
    id = Column(PK, primary_key=True)
    payload = Column(JSON, nullable=False)
    synced = Column(Boolean, nullable=False, default=False)
    created_ts = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)


class PendingWriteRow(Base):
    __tablename__ = "pending_writes"
    id = Column(PK, primary_key=True)
    method = Column(Text, nullable=False, default="POST")
    url = Column(Text, nullable=False)
    content_type = Column(Text, nullable=False, default="application/json")
    body = Column(LargeBinary, nullable=False, default=b"")
    created_ts = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
