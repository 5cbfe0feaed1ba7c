# backend/models.py - gateway request log (one row per intercepted or passed-through fetch)
from sqlalchemy import Column, BigInteger, Integer, Text, TIMESTAMP
from sqlalchemy.sql import func
from db import Base

PK = BigInteger().with_variant(Integer, "sqlite")

class FetchRecord(Base):
    __tablename__ = "fetch_records"
    id = Column(PK, primary_key=True, index=True)
    ts = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False, index=True)
    identity = Column(Text, nullable=False, index=True)   # "GET /api/events"
    destination = Column(Text)
    route_class = Column(Text)                            # api | image | static | NULL for pass-through
    strategy = Column(Text)
    source = Column(Text, nullable=False)                 # network | cache | fallback | passthrough | error
    status = Column(Integer, nullable=False)
    latency_ms = Column(Integer, nullable=False)
