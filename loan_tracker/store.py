"""Persistence layer for the loan collection.

The tracker keeps every loan, with its transactions embedded, in a single
serialized blob under a fixed key. The blob is read once per command or
request and rewritten in full after every mutation. Storage defaults to
SQLite for local use, but any SQLAlchemy-compatible URL (e.g.
PostgreSQL/MySQL) works.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List

from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .data_models import Loan
from .serialization import dumps, loads

logger = logging.getLogger(__name__)

Base = declarative_base()

LOANS_KEY = "loans"
DEFAULT_DATABASE_URL = "sqlite:///loan_tracker.sqlite3"


class BlobModel(Base):
    __tablename__ = "kv_blobs"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class LoanStore:
    """Database-backed store for the loan collection."""

    def __init__(self, url: str, *, key: str = LOANS_KEY) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)
        self._key = key

    def load(self) -> List[Loan]:
        with self._session_factory() as session:
            row = session.get(BlobModel, self._key)
            if row is None:
                logger.debug("No stored loans under %r", self._key)
                return []
            loans = loads(row.value)
        logger.debug("Loaded %d loans from %r", len(loans), self._key)
        return loans

    def save(self, loans: List[Loan]) -> None:
        payload = dumps(loans)
        with self._session_factory() as session:
            row = session.get(BlobModel, self._key)
            if row is None:
                session.add(BlobModel(key=self._key, value=payload))
            else:
                row.value = payload
            session.commit()
        logger.debug("Saved %d loans under %r", len(loans), self._key)

    def clear(self) -> None:
        with self._session_factory() as session:
            row = session.get(BlobModel, self._key)
            if row is not None:
                session.delete(row)
                session.commit()


def create_store_from_env(url: str | None) -> LoanStore:
    return LoanStore(url or DEFAULT_DATABASE_URL)
