"""
Backlog storage for pending file deletions, with a SQL and an in-memory implementation.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, Protocol

from sqlalchemy import Column, Float, Integer, String, create_engine, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)


class BacklogError(RuntimeError):
    """Raised when the backlog store cannot be read or written."""


class BacklogStore(Protocol):
    """Interface for the deleted-files backlog."""

    def fetch_pending(self, limit: int) -> list["DeletionRecord"]:
        ...

    def delete_by_ids(self, ids: Iterable[int]) -> int:
        ...

    def enqueue(self, file_id: str) -> "DeletionRecord":
        ...

    def count_pending(self) -> int:
        ...

    def close(self) -> None:
        ...


@dataclass
class DeletionRecord:
    id: int
    file_id: str
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "file_id": self.file_id,
            "created_at": self.created_at,
        }


def _check_limit(limit: int) -> None:
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")


class InMemoryBacklogStore:
    """Simple in-memory backlog for development and tests."""

    def __init__(self):
        self.records: Dict[int, DeletionRecord] = {}
        self.fetch_calls = 0
        self.delete_calls: list[list[int]] = []
        self.closed = False
        self._next_id = 1

    def enqueue(self, file_id: str) -> DeletionRecord:
        for record in self.records.values():
            if record.file_id == file_id:
                return record
        record = DeletionRecord(id=self._next_id, file_id=file_id)
        self.records[record.id] = record
        self._next_id += 1
        return record

    def fetch_pending(self, limit: int) -> list[DeletionRecord]:
        _check_limit(limit)
        self.fetch_calls += 1
        ordered = sorted(self.records.values(), key=lambda r: r.id)
        return list(ordered[:limit])

    def delete_by_ids(self, ids: Iterable[int]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        self.delete_calls.append(ids)
        removed = 0
        for record_id in ids:
            if self.records.pop(record_id, None) is not None:
                removed += 1
        return removed

    def count_pending(self) -> int:
        return len(self.records)

    def close(self) -> None:
        self.closed = True

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.records.clear()
        self.delete_calls.clear()
        self.fetch_calls = 0
        self._next_id = 1


class SqlBacklogStore:
    """
    SQLAlchemy-backed backlog. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str, *, create_tables: bool = True):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlBacklogStore")
        try:
            self.engine = create_engine(
                database_url,
                future=True,
                pool_pre_ping=True,
                pool_recycle=1800,
            )
            self.Session = sessionmaker(
                bind=self.engine, class_=Session, expire_on_commit=False, future=True
            )
            if create_tables:
                Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise BacklogError(f"Failed to connect to backlog database: {exc}") from exc

    def _to_record(self, row: "DeletedFileRow") -> DeletionRecord:
        return DeletionRecord(id=row.id, file_id=row.file_id, created_at=row.created_at)

    def enqueue(self, file_id: str) -> DeletionRecord:
        try:
            with self.Session() as session:
                existing = session.execute(
                    select(DeletedFileRow).where(DeletedFileRow.file_id == file_id)
                ).scalar_one_or_none()
                if existing:
                    return self._to_record(existing)
                row = DeletedFileRow(file_id=file_id, created_at=time.time())
                session.add(row)
                session.commit()
                session.refresh(row)
                return self._to_record(row)
        except SQLAlchemyError as exc:
            raise BacklogError(f"Failed to enqueue {file_id}: {exc}") from exc

    def fetch_pending(self, limit: int) -> list[DeletionRecord]:
        _check_limit(limit)
        try:
            with self.Session() as session:
                stmt = select(DeletedFileRow).order_by(DeletedFileRow.id.asc()).limit(limit)
                rows = session.execute(stmt).scalars().all()
                return [self._to_record(row) for row in rows]
        except SQLAlchemyError as exc:
            raise BacklogError(f"Failed to read deleted files: {exc}") from exc

    def delete_by_ids(self, ids: Iterable[int]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        try:
            with self.Session() as session:
                result = session.execute(
                    delete(DeletedFileRow).where(DeletedFileRow.id.in_(ids))
                )
                session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as exc:
            raise BacklogError(f"Failed to delete {len(ids)} deleted files: {exc}") from exc

    def count_pending(self) -> int:
        try:
            with self.Session() as session:
                return session.execute(
                    select(func.count()).select_from(DeletedFileRow)
                ).scalar_one()
        except SQLAlchemyError as exc:
            raise BacklogError(f"Failed to count deleted files: {exc}") from exc

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Disconnected from backlog database")


Base = declarative_base()


class DeletedFileRow(Base):
    __tablename__ = "deleted_files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    file_id = Column(String(255), nullable=False, unique=True)
    created_at = Column(Float, nullable=False)
