"""
Dependency wiring for the deletion worker.
"""

from __future__ import annotations

import logging

from deletion_worker.client import DeletionClient, HttpDeletionClient, InMemoryDeletionClient
from deletion_worker.config import Settings, get_settings
from deletion_worker.db import BacklogStore, InMemoryBacklogStore, SqlBacklogStore

logger = logging.getLogger(__name__)

_backlog_store: BacklogStore | None = None
_deletion_client: DeletionClient | None = None


def get_backlog_store(settings: Settings | None = None) -> BacklogStore:
    """
    Return a singleton backlog store so the worker shares one engine/connection pool.
    """
    global _backlog_store
    if _backlog_store:
        return _backlog_store

    settings = settings or get_settings()
    database_url = settings.resolved_database_url()
    if settings.use_in_memory_backends:
        _backlog_store = InMemoryBacklogStore()
    elif not database_url:
        raise ValueError(
            "Backlog database is not configured: set DATABASE_URL or DB_HOSTNAME, DB_NAME and DB_USERNAME"
        )
    else:
        _backlog_store = SqlBacklogStore(database_url)
    return _backlog_store


def get_deletion_client(settings: Settings | None = None) -> DeletionClient:
    global _deletion_client
    if _deletion_client:
        return _deletion_client

    settings = settings or get_settings()
    if settings.use_in_memory_backends:
        logger.warning("Using in-memory deletion client; nothing is deleted remotely")
        _deletion_client = InMemoryDeletionClient()
    elif not settings.delete_endpoint:
        raise ValueError("Deletion endpoint is not configured: set DELETE_ENDPOINT")
    else:
        _deletion_client = HttpDeletionClient(
            settings.delete_endpoint,
            timeout=settings.request_timeout_seconds,
            pool_size=settings.concurrency,
        )
    return _deletion_client


def reset_dependencies() -> None:
    """Forget cached collaborators (useful in tests)."""
    global _backlog_store, _deletion_client
    _backlog_store = None
    _deletion_client = None
