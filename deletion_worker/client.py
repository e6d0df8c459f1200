"""
Clients for the remote file deletion endpoint.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

import requests
from requests.adapters import HTTPAdapter

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds


class RemoteDeletionError(RuntimeError):
    """Raised when the endpoint answers with something other than a confirmation list."""


class DeletionClient(Protocol):
    """Sends one batch of file ids for deletion and returns the ids the remote side confirmed."""

    def delete_files(self, file_ids: Sequence[str], token: str) -> list[str]:
        ...

    def close(self) -> None:
        ...


def parse_confirmed(payload: object) -> list[str]:
    """Extract message.confirmed from a deletion response body."""
    message = payload.get("message") if isinstance(payload, dict) else None
    confirmed = message.get("confirmed") if isinstance(message, dict) else None
    if not isinstance(confirmed, list):
        raise RemoteDeletionError(
            f"Unexpected deletion response, missing message.confirmed: {payload!r}"
        )
    return [str(file_id) for file_id in confirmed]


class HttpDeletionClient:
    """Posts batches to the deletion endpoint with a bearer token."""

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = REQUEST_TIMEOUT,
        pool_size: int = 10,
        session: Optional[requests.Session] = None,
    ):
        if not endpoint:
            raise ValueError("A deletion endpoint URL is required")
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()
        # One pooled connection per concurrent chunk.
        adapter = HTTPAdapter(pool_connections=1, pool_maxsize=max(pool_size, 1))
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def delete_files(self, file_ids: Sequence[str], token: str) -> list[str]:
        response = self.session.post(
            self.endpoint,
            json={"fileIds": list(file_ids)},
            headers={"Authorization": f"Bearer {token}"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteDeletionError(
                f"Deletion endpoint returned a non-JSON body (status {response.status_code})"
            ) from exc
        return parse_confirmed(payload)

    def close(self) -> None:
        self.session.close()


@dataclass
class InMemoryDeletionClient:
    """Test double that confirms every id except the rejected ones."""

    reject: set[str] = field(default_factory=set)
    calls: list[tuple[list[str], str]] = field(default_factory=list)

    def __post_init__(self):
        self._lock = threading.Lock()

    def delete_files(self, file_ids: Sequence[str], token: str) -> list[str]:
        with self._lock:
            self.calls.append((list(file_ids), token))
        return [file_id for file_id in file_ids if file_id not in self.reject]

    def close(self) -> None:
        pass
