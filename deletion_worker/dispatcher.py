"""
Fan a page of file ids out to the deletion endpoint in bounded-concurrency chunks.
"""

from __future__ import annotations

import concurrent.futures
import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

from deletion_worker.client import DeletionClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Chunk:
    index: int
    start: int
    file_ids: tuple[str, ...]

    @property
    def end(self) -> int:
        return self.start + len(self.file_ids)

    def describe(self) -> str:
        return f"chunk {self.index} [{self.start}, {self.end})"


@dataclass
class ChunkResult:
    chunk: Chunk
    confirmed: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def chunk_size(n: int, concurrency: int) -> int:
    """Number of ids per request so that a page of n ids needs at most `concurrency` requests."""
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")
    if n <= 0:
        return 0
    return math.ceil(n / concurrency)


def split_chunks(file_ids: Sequence[str], concurrency: int) -> list[Chunk]:
    size = chunk_size(len(file_ids), concurrency)
    if size == 0:
        return []
    return [
        Chunk(index=index, start=start, file_ids=tuple(file_ids[start:start + size]))
        for index, start in enumerate(range(0, len(file_ids), size))
    ]


def _send_chunk(client: DeletionClient, chunk: Chunk, token: str) -> ChunkResult:
    confirmed = client.delete_files(list(chunk.file_ids), token)
    return ChunkResult(chunk=chunk, confirmed=list(confirmed))


def dispatch(
    file_ids: Sequence[str],
    client: DeletionClient,
    token: str,
    concurrency: int,
) -> list[ChunkResult]:
    """
    Send every chunk of `file_ids` to the endpoint, at most `concurrency` at a time.

    A failing chunk never affects its siblings: its exception is logged and
    turned into a ChunkResult carrying the error, and it is not retried here.
    Results come back in chunk order regardless of completion order.
    """
    chunks = split_chunks(file_ids, concurrency)
    if not chunks:
        return []

    results: dict[int, ChunkResult] = {}
    with concurrent.futures.ThreadPoolExecutor(
        max_workers=concurrency, thread_name_prefix="delete-files"
    ) as executor:
        futures = {
            executor.submit(_send_chunk, client, chunk, token): chunk for chunk in chunks
        }
        for future in concurrent.futures.as_completed(futures):
            chunk = futures[future]
            try:
                results[chunk.index] = future.result()
            except Exception as exc:
                logger.warning(
                    "Deletion request failed for %s (%d ids): %s",
                    chunk.describe(),
                    len(chunk.file_ids),
                    exc,
                )
                results[chunk.index] = ChunkResult(chunk=chunk, error=repr(exc))

    return [results[chunk.index] for chunk in chunks]
