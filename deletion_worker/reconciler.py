"""
Remove confirmed deletions from the backlog.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from deletion_worker.db import BacklogStore, DeletionRecord
from deletion_worker.dispatcher import ChunkResult

logger = logging.getLogger(__name__)


def confirmed_ids(results: Iterable[ChunkResult]) -> set[str]:
    confirmed: set[str] = set()
    for result in results:
        if result.ok:
            confirmed.update(result.confirmed)
    return confirmed


def reconcile(
    records: Sequence[DeletionRecord],
    results: Sequence[ChunkResult],
    store: BacklogStore,
) -> list[DeletionRecord]:
    """
    Delete from the backlog exactly the records whose file id was confirmed.

    Records in failed chunks, or left out of a chunk's confirmation list, stay
    in the backlog and are picked up again on a later cycle. Returns the
    removed records.
    """
    confirmed = confirmed_ids(results)
    to_remove = [record for record in records if record.file_id in confirmed]

    unknown = confirmed.difference(record.file_id for record in records)
    if unknown:
        logger.debug("Ignoring %d confirmed ids not on this page", len(unknown))

    if to_remove:
        store.delete_by_ids([record.id for record in to_remove])

    pending = len(records) - len(to_remove)
    if pending:
        logger.info("%d of %d files left unconfirmed for retry", pending, len(records))
    return to_remove
