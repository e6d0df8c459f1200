"""
Polling loop that drains the deleted-files backlog.

Each cycle reads one page of pending records, signs a fresh token, sends the
page to the deletion endpoint in concurrent chunks and removes the confirmed
records. The loop keeps going while pages come back full.
"""

from __future__ import annotations

import argparse
import logging
import signal
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from deletion_worker.client import DeletionClient
from deletion_worker.config import get_settings
from deletion_worker.db import BacklogError, BacklogStore
from deletion_worker.dependencies import get_backlog_store, get_deletion_client
from deletion_worker.dispatcher import dispatch
from deletion_worker.reconciler import reconcile
from deletion_worker.signer import SigningError, sign_token

logger = logging.getLogger(__name__)

__version__ = "0.1.0"


class WorkerState(str, Enum):
    IDLE = "IDLE"
    POLLING = "POLLING"
    SHUTTING_DOWN = "SHUTTING_DOWN"
    DONE = "DONE"
    ERROR = "ERROR"


@dataclass
class CycleResult:
    fetched: int
    chunks: int = 0
    failed_chunks: int = 0
    removed: int = 0


class ThroughputReporter:
    """Background thread logging the removal rate every `interval` seconds."""

    def __init__(
        self,
        get_total: Callable[[], int],
        *,
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.get_total = get_total
        self.interval = interval
        self.clock = clock
        self.started_at: Optional[float] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return self.clock() - self.started_at

    def rate(self) -> float:
        elapsed = self.elapsed()
        if elapsed <= 0:
            return 0.0
        return self.get_total() / elapsed

    def start(self) -> None:
        self.started_at = self.clock()
        self._thread = threading.Thread(
            target=self._run, name="throughput-reporter", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            logger.info("RATE: %.2f/s", self.rate())


class DeletionWorker:
    """Runs fetch -> dispatch -> reconcile cycles until the backlog is drained or a stop is requested."""

    def __init__(
        self,
        store: BacklogStore,
        client: DeletionClient,
        *,
        secret: str,
        page_size: int = 10,
        concurrency: int = 5,
        token_ttl_seconds: int = 300,
        report_interval: float = 1.0,
        retry_backoff_seconds: float = 1.0,
    ):
        if not secret:
            raise SigningError("A token secret is required to sign deletion requests")
        if token_ttl_seconds <= 0:
            raise SigningError(f"Token TTL must be positive, got {token_ttl_seconds}")
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")

        self.store = store
        self.client = client
        self.secret = secret
        self.page_size = page_size
        self.concurrency = concurrency
        self.token_ttl_seconds = token_ttl_seconds
        self.report_interval = report_interval
        self.retry_backoff_seconds = retry_backoff_seconds

        self.state = WorkerState.IDLE
        self.total_removed = 0
        self.cycles = 0
        self.reporter = ThroughputReporter(
            lambda: self.total_removed, interval=report_interval
        )
        self._stop_requested = threading.Event()
        self._awaiting_remote = False

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    @property
    def awaiting_remote(self) -> bool:
        return self._awaiting_remote

    def request_stop(self) -> None:
        """Finish the cycle in progress, then stop."""
        self._stop_requested.set()
        if self.state in (WorkerState.IDLE, WorkerState.POLLING):
            self.state = WorkerState.SHUTTING_DOWN

    def run_cycle(self) -> CycleResult:
        records = self.store.fetch_pending(self.page_size)
        if not records:
            return CycleResult(fetched=0)

        token = sign_token(self.secret, self.token_ttl_seconds)
        # Only the remote calls may be abandoned by a second interrupt.
        self._awaiting_remote = True
        try:
            results = dispatch(
                [record.file_id for record in records],
                self.client,
                token,
                self.concurrency,
            )
        finally:
            self._awaiting_remote = False
        removed = reconcile(records, results, self.store)
        self.total_removed += len(removed)
        return CycleResult(
            fetched=len(records),
            chunks=len(results),
            failed_chunks=sum(1 for result in results if not result.ok),
            removed=len(removed),
        )

    def run(self, *, once: bool = False) -> int:
        """
        Drive cycles until a short page, a stop request or a fatal error.

        Returns the total number of removed records. Storage and signing errors
        put the worker in the ERROR state and are re-raised after cleanup.
        """
        if not self._stop_requested.is_set():
            self.state = WorkerState.POLLING
        self.reporter.start()
        try:
            while not self._stop_requested.is_set():
                result = self.run_cycle()
                self.cycles += 1
                logger.debug(
                    "Cycle %d: fetched=%d chunks=%d failed=%d removed=%d",
                    self.cycles,
                    result.fetched,
                    result.chunks,
                    result.failed_chunks,
                    result.removed,
                )
                if once or result.fetched < self.page_size:
                    break
                if result.removed == 0:
                    logger.warning(
                        "No deletions confirmed for a full page of %d files; retrying in %.1fs",
                        result.fetched,
                        self.retry_backoff_seconds,
                    )
                    self._stop_requested.wait(self.retry_backoff_seconds)
        except KeyboardInterrupt:
            logger.warning("Interrupted again; abandoning the current cycle")
            self.state = WorkerState.SHUTTING_DOWN
        except Exception:
            self.state = WorkerState.ERROR
            raise
        finally:
            self.reporter.stop()
            self._finish()
        return self.total_removed

    def _finish(self) -> None:
        logger.info(
            "TOTAL FILES REMOVED %d | DURATION %.2fs",
            self.total_removed,
            self.reporter.elapsed(),
        )
        try:
            self.store.close()
        except Exception as exc:
            logger.error("Error closing backlog connection: %s", exc)
        self.client.close()
        if self.state != WorkerState.ERROR:
            self.state = WorkerState.DONE


def install_signal_handlers(worker: DeletionWorker) -> None:
    """First SIGINT/SIGTERM requests a graceful stop; a second one abandons in-flight remote calls."""

    def _handle(signum, frame):
        if worker.stop_requested:
            if worker.awaiting_remote:
                raise KeyboardInterrupt
            logger.info("Already stopping, waiting for the backlog update to finish")
            return
        logger.info(
            "Received %s, stopping after the current cycle", signal.Signals(signum).name
        )
        worker.request_stop()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="delete-files",
        description="Send pending file deletions to the storage endpoint and clear confirmed ones",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-s",
        "--secret",
        dest="token_secret",
        help="The secret used to sign the token to request files deletion",
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL of the database where deleted files are stored",
    )
    parser.add_argument(
        "--db-hostname",
        help="The hostname of the database where deleted files are stored",
    )
    parser.add_argument(
        "--db-name",
        help="The name of the database where deleted files are stored",
    )
    parser.add_argument(
        "--db-username",
        help="The username authorized to read and delete from the deleted files table",
    )
    parser.add_argument("--db-password", help="The database username password")
    parser.add_argument(
        "-c",
        "--concurrency",
        type=int,
        help="The concurrency level of the requests that will be made",
    )
    parser.add_argument(
        "-e",
        "--endpoint",
        dest="delete_endpoint",
        help="The API endpoint where the delete files requests are sent",
    )
    parser.add_argument(
        "-l",
        "--page-size",
        type=int,
        help="How many deleted files to read per cycle",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    overrides = {
        key: value
        for key, value in vars(args).items()
        if key != "once" and value is not None
    }
    client: Optional[DeletionClient] = None
    store: Optional[BacklogStore] = None
    try:
        settings = get_settings().model_copy(update=overrides)
        client = get_deletion_client(settings)
        store = get_backlog_store(settings)
        worker = DeletionWorker(
            store,
            client,
            secret=settings.token_secret or "",
            page_size=settings.page_size,
            concurrency=settings.concurrency,
            token_ttl_seconds=settings.token_ttl_seconds,
            report_interval=settings.report_interval_seconds,
            retry_backoff_seconds=settings.retry_backoff_seconds,
        )
    except (ValueError, BacklogError) as exc:
        logger.error("Deletion worker failed to start: %s", exc)
        if client is not None:
            client.close()
        if store is not None:
            store.close()
        return 1

    install_signal_handlers(worker)
    try:
        worker.run(once=args.once)
    except Exception as exc:
        logger.exception("Deletion worker stopped on fatal error: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
