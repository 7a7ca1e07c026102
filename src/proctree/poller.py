"""Fixed-interval polling engine for proctree."""

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial

from proctree.errors import MalformedRecordError, SnapshotUnavailableError
from proctree.models import ProcessRecord
from proctree.source import snapshot
from proctree.store import ProcessTreeStore

logger = logging.getLogger(__name__)

SnapshotSource = Callable[[int], ProcessRecord]


class TreePoller:
    """
    Poller that keeps a ProcessTreeStore in sync with the live process tree.

    A daemon timer thread fires every ``interval`` seconds and hands the
    snapshot call to a small worker pool, so a slow or hung source never
    holds the timer up. Each successful snapshot is merged into the store
    and followed by exactly one change notification on ``store.changed``.

    At most one snapshot request is outstanding: ticks that find a request
    in flight are skipped. When ``snapshot_timeout`` is set, a request
    older than that is abandoned, its eventual result ignored, and a new
    request issued in its place. Abandoned requests that already hold a
    worker count against the pool; once every worker is stuck, ticks are
    skipped rather than queued behind them.
    """

    def __init__(
        self,
        store: ProcessTreeStore,
        root_pid: int,
        source: SnapshotSource = snapshot,
        interval: float = 1.0,
        keep_terminated: bool = False,
        snapshot_timeout: float | None = None,
        max_workers: int = 2,
    ) -> None:
        """
        Initialize the TreePoller.

        Args:
            store: Store to merge snapshots into. Closed by ``stop()``.
            root_pid: Process whose subtree is monitored.
            source: Callable returning a ProcessRecord tree for a pid.
            interval: Seconds between ticks. Default 1.0s.
            keep_terminated: Keep vanished processes, marked as removed.
            snapshot_timeout: Seconds after which an outstanding request is
                abandoned. None waits forever.
            max_workers: Size of the pool running snapshot calls.
        """
        self._store = store
        self._root_pid = root_pid
        self._source = source
        self._interval = max(0.1, interval)
        self._keep_terminated = keep_terminated
        self._snapshot_timeout = snapshot_timeout
        self._max_workers = max_workers
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()
        self._generation = 0
        self._in_flight: tuple[int, float, Future] | None = None
        # Abandoned requests still holding a worker
        self._abandoned: set[Future] = set()

    @property
    def store(self) -> ProcessTreeStore:
        return self._store

    @property
    def root_pid(self) -> int:
        return self._root_pid

    @property
    def interval(self) -> float:
        """Get the current poll interval."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Set the poll interval."""
        self._interval = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the timer thread is running."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def in_flight(self) -> bool:
        """Check if a snapshot request is outstanding."""
        with self._lock:
            return self._in_flight is not None

    def start(self) -> None:
        """
        Start the timer thread. The first cycle fires immediately.

        Raises:
            RuntimeError: if the poller was already stopped.
        """
        if self.is_running:
            return
        if self._store.closed:
            raise RuntimeError("cannot restart a stopped poller")

        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix="TreePollerSnapshot",
        )
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="TreePoller",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop polling and tear the store down. Safe to call repeatedly.

        Outstanding snapshot requests are not waited for; whatever they
        return afterwards is discarded.

        Args:
            timeout: How long to wait for the timer thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        with self._lock:
            self._in_flight = None
            self._abandoned.clear()
        self._store.close()

    def poll_once(self) -> bool:
        """
        Run one cycle synchronously on the calling thread.

        Returns:
            True if a snapshot was merged and a notification raised.
        """
        try:
            record = self._source(self._root_pid)
        except SnapshotUnavailableError as exc:
            logger.debug("snapshot of pid %d unavailable: %s", self._root_pid, exc)
            return False
        except Exception:
            logger.warning("snapshot of pid %d failed", self._root_pid, exc_info=True)
            return False
        return self._deliver(record)

    def _poll_loop(self) -> None:
        """Main timer loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._tick()
            except Exception:
                logger.exception("poll tick failed")

            # Wait for interval seconds or until stop is requested
            self._stop_event.wait(timeout=self._interval)

    def _tick(self) -> None:
        with self._lock:
            if self._in_flight is not None:
                generation, started, pending = self._in_flight
                age = time.monotonic() - started
                if self._snapshot_timeout is None or age < self._snapshot_timeout:
                    logger.debug("snapshot %d still pending, skipping tick", generation)
                    return
                logger.warning("abandoning snapshot %d after %.1fs", generation, age)
                self._in_flight = None
                # Cancelling only succeeds while the request is still queued
                if not pending.cancel():
                    self._abandoned.add(pending)

            if len(self._abandoned) >= self._max_workers:
                logger.debug("all workers stuck in abandoned snapshots, skipping tick")
                return

            executor = self._executor
            if executor is None:
                return
            try:
                future = executor.submit(self._source, self._root_pid)
            except RuntimeError:
                # Pool shut down between the check and the submit
                return
            self._generation += 1
            generation = self._generation
            self._in_flight = (generation, time.monotonic(), future)

        # Outside the lock: a finished future runs the callback right away
        future.add_done_callback(partial(self._on_done, generation))

    def _on_done(self, generation: int, future: Future) -> None:
        with self._lock:
            self._abandoned.discard(future)
            if self._in_flight is None or self._in_flight[0] != generation:
                logger.debug("dropping result of abandoned snapshot %d", generation)
                return
            self._in_flight = None

        if future.cancelled() or self._stop_event.is_set():
            return

        try:
            record = future.result()
        except SnapshotUnavailableError as exc:
            logger.debug("snapshot of pid %d unavailable: %s", self._root_pid, exc)
            return
        except Exception:
            logger.warning("snapshot of pid %d failed", self._root_pid, exc_info=True)
            return
        self._deliver(record)

    def _deliver(self, record: ProcessRecord) -> bool:
        try:
            applied = self._store.apply(record, keep_terminated=self._keep_terminated)
        except MalformedRecordError as exc:
            logger.warning("discarding malformed snapshot: %s", exc)
            return False
        if applied:
            self._store.changed.emit()
        return applied
