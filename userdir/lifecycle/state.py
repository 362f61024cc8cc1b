"""Draining flag and in-flight connection tracking."""

import logging
import threading
import time

from userdir.domain.correlation_id import CorrelationLoggerAdapter

LIFECYCLE_LOGGER = CorrelationLoggerAdapter(logging.getLogger("userdir.lifecycle"), {})


class ServerLifecycle:
    """Shared between the accept loop, workers and signal handlers.

    Once draining starts the accept loop exits, open keep-alive connections
    are answered with 503, and shutdown waits on the workers still tracked.
    """

    def __init__(self) -> None:
        self._draining = threading.Event()
        self._workers_lock = threading.Lock()
        self._workers: set[threading.Thread] = set()

    def is_draining(self) -> bool:
        return self._draining.is_set()

    def register_worker(self, thread: threading.Thread) -> None:
        with self._workers_lock:
            self._workers.add(thread)

    def cleanup_worker(self, thread: threading.Thread) -> None:
        with self._workers_lock:
            self._workers.discard(thread)

    def active_worker_count(self) -> int:
        with self._workers_lock:
            return len(self._workers)

    def begin_draining(self) -> None:
        """Flip into draining mode; later calls are no-ops."""
        if self._draining.is_set():
            return
        self._draining.set()
        LIFECYCLE_LOGGER.info(
            "Draining connections", extra={"event": "shutdown_started"}
        )

    def wait_for_workers(self, timeout: float) -> bool:
        """Join tracked workers until they finish or ``timeout`` elapses.

        Returns False when some workers were still running at the deadline.
        """
        deadline = time.monotonic() + timeout
        with self._workers_lock:
            pending = list(self._workers)
        for worker in pending:
            worker.join(timeout=max(0.0, deadline - time.monotonic()))

        stragglers = [worker for worker in pending if worker.is_alive()]
        if stragglers:
            LIFECYCLE_LOGGER.warning(
                "Workers still running after grace period",
                extra={"event": "shutdown_timeout", "count": len(stragglers)},
            )
            return False
        return True
