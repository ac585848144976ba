from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from functools import partial
import logging
import os
from threading import Lock
from typing import Any, Callable, Optional, Set

LOG = logging.getLogger("channelchat.background")


class BackgroundRunner:
    """Supervised worker pool for work that must outlive the request that started it.

    Every task gets a done-callback acting as its last error boundary, so an
    exception escaping a task is logged instead of vanishing with the future.
    """

    def __init__(self, max_workers: Optional[int] = None, name: str = "fulfillment") -> None:
        workers = max_workers or int(os.getenv("CHANNELCHAT_FULFILLMENT_WORKERS", "4"))
        self._pool = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix=name)
        self._inflight: Set[Future] = set()
        self._lock = Lock()

    def spawn(self, fn: Callable[..., Any], *args: Any, label: str = "task", **kwargs: Any) -> Future:
        future = self._pool.submit(fn, *args, **kwargs)
        with self._lock:
            self._inflight.add(future)
        future.add_done_callback(partial(self._on_done, label))
        return future

    def _on_done(self, label: str, future: Future) -> None:
        with self._lock:
            self._inflight.discard(future)
        if future.cancelled():
            LOG.warning("background_task_cancelled", extra={"label": label})
            return
        exc = future.exception()
        if exc is not None:
            LOG.error("background_task_crashed", extra={"label": label}, exc_info=exc)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._inflight)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for tasks in flight right now. Returns False on timeout."""
        with self._lock:
            pending = list(self._inflight)
        if not pending:
            return True
        _, not_done = wait_futures(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
