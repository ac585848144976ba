"""Bounded polling for a pending assistant reply.

The server never pushes; a client that got a pending placeholder back from
``/send`` re-fetches the channel on a fixed interval until the placeholder's
``pending`` flag clears, and gives up silently after a fixed number of
attempts. The returned :class:`PollHandle` lets a caller cancel early or find
out afterwards whether the poll resolved or gave up.
"""

from __future__ import annotations

from enum import Enum
import logging
import threading
import time
from typing import Callable, Iterable, Optional

from ..domain.chat_models import Message

LOG = logging.getLogger("channelchat.client")

DEFAULT_INTERVAL_SECONDS = 1.5
DEFAULT_MAX_ATTEMPTS = 40

FetchMessages = Callable[[str], Iterable[Message]]


class PollOutcome(str, Enum):
    RESOLVED = "resolved"
    GAVE_UP = "gave_up"
    CANCELLED = "cancelled"


class PollHandle:
    def __init__(self, channel_id: str, message_id: str) -> None:
        self.channel_id = channel_id
        self.message_id = message_id
        self.attempts = 0
        self.outcome: Optional[PollOutcome] = None
        self._cancelled = threading.Event()
        self._finished = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def done(self) -> bool:
        return self._finished.is_set()

    def wait(self, timeout: Optional[float] = None) -> Optional[PollOutcome]:
        """Block until the poll stops; ``None`` if still running after ``timeout``."""
        self._finished.wait(timeout)
        return self.outcome

    def _finish(self, outcome: PollOutcome) -> None:
        self.outcome = outcome
        self._finished.set()


class CompletionPoller:
    def __init__(
        self,
        fetch_messages: FetchMessages,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._fetch = fetch_messages
        self.interval = interval
        self.max_attempts = max_attempts

    def await_completion(
        self,
        channel_id: str,
        message_id: str,
        on_done: Optional[Callable[[], None]] = None,
    ) -> PollHandle:
        """Poll in a background thread. ``on_done`` runs only if the message resolves."""
        handle = PollHandle(channel_id, message_id)
        thread = threading.Thread(
            target=self.poll,
            args=(channel_id, message_id, on_done, handle),
            name=f"poll-{message_id[:8]}",
            daemon=True,
        )
        thread.start()
        return handle

    def poll(
        self,
        channel_id: str,
        message_id: str,
        on_done: Optional[Callable[[], None]] = None,
        handle: Optional[PollHandle] = None,
    ) -> PollOutcome:
        """Blocking form of :meth:`await_completion`."""
        handle = handle or PollHandle(channel_id, message_id)
        start = time.monotonic()
        while handle.attempts < self.max_attempts:
            # fixed schedule from the start; a slow fetch shortens the next wait
            delay = max(0.0, start + (handle.attempts + 1) * self.interval - time.monotonic())
            if handle._cancelled.wait(delay):
                handle._finish(PollOutcome.CANCELLED)
                return PollOutcome.CANCELLED
            handle.attempts += 1
            if self._is_resolved(channel_id, message_id):
                # wait() returns only after the caller's refresh ran
                try:
                    if on_done is not None:
                        on_done()
                except Exception:
                    LOG.exception("poll_on_done_failed", extra={"message_id": message_id})
                finally:
                    handle._finish(PollOutcome.RESOLVED)
                return PollOutcome.RESOLVED
        LOG.debug("poll_gave_up", extra={"message_id": message_id, "attempts": handle.attempts})
        handle._finish(PollOutcome.GAVE_UP)
        return PollOutcome.GAVE_UP

    def _is_resolved(self, channel_id: str, message_id: str) -> bool:
        try:
            messages = list(self._fetch(channel_id))
        except Exception as exc:
            # a failed fetch still spends an attempt
            LOG.debug("poll_fetch_failed", extra={"message_id": message_id, "err": str(exc)})
            return False
        for msg in messages:
            if msg.message_id == message_id:
                return not msg.pending
        return False
