import threading
import time

from src.channelchat.client.poller import (
    DEFAULT_INTERVAL_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    CompletionPoller,
    PollHandle,
    PollOutcome,
)
from src.channelchat.domain.chat_models import Message


def _msg(message_id, pending):
    return Message(
        message_id=message_id,
        channel_id="c1",
        role="assistant",
        text="" if pending else "done",
        pending=pending,
        created_at="2024-01-01T00:00:00Z",
    )


class _Feed:
    """Reports the message as pending until ``resolve_after`` fetches have happened."""

    def __init__(self, resolve_after=None, fail_first=0):
        self.resolve_after = resolve_after
        self.fail_first = fail_first
        self.fetches = 0

    def __call__(self, channel_id):
        self.fetches += 1
        if self.fetches <= self.fail_first:
            raise ConnectionError("server down")
        resolved = self.resolve_after is not None and self.fetches >= self.resolve_after
        return [_msg("other", False), _msg("m1", not resolved)]


def test_defaults():
    assert DEFAULT_INTERVAL_SECONDS == 1.5
    assert DEFAULT_MAX_ATTEMPTS == 40


def test_resolves_and_calls_on_done_once():
    feed = _Feed(resolve_after=3)
    calls = []
    poller = CompletionPoller(feed, interval=0)

    outcome = poller.poll("c1", "m1", on_done=lambda: calls.append(1))

    assert outcome == PollOutcome.RESOLVED
    assert feed.fetches == 3
    assert calls == [1]


def test_gives_up_after_max_attempts_without_on_done():
    feed = _Feed(resolve_after=None)
    calls = []
    handle = PollHandle("c1", "m1")
    poller = CompletionPoller(feed, interval=0)

    outcome = poller.poll("c1", "m1", on_done=lambda: calls.append(1), handle=handle)

    assert outcome == PollOutcome.GAVE_UP
    assert feed.fetches == 40
    assert handle.attempts == 40
    assert handle.done and handle.outcome == PollOutcome.GAVE_UP
    assert calls == []


def test_fetch_errors_count_as_attempts():
    feed = _Feed(resolve_after=None, fail_first=5)
    poller = CompletionPoller(feed, interval=0, max_attempts=5)

    assert poller.poll("c1", "m1") == PollOutcome.GAVE_UP
    assert feed.fetches == 5


def test_fetch_error_then_resolution():
    feed = _Feed(resolve_after=3, fail_first=2)
    poller = CompletionPoller(feed, interval=0)
    assert poller.poll("c1", "m1") == PollOutcome.RESOLVED
    assert feed.fetches == 3


def test_message_missing_from_listing_keeps_polling():
    poller = CompletionPoller(lambda channel_id: [], interval=0, max_attempts=3)
    assert poller.poll("c1", "m1") == PollOutcome.GAVE_UP


def test_on_done_errors_do_not_escape():
    poller = CompletionPoller(_Feed(resolve_after=1), interval=0)

    def explode():
        raise RuntimeError("render failed")

    assert poller.poll("c1", "m1", on_done=explode) == PollOutcome.RESOLVED


def test_background_poll_can_be_cancelled():
    feed = _Feed(resolve_after=None)
    calls = []
    poller = CompletionPoller(feed, interval=0.05)

    handle = poller.await_completion("c1", "m1", on_done=lambda: calls.append(1))
    handle.cancel()

    assert handle.wait(timeout=5) == PollOutcome.CANCELLED
    assert handle.cancelled
    assert calls == []
    assert feed.fetches < DEFAULT_MAX_ATTEMPTS


def test_background_poll_resolves():
    done = threading.Event()
    poller = CompletionPoller(_Feed(resolve_after=2), interval=0.01)

    handle = poller.await_completion("c1", "m1", on_done=done.set)

    assert handle.wait(timeout=5) == PollOutcome.RESOLVED
    assert done.is_set()
    assert handle.attempts == 2


def test_wait_returns_after_on_done_finished():
    rendered = []
    poller = CompletionPoller(_Feed(resolve_after=1), interval=0.01)

    def slow_render():
        time.sleep(0.3)
        rendered.append("reply")

    handle = poller.await_completion("c1", "m1", on_done=slow_render)

    assert handle.wait(timeout=5) == PollOutcome.RESOLVED
    assert rendered == ["reply"]


def test_slow_fetches_do_not_stretch_the_schedule():
    feed = _Feed(resolve_after=None)

    def slow_fetch(channel_id):
        time.sleep(0.05)
        return feed(channel_id)

    poller = CompletionPoller(slow_fetch, interval=0.05, max_attempts=20)

    started = time.monotonic()
    assert poller.poll("c1", "m1") == PollOutcome.GAVE_UP
    elapsed = time.monotonic() - started

    assert feed.fetches == 20
    # 20 ticks of 0.05 plus the last fetch; serial waits would take about 2.0
    assert elapsed < 1.5
