from __future__ import annotations

import threading
from typing import List, Optional

from src.channelchat.domain.errors import BackendError
from src.channelchat.services.generation import GeneratedImage


class FakeBackend:
    """Records what it was asked and answers from canned values."""

    def __init__(
        self,
        reply: str = "Hello there",
        image: Optional[GeneratedImage] = None,
        fail: Optional[Exception] = None,
        gate: Optional[threading.Event] = None,
    ) -> None:
        self.reply = reply
        self.image = image or GeneratedImage(data=b"\x89PNG fake", content_type="image/png")
        self.fail = fail
        self.gate = gate
        self.text_prompts: List[str] = []
        self.image_prompts: List[str] = []
        self.started = threading.Event()

    def _maybe_block(self) -> None:
        self.started.set()
        if self.gate is not None:
            assert self.gate.wait(5), "test gate never opened"

    def generate_text(self, context_text: str) -> str:
        self.text_prompts.append(context_text)
        self._maybe_block()
        if self.fail is not None:
            raise self.fail
        return self.reply

    def generate_image(self, prompt: str) -> GeneratedImage:
        self.image_prompts.append(prompt)
        self._maybe_block()
        if self.fail is not None:
            raise self.fail
        return self.image


def backend_error(msg: str = "quota exceeded") -> BackendError:
    return BackendError(msg, provider="fake")


class ManualRunner:
    """Runner that holds spawned work until the test runs it."""

    def __init__(self) -> None:
        self.calls = []

    def spawn(self, fn, *args, label: str = "task", **kwargs):
        self.calls.append((label, fn, args, kwargs))

    def run(self, index: int = 0):
        _, fn, args, kwargs = self.calls[index]
        return fn(*args, **kwargs)

    def run_all(self):
        return [self.run(i) for i in range(len(self.calls))]

    def drain(self, timeout=None) -> bool:
        return True

    def shutdown(self, wait: bool = True) -> None:
        pass
