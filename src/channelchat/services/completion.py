"""Deferred completion of assistant replies.

``submit_turn`` stores the user message and an empty, pending assistant
placeholder and returns both at once. A background task then asks the
generation backend for a reply (or an image) and writes the result onto the
placeholder exactly once, moving it from pending to fulfilled or failed.
Clients learn about the write by polling the channel's messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import os
import time
from typing import List, Optional, Tuple

from ..domain.chat_models import Message
from ..domain.errors import BackendError, NotFoundError, ValidationError
from ..infrastructure.chat_store import ChatStore, get_chat_store
from ..infrastructure.image_store import ImageStore, get_image_store
from ..observability.metrics import record_fulfillment
from .background import BackgroundRunner
from .context import (
    DEFAULT_DIRECTIVE,
    DEFAULT_IMAGE_PROMPT,
    extract_image_prompt,
    is_image_request,
    render_prompt,
    sanitize_reply,
)
from .generation import GenerationBackend, RoutedBackend

LOG = logging.getLogger("channelchat.completion")

# Shown verbatim to users; clients match on it.
FALLBACK_TEXT = "⚠️ (AI failed) — please try again later."
IMAGE_SUCCESS_TEXT = "[Image generated]"
DEFAULT_CONTEXT_WINDOW = 10


class FulfillmentState(str, Enum):
    FULFILLED = "fulfilled"
    FAILED = "failed"
    # target vanished before the write; placeholder stays pending
    ABORTED = "aborted"


@dataclass
class FulfillmentResult:
    message_id: str
    branch: str
    state: FulfillmentState
    message: Optional[Message] = None


class CompletionOrchestrator:
    def __init__(
        self,
        store: Optional[ChatStore] = None,
        images: Optional[ImageStore] = None,
        backend: Optional[GenerationBackend] = None,
        runner: Optional[BackgroundRunner] = None,
        directive: Optional[str] = None,
        context_window: Optional[int] = None,
        public_base_url: Optional[str] = None,
    ) -> None:
        self._store = store or get_chat_store()
        self._images = images or get_image_store()
        self._backend = backend or RoutedBackend()
        self._runner = runner or BackgroundRunner()
        self.directive = directive or os.getenv("CHANNELCHAT_IMAGE_DIRECTIVE") or DEFAULT_DIRECTIVE
        window = context_window or int(os.getenv("CHANNELCHAT_CONTEXT_WINDOW", str(DEFAULT_CONTEXT_WINDOW)))
        self.context_window = max(1, window)
        self.public_base_url = (
            public_base_url or os.getenv("CHANNELCHAT_PUBLIC_BASE_URL") or "http://localhost:8000"
        ).rstrip("/")

    # ------------------------------------------------------------------
    # Request path
    # ------------------------------------------------------------------
    def submit_turn(
        self,
        channel_id: Optional[str],
        text: Optional[str] = None,
        image_id: Optional[str] = None,
        *,
        public_base_url: Optional[str] = None,
    ) -> Tuple[Message, Message]:
        """Persist a user turn plus its pending placeholder and schedule fulfillment.

        Never waits on the generation backend.
        """
        if not channel_id or not str(channel_id).strip():
            raise ValidationError("missing channel_id")
        if self._store.get_channel(channel_id) is None:
            raise NotFoundError("Channel not found")

        user_msg = self._store.add_message(channel_id, role="user", text=text or "", image_id=image_id)
        placeholder = self._store.add_message(channel_id, role="assistant", text="", pending=True)

        self._runner.spawn(
            self.fulfill,
            channel_id,
            placeholder.message_id,
            text or "",
            image_id,
            base_url=public_base_url,
            label=f"fulfill:{placeholder.message_id}",
        )
        LOG.info(
            "turn_accepted",
            extra={"channel_id": channel_id, "user_message_id": user_msg.message_id, "placeholder_id": placeholder.message_id},
        )
        return user_msg, placeholder

    # ------------------------------------------------------------------
    # Background path
    # ------------------------------------------------------------------
    def fulfill(
        self,
        channel_id: str,
        placeholder_id: str,
        text: str,
        image_id: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> FulfillmentResult:
        started = time.perf_counter()
        branch = "image" if is_image_request(text, self.directive) else "text"

        if self._store.get_channel(channel_id) is None or self._store.get_message(placeholder_id) is None:
            # Known gap: nothing resolves this placeholder later.
            LOG.warning(
                "fulfillment_aborted_missing_target",
                extra={"channel_id": channel_id, "placeholder_id": placeholder_id},
            )
            record_fulfillment(branch, FulfillmentState.ABORTED.value, time.perf_counter() - started)
            return FulfillmentResult(placeholder_id, branch, FulfillmentState.ABORTED)

        try:
            if branch == "image":
                updated = self._fulfill_image(placeholder_id, text)
            else:
                prompt = self.build_prompt(channel_id, placeholder_id, image_id, base_url=base_url)
                updated = self._fulfill_text(placeholder_id, prompt)
            state = FulfillmentState.FULFILLED
        except BackendError as exc:
            LOG.warning(
                "fulfillment_backend_failed",
                extra={"placeholder_id": placeholder_id, "branch": branch, "provider": exc.provider, "err": str(exc)},
            )
            updated = self._write_failure(placeholder_id)
            state = FulfillmentState.FAILED
        except Exception:
            LOG.exception("fulfillment_failed", extra={"placeholder_id": placeholder_id, "branch": branch})
            updated = self._write_failure(placeholder_id)
            state = FulfillmentState.FAILED

        record_fulfillment(branch, state.value, time.perf_counter() - started)
        LOG.info("fulfillment_done", extra={"placeholder_id": placeholder_id, "branch": branch, "state": state.value})
        return FulfillmentResult(placeholder_id, branch, state, updated)

    def context_messages(self, channel_id: str, exclude_id: Optional[str] = None) -> List[Message]:
        """Last ``context_window`` messages of the channel, oldest first."""
        extra = 1 if exclude_id else 0
        recent = self._store.recent_messages(channel_id, self.context_window + extra)
        if exclude_id:
            recent = [m for m in recent if m.message_id != exclude_id]
        return recent[-self.context_window:]

    def build_prompt(
        self,
        channel_id: str,
        placeholder_id: Optional[str] = None,
        image_id: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> str:
        messages = self.context_messages(channel_id, exclude_id=placeholder_id)
        attached_url = None
        if image_id:
            attached_url = f"{(base_url or self.public_base_url).rstrip('/')}/api/images/{image_id}"
        return render_prompt(messages, attached_url)

    def _fulfill_text(self, placeholder_id: str, prompt: str) -> Message:
        reply = self._backend.generate_text(prompt)
        return self._store.update_message(placeholder_id, text=sanitize_reply(reply), pending=False)

    def _fulfill_image(self, placeholder_id: str, text: str) -> Message:
        prompt = extract_image_prompt(text, self.directive, DEFAULT_IMAGE_PROMPT)
        generated = self._backend.generate_image(prompt)
        stored = self._images.save_image(generated.data, generated.content_type)
        return self._store.update_message(
            placeholder_id,
            text=IMAGE_SUCCESS_TEXT,
            image_id=stored.image_id,
            pending=False,
        )

    def _write_failure(self, placeholder_id: str) -> Message:
        return self._store.update_message(placeholder_id, text=FALLBACK_TEXT, pending=False)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def drain(self, timeout: Optional[float] = None) -> bool:
        return self._runner.drain(timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._runner.shutdown(wait=wait)


_orchestrator: CompletionOrchestrator | None = None


def get_orchestrator() -> CompletionOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = CompletionOrchestrator()
    return _orchestrator
