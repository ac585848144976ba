"""Prompt construction and reply clean-up for the fulfillment task."""

from __future__ import annotations

import re
from typing import Iterable, Optional

from ..domain.chat_models import Message

ROLE_LABELS = {"user": "User", "assistant": "Assistant", "system": "System"}

DEFAULT_DIRECTIVE = "/imagine"
DEFAULT_IMAGE_PROMPT = "A beautiful, detailed illustration"


def render_message(message: Message) -> str:
    label = ROLE_LABELS.get(message.role, "Assistant")
    body = message.text or ("[image]" if message.image_id else "")
    return f"{label}: {body}"


def render_prompt(messages: Iterable[Message], attached_image_url: Optional[str] = None) -> str:
    convo = "\n".join(render_message(m) for m in messages)
    prompt = convo + "\nAssistant:"
    if attached_image_url:
        prompt += f"\nUser attached image: {attached_image_url}"
    return prompt


def sanitize_reply(text: Optional[str]) -> str:
    if not text:
        return ""
    return (
        text.replace("\r\n", "\n")
        .replace("\t", "    ")
        .replace("...", "…")
        .replace("--", "—")
        .strip()
    )


def _directive_re(directive: str) -> re.Pattern[str]:
    # whole token only: "/imagined" and URL paths stay text
    return re.compile(r"(?<!\S)" + re.escape(directive) + r"(?!\w)", re.IGNORECASE)


def is_image_request(text: Optional[str], directive: str = DEFAULT_DIRECTIVE) -> bool:
    if not text or not directive:
        return False
    return _directive_re(directive).search(text) is not None


def extract_image_prompt(
    text: Optional[str],
    directive: str = DEFAULT_DIRECTIVE,
    default: str = DEFAULT_IMAGE_PROMPT,
) -> str:
    stripped = _directive_re(directive).sub("", text or "")
    # removing a mid-sentence token leaves doubled spaces
    stripped = re.sub(r"[ \t]{2,}", " ", stripped).strip()
    return stripped or default
