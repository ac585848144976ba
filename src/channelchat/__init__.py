"""channelchat: channel-based chat with deferred assistant replies.

Importing the package sets up the ``channelchat`` logger tree once.
``CHANNELCHAT_LOG_LEVEL`` controls everything; ``CHANNELCHAT_LLM_LOG_LEVEL``
can turn the generation adapters up or down on their own.
"""

import logging
import os

LOG_FORMAT = "[CHANNELCHAT][%(levelname)s] %(name)s: %(message)s"


def _env_level(var: str, default: int) -> int:
    raw = (os.getenv(var) or "").strip().upper()
    if not raw:
        return default
    value = logging.getLevelName(raw)
    return value if isinstance(value, int) else default


def _configure_logging() -> None:
    root = logging.getLogger("channelchat")
    base_level = _env_level("CHANNELCHAT_LOG_LEVEL", logging.INFO)
    root.setLevel(base_level)
    # re-imports (tests, reloaders) must not stack handlers
    if not any(getattr(h, "_channelchat", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._channelchat = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    logging.getLogger("channelchat.llm").setLevel(_env_level("CHANNELCHAT_LLM_LOG_LEVEL", base_level))


_configure_logging()
