import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _reset_singletons(monkeypatch):
    """Each test gets fresh in-memory stores and no live orchestrator."""
    from src.channelchat.infrastructure import chat_store, image_store
    from src.channelchat.services import completion

    monkeypatch.setattr(chat_store, "_store", None, raising=False)
    monkeypatch.setattr(image_store, "_image_store", None, raising=False)
    monkeypatch.setattr(completion, "_orchestrator", None, raising=False)
    for var in (
        "CHANNELCHAT_CHAT_STORE_IMPL",
        "CHANNELCHAT_IMAGE_STORE_IMPL",
        "DB_MODE",
        "CHANNELCHAT_IMAGE_DIRECTIVE",
        "CHANNELCHAT_CONTEXT_WINDOW",
        "CHANNELCHAT_MODEL_PROVIDER",
        "GEMINI_API_KEY",
    ):
        monkeypatch.delenv(var, raising=False)
