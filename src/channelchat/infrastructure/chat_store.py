from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from threading import RLock
from typing import Dict, List, Optional, Protocol
import os
import uuid

from ..domain.chat_models import Channel, Message
from ..domain.errors import NotFoundError


class ChatStore(Protocol):
    def create_channel(self, name: Optional[str] = None) -> Channel: ...

    def list_channels(self) -> List[Channel]: ...

    def get_channel(self, channel_id: str) -> Optional[Channel]: ...

    def add_message(
        self,
        channel_id: str,
        role: str,
        text: str = "",
        image_id: Optional[str] = None,
        pending: bool = False,
    ) -> Message: ...

    def get_message(self, message_id: str) -> Optional[Message]: ...

    def list_messages(self, channel_id: str) -> List[Message]: ...

    def recent_messages(self, channel_id: str, limit: int) -> List[Message]: ...

    def update_message(
        self,
        message_id: str,
        *,
        text: Optional[str] = None,
        image_id: Optional[str] = None,
        pending: Optional[bool] = None,
    ) -> Message: ...


DEFAULT_CHANNEL_NAME = "New Channel"


@dataclass
class _Channel:
    channel_id: str
    name: str
    created_at: str


@dataclass
class _Message:
    message_id: str
    channel_id: str
    role: str
    text: str
    image_id: Optional[str]
    pending: bool
    created_at: str


class InMemoryChatStore:
    def __init__(self) -> None:
        self._channels: Dict[str, _Channel] = {}
        self._messages: Dict[str, List[_Message]] = {}
        self._by_id: Dict[str, _Message] = {}
        self._lock = RLock()

    def _now_iso(self) -> str:
        return datetime.now(UTC).isoformat().replace("+00:00", "Z")

    def _channel_model(self, channel: _Channel) -> Channel:
        return Channel(**channel.__dict__)

    def _message_model(self, message: _Message) -> Message:
        return Message(**message.__dict__)

    def create_channel(self, name: Optional[str] = None) -> Channel:
        with self._lock:
            cid = uuid.uuid4().hex
            channel = _Channel(
                channel_id=cid,
                name=(name or "").strip() or DEFAULT_CHANNEL_NAME,
                created_at=self._now_iso(),
            )
            self._channels[cid] = channel
            self._messages[cid] = []
            return self._channel_model(channel)

    def list_channels(self) -> List[Channel]:
        with self._lock:
            # dict preserves insertion order, which is creation order
            return [self._channel_model(c) for c in self._channels.values()]

    def get_channel(self, channel_id: str) -> Optional[Channel]:
        with self._lock:
            channel = self._channels.get(channel_id)
            if not channel:
                return None
            return self._channel_model(channel)

    def add_message(
        self,
        channel_id: str,
        role: str,
        text: str = "",
        image_id: Optional[str] = None,
        pending: bool = False,
    ) -> Message:
        with self._lock:
            if channel_id not in self._channels:
                raise NotFoundError("Channel not found")
            msg = _Message(
                message_id=uuid.uuid4().hex,
                channel_id=channel_id,
                role=role,
                text=text or "",
                image_id=image_id or None,
                pending=bool(pending),
                created_at=self._now_iso(),
            )
            self._messages.setdefault(channel_id, []).append(msg)
            self._by_id[msg.message_id] = msg
            return self._message_model(msg)

    def get_message(self, message_id: str) -> Optional[Message]:
        with self._lock:
            msg = self._by_id.get(message_id)
            if not msg:
                return None
            return self._message_model(msg)

    def list_messages(self, channel_id: str) -> List[Message]:
        with self._lock:
            return [self._message_model(m) for m in self._messages.get(channel_id, [])]

    def recent_messages(self, channel_id: str, limit: int) -> List[Message]:
        with self._lock:
            msgs = self._messages.get(channel_id, [])
            if limit <= 0:
                return []
            return [self._message_model(m) for m in msgs[-limit:]]

    def update_message(
        self,
        message_id: str,
        *,
        text: Optional[str] = None,
        image_id: Optional[str] = None,
        pending: Optional[bool] = None,
    ) -> Message:
        with self._lock:
            msg = self._by_id.get(message_id)
            if not msg:
                raise NotFoundError("Message not found")
            if text is not None:
                msg.text = text
            if image_id is not None:
                msg.image_id = image_id
            if pending is not None:
                msg.pending = bool(pending)
            return self._message_model(msg)


_store: ChatStore | None = None


def get_chat_store() -> ChatStore:
    global _store
    if _store is not None:
        return _store
    impl = os.getenv("CHANNELCHAT_CHAT_STORE_IMPL", "memory").lower()
    if impl == "mongo" or os.getenv("DB_MODE", "").lower() == "mongo":
        from .chat_store_mongo import MongoChatStore  # local import to avoid circular dependency

        _store = MongoChatStore()
        return _store
    _store = InMemoryChatStore()
    return _store
