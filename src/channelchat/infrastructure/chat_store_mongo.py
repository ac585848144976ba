from __future__ import annotations

from datetime import UTC, datetime
import logging
import os
from typing import Any, Dict, List, Optional
import uuid

from ..domain.chat_models import Channel, Message
from ..domain.errors import NotFoundError
from .chat_store import DEFAULT_CHANNEL_NAME, InMemoryChatStore

LOG = logging.getLogger("channelchat.store")


class MongoChatStore:
    """Mongo-backed channel/message store.

    If Mongo is unreachable and CHANNELCHAT_REQUIRE_MONGO is not true,
    operations fall back to an internal in-memory store so dev and CI keep working.
    """

    def __init__(self) -> None:
        self._fallback = InMemoryChatStore()
        self._client = None
        self._channels = None
        self._messages = None
        try:
            from pymongo import ASCENDING, MongoClient

            mongo_url = os.getenv("MONGO_URL", "mongodb://localhost:27017")
            mongo_db = os.getenv("MONGO_DB", "channelchat")
            self._client = MongoClient(mongo_url, serverSelectionTimeoutMS=500)
            # Trigger server selection
            self._client.server_info()
            db = self._client[mongo_db]
            self._channels = db["channels"]
            self._messages = db["messages"]
            self._channels.create_index("channel_id", unique=True)
            self._messages.create_index("message_id", unique=True)
            self._messages.create_index([("channel_id", ASCENDING), ("created_at", ASCENDING)])
        except Exception as exc:
            LOG.warning("mongo_chat_store_unavailable", extra={"err": str(exc)})
            self._client = None
            self._channels = None
            self._messages = None

    def _use_fallback(self) -> bool:
        if self._channels is None or self._messages is None:
            if os.getenv("CHANNELCHAT_REQUIRE_MONGO", "false").lower() in ("1", "true", "yes"):
                raise RuntimeError("Mongo chat store required but not available")
            return True
        return False

    def _now_iso(self) -> str:
        return datetime.now(UTC).isoformat().replace("+00:00", "Z")

    def create_channel(self, name: Optional[str] = None) -> Channel:
        if self._use_fallback():
            return self._fallback.create_channel(name)
        doc = {
            "channel_id": uuid.uuid4().hex,
            "name": (name or "").strip() or DEFAULT_CHANNEL_NAME,
            "created_at": self._now_iso(),
        }
        self._channels.insert_one(doc)
        return self._to_channel(doc)

    def list_channels(self) -> List[Channel]:
        if self._use_fallback():
            return self._fallback.list_channels()
        cursor = self._channels.find({}).sort([("created_at", 1), ("_id", 1)])
        return [self._to_channel(doc) for doc in cursor]

    def get_channel(self, channel_id: str) -> Optional[Channel]:
        if self._use_fallback():
            return self._fallback.get_channel(channel_id)
        doc = self._channels.find_one({"channel_id": channel_id})
        if not doc:
            return None
        return self._to_channel(doc)

    def add_message(
        self,
        channel_id: str,
        role: str,
        text: str = "",
        image_id: Optional[str] = None,
        pending: bool = False,
    ) -> Message:
        if self._use_fallback():
            return self._fallback.add_message(channel_id, role, text, image_id=image_id, pending=pending)
        if not self._channels.find_one({"channel_id": channel_id}):
            raise NotFoundError("Channel not found")
        doc = {
            "message_id": uuid.uuid4().hex,
            "channel_id": channel_id,
            "role": role,
            "text": text or "",
            "image_id": image_id or None,
            "pending": bool(pending),
            "created_at": self._now_iso(),
        }
        self._messages.insert_one(doc)
        return self._to_message(doc)

    def get_message(self, message_id: str) -> Optional[Message]:
        if self._use_fallback():
            return self._fallback.get_message(message_id)
        doc = self._messages.find_one({"message_id": message_id})
        if not doc:
            return None
        return self._to_message(doc)

    def list_messages(self, channel_id: str) -> List[Message]:
        if self._use_fallback():
            return self._fallback.list_messages(channel_id)
        cursor = self._messages.find({"channel_id": channel_id}).sort([("created_at", 1), ("_id", 1)])
        return [self._to_message(doc) for doc in cursor]

    def recent_messages(self, channel_id: str, limit: int) -> List[Message]:
        if self._use_fallback():
            return self._fallback.recent_messages(channel_id, limit)
        if limit <= 0:
            return []
        cursor = (
            self._messages.find({"channel_id": channel_id})
            .sort([("created_at", -1), ("_id", -1)])
            .limit(limit)
        )
        docs = list(cursor)
        docs.reverse()
        return [self._to_message(doc) for doc in docs]

    def update_message(
        self,
        message_id: str,
        *,
        text: Optional[str] = None,
        image_id: Optional[str] = None,
        pending: Optional[bool] = None,
    ) -> Message:
        if self._use_fallback():
            return self._fallback.update_message(message_id, text=text, image_id=image_id, pending=pending)
        changes: Dict[str, Any] = {}
        if text is not None:
            changes["text"] = text
        if image_id is not None:
            changes["image_id"] = image_id
        if pending is not None:
            changes["pending"] = bool(pending)
        if not changes:
            current = self.get_message(message_id)
            if current is None:
                raise NotFoundError("Message not found")
            return current
        updated = self._messages.find_one_and_update(
            {"message_id": message_id},
            {"$set": changes},
            return_document=True,
        )
        if not updated:
            raise NotFoundError("Message not found")
        return self._to_message(updated)

    def _to_channel(self, doc: Dict[str, Any]) -> Channel:
        data = dict(doc)
        return Channel(
            channel_id=str(data.get("channel_id")),
            name=str(data.get("name") or DEFAULT_CHANNEL_NAME),
            created_at=str(data.get("created_at", self._now_iso())),
        )

    def _to_message(self, doc: Dict[str, Any]) -> Message:
        data = dict(doc)
        return Message(
            message_id=str(data.get("message_id")),
            channel_id=str(data.get("channel_id")),
            role=str(data.get("role", "user")),
            text=str(data.get("text") or ""),
            image_id=data.get("image_id") or None,
            pending=bool(data.get("pending", False)),
            created_at=str(data.get("created_at", self._now_iso())),
        )
