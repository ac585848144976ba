from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from threading import RLock
from typing import Dict, Optional, Protocol
import uuid

LOG = logging.getLogger("channelchat.store")


@dataclass
class StoredImage:
    image_id: str
    filename: str
    content_type: str
    data: bytes
    created_at: datetime


class ImageStore(Protocol):
    def save_image(self, data: bytes, content_type: str, filename: Optional[str] = None) -> StoredImage: ...
    def get_image(self, image_id: str) -> Optional[StoredImage]: ...


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _default_filename(image_id: str, content_type: str) -> str:
    ext = (content_type or "").split("/")[-1] or "bin"
    return f"generated-{image_id[:8]}.{ext}"


class InMemoryImageStore:
    def __init__(self) -> None:
        self._images: Dict[str, StoredImage] = {}
        self._lock = RLock()

    def save_image(self, data: bytes, content_type: str, filename: Optional[str] = None) -> StoredImage:
        with self._lock:
            image_id = uuid.uuid4().hex
            img = StoredImage(
                image_id=image_id,
                filename=filename or _default_filename(image_id, content_type),
                content_type=content_type or "application/octet-stream",
                data=bytes(data),
                created_at=_utc_now(),
            )
            self._images[image_id] = img
            return img

    def get_image(self, image_id: str) -> Optional[StoredImage]:
        with self._lock:
            return self._images.get(image_id)


class MongoImageStore:
    """Mongo-backed image store keeping bytes in GridFS.

    Falls back to memory when Mongo cannot be reached, like the chat store.
    """

    def __init__(self) -> None:
        self._fallback = InMemoryImageStore()
        self._fs = None
        self._meta = None
        try:
            from pymongo import MongoClient
            import gridfs

            mongo_url = os.getenv("MONGO_URL", "mongodb://localhost:27017")
            mongo_db = os.getenv("MONGO_DB", "channelchat")
            client = MongoClient(mongo_url, serverSelectionTimeoutMS=500)
            client.server_info()
            db = client[mongo_db]
            self._fs = gridfs.GridFS(db)
            self._meta = db["images"]
            self._meta.create_index("image_id", unique=True)
        except Exception as exc:
            LOG.warning("mongo_image_store_unavailable", extra={"err": str(exc)})
            self._fs = None
            self._meta = None

    def _use_fallback(self) -> bool:
        return self._fs is None or self._meta is None

    def save_image(self, data: bytes, content_type: str, filename: Optional[str] = None) -> StoredImage:
        if self._use_fallback():
            return self._fallback.save_image(data, content_type, filename)
        image_id = uuid.uuid4().hex
        name = filename or _default_filename(image_id, content_type)
        blob_id = self._fs.put(bytes(data), filename=name, content_type=content_type)
        now = _utc_now()
        self._meta.insert_one(
            {
                "image_id": image_id,
                "filename": name,
                "content_type": content_type,
                "blob_id": blob_id,
                "created_at": now,
            }
        )
        return StoredImage(image_id=image_id, filename=name, content_type=content_type, data=bytes(data), created_at=now)

    def get_image(self, image_id: str) -> Optional[StoredImage]:
        if self._use_fallback():
            return self._fallback.get_image(image_id)
        doc = self._meta.find_one({"image_id": image_id})
        if not doc:
            return None
        grid_out = self._fs.get(doc.get("blob_id"))
        created = doc.get("created_at")
        return StoredImage(
            image_id=image_id,
            filename=str(doc.get("filename")),
            content_type=str(doc.get("content_type") or "application/octet-stream"),
            data=grid_out.read(),
            created_at=created if isinstance(created, datetime) else _utc_now(),
        )


_image_store: ImageStore | None = None


def get_image_store() -> ImageStore:
    global _image_store
    if _image_store is not None:
        return _image_store
    impl = os.getenv("CHANNELCHAT_IMAGE_STORE_IMPL", "memory").lower()
    if impl == "mongo" or os.getenv("DB_MODE", "").lower() == "mongo":
        _image_store = MongoImageStore()
        return _image_store
    _image_store = InMemoryImageStore()
    return _image_store
