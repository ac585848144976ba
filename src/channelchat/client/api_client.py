from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..domain.chat_models import Channel, Message, TurnAccepted

LOG = logging.getLogger("channelchat.client")


class ChatApiError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ChatApiClient:
    """Thin requests-based client for the channelchat HTTP API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        session: Optional[requests.Session] = None,
        timeout: Tuple[float, float] = (3.0, 15.0),
        prefix: str = "/api",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.prefix = prefix.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}{self.prefix}{path}"

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        resp = self._session.request(method, self._url(path), timeout=self._timeout, **kwargs)
        if resp.status_code >= 400:
            detail = ""
            try:
                detail = str(resp.json().get("detail", ""))
            except ValueError:
                detail = resp.text[:200]
            raise ChatApiError(f"{method} {path} failed: {resp.status_code} {detail}".strip(), resp.status_code)
        return resp.json()

    def list_channels(self) -> List[Channel]:
        return [Channel(**c) for c in self._request("GET", "/channels")]

    def create_channel(self, name: Optional[str] = None) -> Channel:
        return Channel(**self._request("POST", "/channels", json={"name": name}))

    def list_messages(self, channel_id: str) -> List[Message]:
        data = self._request("GET", "/messages", params={"channel_id": channel_id})
        return [Message(**m) for m in data]

    def send_turn(self, channel_id: str, text: str = "", image_id: Optional[str] = None) -> TurnAccepted:
        payload: Dict[str, Any] = {"channel_id": channel_id, "text": text, "image_id": image_id}
        return TurnAccepted(**self._request("POST", "/send", json=payload))
