from __future__ import annotations

from typing import List, Literal, Optional
from pydantic import BaseModel, Field


Role = Literal["system", "user", "assistant"]


class ChannelCreate(BaseModel):
    name: Optional[str] = None


class Channel(BaseModel):
    channel_id: str
    name: str
    created_at: str


class Message(BaseModel):
    message_id: str
    channel_id: str
    role: Role
    text: str = ""
    image_id: Optional[str] = None
    pending: bool = False
    created_at: str


class TurnCreate(BaseModel):
    channel_id: Optional[str] = None
    text: Optional[str] = Field(default=None, max_length=20000)
    image_id: Optional[str] = None


class TurnAccepted(BaseModel):
    user_message: Message
    assistant: Message


class ChannelWithMessages(BaseModel):
    channel: Channel
    messages: List[Message]
