from __future__ import annotations

from typing import List
from fastapi import APIRouter, HTTPException, status

from ...domain.chat_models import Channel, ChannelCreate, ChannelWithMessages
from ...infrastructure.chat_store import get_chat_store


router = APIRouter(prefix="/channels", tags=["channels"])


@router.get("", response_model=List[Channel])
def list_channels() -> List[Channel]:
    return get_chat_store().list_channels()


@router.post("", response_model=Channel, status_code=status.HTTP_201_CREATED)
def create_channel(req: ChannelCreate) -> Channel:
    return get_chat_store().create_channel(req.name)


@router.get("/{channel_id}", response_model=ChannelWithMessages)
def get_channel(channel_id: str) -> ChannelWithMessages:
    store = get_chat_store()
    channel = store.get_channel(channel_id)
    if not channel:
        raise HTTPException(status_code=404, detail="Channel not found")
    return ChannelWithMessages(channel=channel, messages=store.list_messages(channel_id))
