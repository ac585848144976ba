from __future__ import annotations

from typing import List, Optional
from fastapi import APIRouter, HTTPException, Query, Request

from ...domain.chat_models import Message, TurnAccepted, TurnCreate
from ...domain.errors import NotFoundError, ValidationError
from ...infrastructure.chat_store import get_chat_store
from ...services.completion import get_orchestrator


router = APIRouter(tags=["messages"])


@router.get("/messages", response_model=List[Message])
def list_messages(channel_id: Optional[str] = Query(None)) -> List[Message]:
    """Messages of a channel, oldest first. Clients poll this while a reply is pending."""
    if not channel_id:
        raise HTTPException(status_code=400, detail="missing channel_id")
    store = get_chat_store()
    if not store.get_channel(channel_id):
        raise HTTPException(status_code=404, detail="Channel not found")
    return store.list_messages(channel_id)


@router.post("/send", response_model=TurnAccepted)
def send_turn(req: TurnCreate, request: Request) -> TurnAccepted:
    if not (req.text or "").strip() and not req.image_id:
        raise HTTPException(status_code=400, detail="Enter text or attach an image")
    try:
        user_msg, placeholder = get_orchestrator().submit_turn(
            req.channel_id,
            text=req.text or "",
            image_id=req.image_id,
            public_base_url=str(request.base_url),
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    # Returned before generation starts; the placeholder is still pending.
    return TurnAccepted(user_message=user_msg, assistant=placeholder)
