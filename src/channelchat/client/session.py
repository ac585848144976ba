from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Callable, List, Optional

from ..domain.chat_models import Channel, Message
from ..domain.errors import ValidationError
from .api_client import ChatApiClient
from .poller import CompletionPoller, PollHandle

LOG = logging.getLogger("channelchat.client")


@dataclass
class ChatViewState:
    """What the UI currently shows and has staged for the next send."""

    current_channel: Optional[Channel] = None
    channels: List[Channel] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)
    staged_image_id: Optional[str] = None
    selected_text: Optional[str] = None
    draft: str = ""


class ChatSession:
    """Drives one client view: channel selection, composing, sending and polling."""

    def __init__(
        self,
        client: ChatApiClient,
        poller: Optional[CompletionPoller] = None,
        state: Optional[ChatViewState] = None,
        on_render: Optional[Callable[[ChatViewState], None]] = None,
    ) -> None:
        self.client = client
        self.poller = poller or CompletionPoller(client.list_messages)
        self.state = state or ChatViewState()
        self._on_render = on_render

    def _render(self) -> None:
        if self._on_render is not None:
            self._on_render(self.state)

    def load_channels(self) -> List[Channel]:
        self.state.channels = self.client.list_channels()
        if self.state.current_channel is None and self.state.channels:
            self.select_channel(self.state.channels[0])
        else:
            self._render()
        return self.state.channels

    def create_channel(self, name: Optional[str] = None) -> Channel:
        channel = self.client.create_channel(name)
        self.load_channels()
        return channel

    def select_channel(self, channel: Channel) -> None:
        self.state.current_channel = channel
        self.load_messages(channel.channel_id)

    def load_messages(self, channel_id: Optional[str] = None) -> List[Message]:
        channel_id = channel_id or (self.state.current_channel.channel_id if self.state.current_channel else None)
        if not channel_id:
            return []
        messages = self.client.list_messages(channel_id)
        # a poll can finish after the user switched channels
        if self.state.current_channel and self.state.current_channel.channel_id == channel_id:
            self.state.messages = messages
            self._render()
        return messages

    def stage_image(self, image_id: str) -> None:
        self.state.staged_image_id = image_id

    def clear_staged_image(self) -> None:
        self.state.staged_image_id = None

    def select_message(self, message: Message) -> bool:
        """Remember a message's text and pre-fill a follow-up question with it."""
        self.state.selected_text = message.text or ""
        if not self.state.selected_text:
            return False
        self.state.draft = f'Follow up: "{self.state.selected_text}"\n\n'
        return True

    def send(self, text: Optional[str] = None) -> Optional[PollHandle]:
        channel = self.state.current_channel
        if channel is None:
            raise ValidationError("Choose a channel first")
        body = (self.state.draft if text is None else text).strip()
        if not body and not self.state.staged_image_id:
            raise ValidationError("Enter text or attach an image")

        accepted = self.client.send_turn(channel.channel_id, text=body, image_id=self.state.staged_image_id)
        self.load_messages(channel.channel_id)

        handle = None
        if accepted.assistant.pending:
            handle = self.poller.await_completion(
                channel.channel_id,
                accepted.assistant.message_id,
                on_done=lambda: self.load_messages(channel.channel_id),
            )
        self.state.draft = ""
        self.clear_staged_image()
        return handle
