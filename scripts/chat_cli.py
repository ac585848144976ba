"""
Terminal chat against a running channelchat server.

Each line you type is sent to the current channel; the reply is printed when
the poller sees the placeholder resolve. Lines starting with ``:`` are
commands: ``:channels``, ``:new <name>``, ``:use <n>``, ``:image <id>``,
``:quit``.

Run:
  uvicorn src.channelchat.api.main:app
  python scripts/chat_cli.py --base-url http://localhost:8000
"""
from __future__ import annotations

from pathlib import Path
import argparse
import sys

# Ensure repository root is on sys.path so 'src' package can be imported when
# executing this script from the scripts/ directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from src.channelchat.client.api_client import ChatApiClient, ChatApiError
from src.channelchat.client.poller import PollOutcome
from src.channelchat.client.session import ChatSession, ChatViewState
from src.channelchat.domain.errors import ValidationError


def _print_messages(state: ChatViewState) -> None:
    if not state.messages:
        return
    last = state.messages[-1]
    if last.role == "assistant" and not last.pending:
        suffix = f" [image {last.image_id}]" if last.image_id else ""
        print(f"Assistant: {last.text}{suffix}")


def _handle_command(session: ChatSession, line: str) -> bool:
    cmd, _, arg = line[1:].partition(" ")
    if cmd == "quit":
        return False
    if cmd == "channels":
        for idx, ch in enumerate(session.load_channels()):
            marker = "*" if session.state.current_channel and ch.channel_id == session.state.current_channel.channel_id else " "
            print(f"{marker} {idx}: {ch.name}")
    elif cmd == "new":
        ch = session.create_channel(arg or None)
        session.select_channel(ch)
        print(f"Created and switched to {ch.name}")
    elif cmd == "use":
        channels = session.state.channels or session.load_channels()
        session.select_channel(channels[int(arg)])
        print(f"Switched to {session.state.current_channel.name}")
    elif cmd == "image":
        session.stage_image(arg.strip())
        print("Image staged for the next message")
    else:
        print(f"Unknown command: {cmd}")
    return True


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--base-url", default="http://localhost:8000")
    args = parser.parse_args()

    session = ChatSession(ChatApiClient(args.base_url), on_render=_print_messages)
    if not session.load_channels():
        session.select_channel(session.create_channel("General"))
    print(f"Channel: {session.state.current_channel.name}  (:quit to exit)")

    for raw in sys.stdin:
        line = raw.rstrip("\n")
        try:
            if line.startswith(":"):
                if not _handle_command(session, line):
                    break
                continue
            handle = session.send(line)
            if handle is not None and handle.wait() == PollOutcome.GAVE_UP:
                print("(no reply yet; it will show up the next time this channel loads)")
        except (ValidationError, ChatApiError, IndexError, ValueError) as exc:
            print(f"! {exc}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
