from fastapi.testclient import TestClient
import pytest

from src.channelchat.api.main import app
from src.channelchat.infrastructure.chat_store import get_chat_store
from src.channelchat.infrastructure.image_store import get_image_store
from src.channelchat.services import completion
from src.channelchat.services.completion import CompletionOrchestrator

from .utils import FakeBackend, ManualRunner


client = TestClient(app)


@pytest.fixture
def harness(monkeypatch):
    backend = FakeBackend(reply="pong")
    runner = ManualRunner()
    orch = CompletionOrchestrator(
        store=get_chat_store(),
        images=get_image_store(),
        backend=backend,
        runner=runner,
    )
    monkeypatch.setattr(completion, "_orchestrator", orch)
    return backend, runner


def _new_channel(prefix="/api", name="General"):
    r = client.post(f"{prefix}/channels", json={"name": name})
    assert r.status_code == 201
    return r.json()


def test_channels_create_and_list_on_both_prefixes():
    a = _new_channel("/api", "Alpha")
    b = _new_channel("", None)
    assert b["name"] == "New Channel"

    listed = client.get("/api/channels").json()
    assert [c["channel_id"] for c in listed] == [a["channel_id"], b["channel_id"]]
    assert client.get("/channels").json() == listed


def test_get_channel_with_messages_and_404():
    ch = _new_channel()
    r = client.get(f"/api/channels/{ch['channel_id']}")
    assert r.status_code == 200
    assert r.json()["channel"]["name"] == "General"
    assert r.json()["messages"] == []
    assert client.get("/api/channels/missing").status_code == 404


def test_send_returns_pending_placeholder_then_poll_sees_reply(harness):
    backend, runner = harness
    ch = _new_channel()

    r = client.post("/api/send", json={"channel_id": ch["channel_id"], "text": "ping"})
    assert r.status_code == 200
    body = r.json()
    assert body["user_message"]["text"] == "ping"
    assert body["assistant"]["pending"] is True
    assert body["assistant"]["text"] == ""
    assert backend.text_prompts == []

    msgs = client.get("/api/messages", params={"channel_id": ch["channel_id"]}).json()
    assert [m["pending"] for m in msgs] == [False, True]

    runner.run()

    msgs = client.get("/api/messages", params={"channel_id": ch["channel_id"]}).json()
    assert msgs[-1]["message_id"] == body["assistant"]["message_id"]
    assert msgs[-1]["pending"] is False
    assert msgs[-1]["text"] == "pong"


def test_send_with_attached_image_links_it_from_request_host(harness):
    backend, runner = harness
    ch = _new_channel()

    r = client.post("/api/send", json={"channel_id": ch["channel_id"], "image_id": "abc"})
    assert r.status_code == 200
    runner.run()

    assert backend.text_prompts[0].endswith("User attached image: http://testserver/api/images/abc")


@pytest.mark.parametrize(
    "payload,status",
    [
        ({"text": "hi"}, 400),
        ({"channel_id": "  ", "text": "hi"}, 400),
        ({"channel_id": "nope", "text": "hi"}, 404),
    ],
)
def test_send_rejects_bad_channel(harness, payload, status):
    assert client.post("/api/send", json=payload).status_code == status
    assert harness[1].calls == []


def test_send_rejects_empty_turn(harness):
    ch = _new_channel()
    r = client.post("/api/send", json={"channel_id": ch["channel_id"], "text": "   "})
    assert r.status_code == 400
    assert client.get("/api/messages", params={"channel_id": ch["channel_id"]}).json() == []


def test_messages_requires_known_channel():
    assert client.get("/api/messages").status_code == 400
    assert client.get("/api/messages", params={"channel_id": "missing"}).status_code == 404


def test_health_and_root():
    for path in ("/health", "/api/health"):
        r = client.get(path)
        assert r.status_code == 200
        assert r.json()["status"] == "ok"
    assert client.get("/").json()["name"] == "channelchat API"
