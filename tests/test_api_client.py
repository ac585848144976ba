import pytest

from src.channelchat.client.api_client import ChatApiClient, ChatApiError

TS = "2024-01-01T00:00:00Z"


class _Resp:
    def __init__(self, status, payload=None, text=""):
        self.status_code = status
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _Session:
    def __init__(self, resp):
        self.resp = resp
        self.calls = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append((method, url, kwargs))
        return self.resp


def _msg(mid, pending=False):
    return {"message_id": mid, "channel_id": "c1", "role": "assistant", "text": "", "pending": pending, "created_at": TS}


def test_send_turn_posts_payload_and_parses_reply():
    session = _Session(_Resp(200, {"user_message": {**_msg("u"), "role": "user"}, "assistant": _msg("a", True)}))
    client = ChatApiClient("http://chat.local/", session=session)

    accepted = client.send_turn("c1", text="hi", image_id="img")

    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "http://chat.local/api/send")
    assert kwargs["json"] == {"channel_id": "c1", "text": "hi", "image_id": "img"}
    assert accepted.assistant.pending is True


def test_list_messages_passes_channel_param():
    session = _Session(_Resp(200, [_msg("a")]))
    msgs = ChatApiClient(session=session, prefix="").list_messages("c1")
    method, url, kwargs = session.calls[0]
    assert url == "http://localhost:8000/messages"
    assert kwargs["params"] == {"channel_id": "c1"}
    assert msgs[0].message_id == "a"


def test_errors_carry_status_and_detail():
    client = ChatApiClient(session=_Session(_Resp(404, {"detail": "Channel not found"})))
    with pytest.raises(ChatApiError) as ei:
        client.list_messages("nope")
    assert ei.value.status_code == 404
    assert "Channel not found" in str(ei.value)

    client = ChatApiClient(session=_Session(_Resp(502, None, text="Bad gateway")))
    with pytest.raises(ChatApiError) as ei:
        client.list_channels()
    assert ei.value.status_code == 502
    assert "Bad gateway" in str(ei.value)
