import base64

import pytest

import publish_github
from publish_github import PublishError, publish
from settings import Settings

CFG = Settings(github_token="tok", github_repository="me/cal", github_folder="calendars")


class _Resp:
    def __init__(self, status, payload=None, text=""):
        self.status_code = status
        self.ok = status < 400
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


def test_publish_updates_existing_file(monkeypatch):
    calls = []

    def fake_request(method, url, headers=None, timeout=None, **kwargs):
        calls.append((method, url, kwargs))
        if method == "GET":
            return _Resp(200, {"sha": "abc123"})
        return _Resp(200)

    monkeypatch.setattr(publish_github.requests, "request", fake_request)
    url = publish(CFG, "feed.ics", "BEGIN:VCALENDAR")

    assert url == "https://raw.githubusercontent.com/me/cal/main/calendars/feed.ics"
    method, api_url, kwargs = calls[-1]
    assert method == "PUT"
    assert api_url.endswith("/repos/me/cal/contents/calendars/feed.ics")
    assert kwargs["json"]["sha"] == "abc123"
    assert base64.b64decode(kwargs["json"]["content"]) == b"BEGIN:VCALENDAR"


def test_publish_creates_new_file(monkeypatch):
    def fake_request(method, url, headers=None, timeout=None, **kwargs):
        if method == "GET":
            return _Resp(404)
        assert "sha" not in kwargs["json"]
        return _Resp(201)

    monkeypatch.setattr(publish_github.requests, "request", fake_request)
    publish(CFG, "feed.ics", "x")


def test_publish_raises_on_api_error(monkeypatch):
    monkeypatch.setattr(publish_github.requests, "request",
                        lambda method, url, **kw: _Resp(404) if method == "GET" else _Resp(422, text="bad"))
    with pytest.raises(PublishError):
        publish(CFG, "feed.ics", "x")


def test_publish_needs_credentials():
    with pytest.raises(PublishError):
        publish(Settings(), "feed.ics", "x")
