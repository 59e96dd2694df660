import json

import pytest
import requests

from revente.infra.remote import EventStream, RemoteBackend, identity_error, iter_sse
from revente.utils.exceptions import (
    AuthError, EmailInUse, PermissionDenied, StorageError, Unavailable, WeakPassword,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, lines=()):
        self.status_code = status_code
        self._payload = payload
        self._lines = list(lines)
        self.text = json.dumps(payload) if payload is not None else ""
        self.closed = False

    def json(self):
        return self._payload

    def iter_lines(self, decode_unicode=False):
        return iter(self._lines)

    def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def _next(self):
        r = self.responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return r

    def request(self, method, url, **kw):
        self.calls.append((method, url, kw))
        return self._next()

    def post(self, url, **kw):
        self.calls.append(("POST", url, kw))
        return self._next()


def _backend(*responses, token=None):
    return RemoteBackend("key", "https://db.example/", "bucket.example", timeout=3,
                         session=FakeSession(*responses), token_provider=lambda: token)


def test_push_builds_rest_url_with_auth():
    be = _backend(FakeResponse(200, {"name": "-Nabc"}), token="tok")
    assert be.push("users/u1/produits", {"nom": "A"}) == "-Nabc"
    method, url, kw = be.http.calls[0]
    assert method == "POST"
    assert url == "https://db.example/users/u1/produits.json"
    assert kw["params"] == {"auth": "tok"}
    assert kw["json"] == {"nom": "A"}
    assert kw["timeout"] == 3


@pytest.mark.parametrize("response, error", [
    (requests.ConnectionError("down"), Unavailable),
    (requests.Timeout("slow"), Unavailable),
    (FakeResponse(503), Unavailable),
    (FakeResponse(401), PermissionDenied),
    (FakeResponse(403), PermissionDenied),
])
def test_http_failures_map_to_storage_errors(response, error):
    with pytest.raises(error):
        _backend(response).get("users/u1/produits")


def test_other_client_errors_are_plain_storage_errors():
    with pytest.raises(StorageError) as exc:
        _backend(FakeResponse(400, {"error": "bad"})).put("x", {})
    assert not isinstance(exc.value, (Unavailable, PermissionDenied))


def test_identity_error_codes():
    assert isinstance(identity_error({"error": {"message": "WEAK_PASSWORD : Password should be at least 6"}}),
                      WeakPassword)
    assert type(identity_error({"error": {"message": "SOMETHING_NEW"}})) is AuthError
    assert type(identity_error("garbage")) is AuthError


def test_sign_up_maps_provider_error():
    be = _backend(FakeResponse(400, {"error": {"message": "EMAIL_EXISTS"}}))
    with pytest.raises(EmailInUse):
        be.sign_up("a@example.com", "secret1")
    _, url, kw = be.http.calls[0]
    assert url.endswith("/accounts:signUp")
    assert kw["params"] == {"key": "key"}


def test_upload_returns_download_url():
    be = _backend(FakeResponse(200, {"name": "users/u1/images/a.jpg", "downloadTokens": "t1,t2"}))
    url = be.upload("users/u1/images/a.jpg", b"jpeg", "image/jpeg")
    assert url == ("https://firebasestorage.googleapis.com/v0/b/bucket.example/o/"
                   "users%2Fu1%2Fimages%2Fa.jpg?alt=media&token=t1")


def test_iter_sse_groups_events():
    lines = [
        "event: put",
        'data: {"path": "/", "data": null}',
        "",
        ": keep-alive",
        "event: keep-alive",
        "data: null",
        "",
        "event: patch",
        'data: {"path": "/a",',
        'data:  "data": {"x": 1}}',
    ]
    events = list(iter_sse(lines))
    assert [e for e, _ in events] == ["put", "keep-alive", "patch"]
    assert json.loads(events[2][1]) == {"path": "/a", "data": {"x": 1}}


def test_event_stream_forwards_put_and_patch():
    resp = FakeResponse(200, lines=[
        "event: put", 'data: {"path": "/", "data": {"a": {"nom": "A"}}}', "",
        "event: keep-alive", "data: null", "",
        "event: patch", 'data: {"path": "/a", "data": {"nom": "B"}}', "",
        "event: cancel", "data: permission denied", "",
        "event: put", 'data: {"path": "/", "data": null}', "",
    ])
    be = _backend(resp)
    seen = []
    EventStream(be, "users/u1/produits", lambda kind, payload: seen.append((kind, payload)))._run()
    assert seen == [
        ("put", {"path": "/", "data": {"a": {"nom": "A"}}}),
        ("patch", {"path": "/a", "data": {"nom": "B"}}),
    ]
    assert resp.closed
    assert be.http.calls[0][2]["headers"] == {"Accept": "text/event-stream"}


def test_event_stream_survives_failing_subscriber(caplog):
    resp = FakeResponse(200, lines=[
        "event: put", 'data: {"path": "/", "data": {"a": {"nom": "A"}}}', "",
        "event: patch", "data: {pas du json", "",
        "event: patch", 'data: {"path": "/a", "data": {"nom": "B"}}', "",
    ])
    seen = []

    def on_event(kind, payload):
        seen.append(kind)
        if kind == "put":
            raise KeyError("data")

    with caplog.at_level("WARNING", logger="revente"):
        EventStream(_backend(resp), "users/u1/produits", on_event)._run()
    assert seen == ["put", "patch"]
    assert resp.closed
    assert "erreur dans l'abonné" in caplog.text
    assert "illisible" in caplog.text
