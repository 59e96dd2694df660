"""Fixtures partagées : contexte local sur disque temporaire, faux backend distant."""

from __future__ import annotations

import itertools
import threading

import pytest

from revente.core.context import build_context
from revente.infra.db_interface import DB, SlotStorage
from revente.utils.config import config_from_dict


def make_config(tmp_path, **overrides):
    data = {
        "database_path": str(tmp_path / "data" / "revente.db"),
        "paths": {
            "event_log_dir": str(tmp_path / "logs"),
            "photos_dir": str(tmp_path / "photos"),
            "exports_dir": str(tmp_path / "exports"),
        },
        "security": {"secret_key": "test-secret"},
    }
    data.update(overrides)
    return config_from_dict(data)


@pytest.fixture
def cfg(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
def storage():
    return SlotStorage(DB(":memory:"))


@pytest.fixture
def ctx(cfg):
    return build_context(cfg)


class FakeStream:
    def __init__(self, backend, path, on_event):
        self.backend = backend
        self.path = path
        self.on_event = on_event
        self.closed = False

    def close(self):
        self.closed = True
        if self in self.backend.streams:
            self.backend.streams.remove(self)


class FakeBackend:
    """
    Arbre JSON en mémoire avec la sémantique get/push/put/patch/delete de la
    base distante ; les abonnés reçoivent les événements put/patch de façon synchrone.
    """

    def __init__(self):
        self.tree: dict = {}
        self.streams: list = []
        self.uploads: dict = {}
        self.users: dict = {}
        self.fail_paths: set = set()
        self.token_provider = None
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    @staticmethod
    def _parts(path):
        return [p for p in path.strip("/").split("/") if p]

    def _node(self, parts, create=False):
        node = self.tree
        for p in parts:
            if not isinstance(node, dict):
                return None
            if p not in node:
                if not create:
                    return None
                node[p] = {}
            node = node[p]
        return node

    def _check(self, path):
        from revente.utils.exceptions import Unavailable

        if path in self.fail_paths:
            raise Unavailable()

    def _emit(self, kind, path, data):
        parts = self._parts(path)
        for s in list(self.streams):
            base = self._parts(s.path)
            if parts[:len(base)] == base:
                rel = "/" + "/".join(parts[len(base):])
                s.on_event(kind, {"path": rel, "data": data})

    def get(self, path):
        self._check(path)
        with self._lock:
            return self._node(self._parts(path))

    def push(self, path, data):
        self._check(path)
        with self._lock:
            key = f"-K{next(self._ids):04d}"
            self.put(f"{path}/{key}", data)
        return key

    def put(self, path, data):
        self._check(path)
        parts = self._parts(path)
        with self._lock:
            parent = self._node(parts[:-1], create=True)
            parent[parts[-1]] = data
            self._emit("put", path, data)

    def patch(self, path, data):
        self._check(path)
        with self._lock:
            node = self._node(self._parts(path), create=True)
            node.update(data)
            self._emit("patch", path, data)

    def delete(self, path):
        self._check(path)
        parts = self._parts(path)
        with self._lock:
            parent = self._node(parts[:-1])
            if isinstance(parent, dict):
                parent.pop(parts[-1], None)
            self._emit("put", path, None)

    def listen(self, path, on_event):
        stream = FakeStream(self, path, on_event)
        self.streams.append(stream)
        on_event("put", {"path": "/", "data": self._node(self._parts(path))})
        return stream

    # —— identité —— #
    def _auth_payload(self, uid, email=""):
        return {"localId": uid, "email": email, "idToken": f"tok-{uid}",
                "refreshToken": f"ref-{uid}", "expiresIn": "3600"}

    def sign_up(self, email, password):
        from revente.utils.exceptions import EmailInUse

        if email in self.users:
            raise EmailInUse()
        uid = f"uid{next(self._ids)}"
        self.users[email] = (uid, password)
        return self._auth_payload(uid, email)

    def sign_up_anonymous(self):
        return self._auth_payload(f"anon{next(self._ids)}")

    def sign_in(self, email, password):
        from revente.utils.exceptions import UserNotFound, WrongPassword

        if email not in self.users:
            raise UserNotFound()
        uid, pw = self.users[email]
        if pw != password:
            raise WrongPassword()
        return self._auth_payload(uid, email)

    def refresh(self, refresh_token):
        return {"id_token": "tok-refreshed", "refresh_token": refresh_token, "expires_in": "3600"}

    def upload(self, name, data, content_type):
        self.uploads[name] = (data, content_type)
        return f"https://files.example/{name}?alt=media"


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def remote_ctx(cfg, backend):
    return build_context(cfg, remote=backend)


CHAISE = {
    "nom": "Chaise",
    "prixAchat": "10",
    "prixVente": "25",
    "quantite": "2",
    "fraisPort": "2",
    "commissionPlateforme": "1",
    "fraisEmballage": "0",
    "fraisAnnexes": "0",
}
