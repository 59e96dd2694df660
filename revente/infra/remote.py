# infra/remote.py
"""
Client REST du backend hébergé : base documentaire JSON (protocole REST
Realtime Database, flux server-sent events), fournisseur d'identité
(Identity Toolkit) et stockage de fichiers.

Les erreurs HTTP sont traduites dans la taxonomie applicative :
réseau / 5xx -> Unavailable, 401 / 403 -> PermissionDenied.
"""
from __future__ import annotations
import json
import threading
from typing import Callable, Optional
from urllib.parse import quote

import requests

from revente.utils.logging import get_logger
from revente.utils.exceptions import (
    StorageError, Unavailable, PermissionDenied,
    AuthError, EmailInUse, WeakPassword, InvalidEmail, UserNotFound,
    WrongPassword, TooManyAttempts,
)

logger = get_logger("infra.remote")

IDENTITY_URL = "https://identitytoolkit.googleapis.com/v1"
TOKEN_URL = "https://securetoken.googleapis.com/v1/token"
STORAGE_URL = "https://firebasestorage.googleapis.com/v0/b"

# codes renvoyés par le fournisseur d'identité -> erreurs applicatives
IDENTITY_ERRORS = {
    "EMAIL_EXISTS": EmailInUse,
    "WEAK_PASSWORD": WeakPassword,
    "INVALID_EMAIL": InvalidEmail,
    "MISSING_EMAIL": InvalidEmail,
    "EMAIL_NOT_FOUND": UserNotFound,
    "USER_DISABLED": UserNotFound,
    "INVALID_PASSWORD": WrongPassword,
    "MISSING_PASSWORD": WrongPassword,
    "INVALID_LOGIN_CREDENTIALS": WrongPassword,
    "TOO_MANY_ATTEMPTS_TRY_LATER": TooManyAttempts,
}


def identity_error(payload) -> AuthError:
    """{"error": {"message": "WEAK_PASSWORD : Password should be ..."}} -> WeakPassword."""
    try:
        raw = payload["error"]["message"]
    except (KeyError, TypeError):
        return AuthError()
    code = str(raw).split(":", 1)[0].strip()
    cls = IDENTITY_ERRORS.get(code)
    return cls() if cls else AuthError(str(raw))


class RemoteBackend:
    def __init__(self, api_key: str, database_url: str, storage_bucket: str = "",
                 timeout: float = 10, session: requests.Session | None = None,
                 token_provider: Callable[[], Optional[str]] | None = None):
        self.api_key = api_key
        self.database_url = database_url.rstrip("/")
        self.storage_bucket = storage_bucket
        self.timeout = timeout
        self.http = session or requests.Session()
        self.token_provider = token_provider

    # —— HTTP —— #
    def _token(self) -> Optional[str]:
        return self.token_provider() if self.token_provider else None

    def _request(self, method: str, url: str, **kw) -> requests.Response:
        kw.setdefault("timeout", self.timeout)
        try:
            resp = self.http.request(method, url, **kw)
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning(f"{method} {url} injoignable: {e}")
            raise Unavailable() from e
        if resp.status_code in (401, 403):
            raise PermissionDenied()
        if resp.status_code >= 500:
            raise Unavailable(f"Service distant en erreur ({resp.status_code})")
        if resp.status_code >= 400:
            raise StorageError(f"Requête refusée ({resp.status_code}): {resp.text[:200]}")
        return resp

    def _db_url(self, path: str) -> str:
        return f"{self.database_url}/{path.strip('/')}.json"

    def _db_params(self) -> dict:
        tok = self._token()
        return {"auth": tok} if tok else {}

    # —— base documentaire —— #
    def get(self, path: str):
        return self._request("GET", self._db_url(path), params=self._db_params()).json()

    def push(self, path: str, data: dict) -> str:
        """Crée un enfant avec un id généré par le serveur ; retourne cet id."""
        resp = self._request("POST", self._db_url(path), params=self._db_params(), json=data)
        return resp.json()["name"]

    def put(self, path: str, data) -> None:
        self._request("PUT", self._db_url(path), params=self._db_params(), json=data)

    def patch(self, path: str, data: dict) -> None:
        # fusion côté serveur ; crée le document s'il n'existe pas
        self._request("PATCH", self._db_url(path), params=self._db_params(), json=data)

    def delete(self, path: str) -> None:
        self._request("DELETE", self._db_url(path), params=self._db_params())

    def listen(self, path: str, on_event: Callable[[str, dict], None]) -> "EventStream":
        stream = EventStream(self, path, on_event)
        stream.start()
        return stream

    # —— identité —— #
    def _identity(self, endpoint: str, body: dict) -> dict:
        url = f"{IDENTITY_URL}/accounts:{endpoint}"
        try:
            resp = self.http.post(url, params={"key": self.api_key}, json=body, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise Unavailable() from e
        if resp.status_code >= 500:
            raise Unavailable()
        data = resp.json()
        if resp.status_code >= 400:
            raise identity_error(data)
        return data

    def sign_up(self, email: str, password: str) -> dict:
        return self._identity("signUp", {"email": email, "password": password, "returnSecureToken": True})

    def sign_up_anonymous(self) -> dict:
        return self._identity("signUp", {"returnSecureToken": True})

    def sign_in(self, email: str, password: str) -> dict:
        return self._identity("signInWithPassword",
                              {"email": email, "password": password, "returnSecureToken": True})

    def refresh(self, refresh_token: str) -> dict:
        try:
            resp = self.http.post(TOKEN_URL, params={"key": self.api_key},
                                  data={"grant_type": "refresh_token", "refresh_token": refresh_token},
                                  timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise Unavailable() from e
        data = resp.json()
        if resp.status_code >= 400:
            raise identity_error(data)
        return data

    # —— fichiers —— #
    def upload(self, name: str, data: bytes, content_type: str) -> str:
        """Dépose un objet et retourne son URL de téléchargement."""
        if not self.storage_bucket:
            raise StorageError("Aucun bucket de stockage configuré")
        url = f"{STORAGE_URL}/{self.storage_bucket}/o"
        headers = {"Content-Type": content_type}
        tok = self._token()
        if tok:
            headers["Authorization"] = f"Firebase {tok}"
        meta = self._request("POST", url, params={"uploadType": "media", "name": name},
                             data=data, headers=headers).json()
        token = (meta.get("downloadTokens") or "").split(",")[0]
        link = f"{STORAGE_URL}/{self.storage_bucket}/o/{quote(meta.get('name', name), safe='')}?alt=media"
        return f"{link}&token={token}" if token else link


def iter_sse(lines):
    """
    Découpe un flux text/event-stream en (event, data).
    Un événement se termine par une ligne vide ; plusieurs `data:` sont concaténées.
    """
    event, data = None, []
    for raw in lines:
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        if line == "":
            if event is not None or data:
                yield event or "message", "\n".join(data)
            event, data = None, []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if event is not None or data:
        yield event or "message", "\n".join(data)


class EventStream:
    """Abonnement push : le serveur envoie des diffs put/patch {path, data}."""

    def __init__(self, backend: RemoteBackend, path: str, on_event: Callable[[str, dict], None]):
        self.backend = backend
        self.path = path
        self.on_event = on_event
        self._stop = threading.Event()
        self._resp: requests.Response | None = None
        self._thread = threading.Thread(target=self._run, name=f"sse:{path}", daemon=True)

    def start(self):
        self._thread.start()

    def close(self):
        self._stop.set()
        resp = self._resp
        if resp is not None:
            resp.close()

    def _run(self):
        url = self.backend._db_url(self.path)
        try:
            self._resp = self.backend._request(
                "GET", url, params=self.backend._db_params(),
                headers={"Accept": "text/event-stream"}, stream=True, timeout=None,
            )
            for event, raw in iter_sse(self._resp.iter_lines(decode_unicode=True)):
                if self._stop.is_set():
                    break
                if event in ("put", "patch"):
                    try:
                        payload = json.loads(raw)
                    except ValueError as e:
                        logger.warning(f"flux {self.path}: événement illisible ignoré ({e})")
                        continue
                    try:
                        self.on_event(event, payload)
                    except Exception:
                        # un abonné défaillant ne coupe pas le flux
                        logger.exception(f"flux {self.path}: erreur dans l'abonné")
                elif event == "cancel":
                    logger.warning(f"flux {self.path} annulé par le serveur: {raw}")
                    break
                elif event == "auth_revoked":
                    logger.warning(f"flux {self.path}: jeton révoqué")
                    break
        except (StorageError, requests.RequestException, ValueError) as e:
            if not self._stop.is_set():
                logger.error(f"flux {self.path} interrompu: {e}")
        finally:
            if self._resp is not None:
                self._resp.close()
