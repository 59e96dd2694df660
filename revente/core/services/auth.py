from __future__ import annotations
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional

from revente.core.models import Session, LOCAL_OWNER
from revente.utils.exceptions import (
    EmailInUse, WeakPassword, InvalidEmail, UserNotFound, WrongPassword, TooManyAttempts,
)
from revente.utils.logging import get_logger
from revente.utils.security import hash_password, verify_password, looks_like_email

logger = get_logger("auth")

USERS_SLOT = "local_app_users"
SESSION_SLOT = "local_app_session"
REMOTE_SESSION_SLOT = "remote_session"

SessionCallback = Callable[[Optional[Session]], None]


def _session_from(data) -> Optional[Session]:
    if not isinstance(data, dict) or not data.get("user_id"):
        return None
    return Session(
        user_id=str(data["user_id"]),
        email=data.get("email") or "",
        display_name=data.get("display_name") or "",
        is_anonymous=bool(data.get("is_anonymous")),
    )


class AuthGateway(ABC):
    """Connexion / inscription / changement de session ; deux implémentations interchangeables."""

    def __init__(self, min_password_length: int = 6):
        self.min_password_length = min_password_length
        self._listeners: list = []
        self._lock = threading.Lock()

    @abstractmethod
    def sign_in(self, email: str, password: str) -> Session: ...

    @abstractmethod
    def sign_up(self, email: str, password: str) -> Session: ...

    @abstractmethod
    def sign_in_anonymously(self) -> Session: ...

    @abstractmethod
    def sign_out(self) -> None: ...

    @property
    @abstractmethod
    def current_session(self) -> Optional[Session]: ...

    def id_token(self) -> Optional[str]:
        return None

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(callback)
        callback(self.current_session)

        def unsubscribe():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)
        return unsubscribe

    def _emit(self, session: Optional[Session]) -> None:
        for cb in list(self._listeners):
            cb(session)

    def _check(self, email: str, password: str, signing_up: bool) -> str:
        email = (email or "").strip().lower()
        if not looks_like_email(email):
            raise InvalidEmail()
        if signing_up and len(password or "") < self.min_password_length:
            raise WeakPassword()
        if not signing_up and not password:
            raise WrongPassword()
        return email


class LocalAuthGateway(AuthGateway):
    """
    Table d'identifiants locale (mode démo), indexée par e-mail.
    Mots de passe hachés (bcrypt) ; session persistée dans un slot.
    """

    def __init__(self, storage, min_password_length: int = 6, max_attempts: int = 5,
                 lockout_seconds: float = 300, clock: Callable[[], float] = time.time):
        super().__init__(min_password_length)
        self.storage = storage
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self._clock = clock
        # email -> (échecs consécutifs, instant du dernier échec)
        self._failures: dict[str, tuple[int, float]] = {}

    def _locked(self, email: str) -> bool:
        count, last = self._failures.get(email, (0, 0.0))
        if count < self.max_attempts:
            return False
        if self._clock() - last >= self.lockout_seconds:
            # délai écoulé : nouveau cycle de tentatives
            self._failures.pop(email, None)
            return False
        return True

    def _record_failure(self, email: str) -> int:
        count = self._failures.get(email, (0, 0.0))[0] + 1
        self._failures[email] = (count, self._clock())
        return count

    def _users(self) -> dict:
        users = self.storage.get(USERS_SLOT, {})
        return users if isinstance(users, dict) else {}

    @property
    def current_session(self):
        return _session_from(self.storage.get(SESSION_SLOT))

    def _open(self, session: Session) -> Session:
        self.storage.set(SESSION_SLOT, session.to_dict())
        self._emit(session)
        return session

    def sign_up(self, email, password):
        email = (email or "").strip().lower()
        if not looks_like_email(email):
            raise InvalidEmail()
        users = self._users()
        if email in users:
            raise EmailInUse()
        self._check(email, password, signing_up=True)
        uid = f"user_{int(time.time() * 1000)}"
        display = email.split("@")[0]
        users[email] = {
            "uid": uid,
            "email": email,
            "password_hash": hash_password(password),
            "displayName": display,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        self.storage.set(USERS_SLOT, users)
        logger.info(f"compte local créé: {email}")
        return self._open(Session(user_id=uid, email=email, display_name=display))

    def sign_in(self, email, password):
        email = self._check(email, password, signing_up=False)
        if self._locked(email):
            raise TooManyAttempts()
        user = self._users().get(email)
        if not user:
            raise UserNotFound()
        if not verify_password(password, user.get("password_hash", "")):
            count = self._record_failure(email)
            logger.warning(f"mot de passe incorrect pour {email} ({count})")
            raise WrongPassword()
        self._failures.pop(email, None)
        return self._open(Session(user_id=user["uid"], email=email,
                                  display_name=user.get("displayName") or email))

    def sign_in_anonymously(self):
        return self._open(Session(user_id=LOCAL_OWNER, email="demo@local",
                                  display_name="Utilisateur local", is_anonymous=True))

    def sign_out(self):
        self.storage.remove(SESSION_SLOT)
        self._emit(None)


class RemoteAuthGateway(AuthGateway):
    """Fournisseur d'identité distant ; jetons conservés dans un slot local."""

    def __init__(self, backend, storage, min_password_length: int = 6):
        super().__init__(min_password_length)
        self.backend = backend
        self.storage = storage

    def _state(self) -> dict:
        st = self.storage.get(REMOTE_SESSION_SLOT, {})
        return st if isinstance(st, dict) else {}

    @property
    def current_session(self):
        return _session_from(self._state())

    def _open(self, data: dict, anonymous: bool = False) -> Session:
        email = data.get("email") or ""
        session = Session(
            user_id=data["localId"],
            email=email,
            display_name=data.get("displayName") or email or "Anonyme",
            is_anonymous=anonymous,
        )
        self.storage.set(REMOTE_SESSION_SLOT, {
            **session.to_dict(),
            "id_token": data.get("idToken"),
            "refresh_token": data.get("refreshToken"),
            "expires_at": time.time() + int(data.get("expiresIn") or 3600),
        })
        self._emit(session)
        return session

    def sign_up(self, email, password):
        email = self._check(email, password, signing_up=True)
        data = self.backend.sign_up(email, password)
        logger.info(f"compte distant créé: {email}")
        return self._open(data)

    def sign_in(self, email, password):
        email = self._check(email, password, signing_up=False)
        return self._open(self.backend.sign_in(email, password))

    def sign_in_anonymously(self):
        return self._open(self.backend.sign_up_anonymous(), anonymous=True)

    def sign_out(self):
        self.storage.remove(REMOTE_SESSION_SLOT)
        self._emit(None)

    def id_token(self):
        st = self._state()
        if not st.get("id_token"):
            return None
        # marge d'une minute avant expiration
        if st.get("expires_at", 0) - 60 > time.time() or not st.get("refresh_token"):
            return st["id_token"]
        data = self.backend.refresh(st["refresh_token"])
        st.update({
            "id_token": data.get("id_token"),
            "refresh_token": data.get("refresh_token") or st["refresh_token"],
            "expires_at": time.time() + int(data.get("expires_in") or 3600),
        })
        self.storage.set(REMOTE_SESSION_SLOT, st)
        return st["id_token"]
