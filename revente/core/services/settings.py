# core/services/settings.py
from __future__ import annotations
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Mapping

from pydantic import ValidationError as ModelError

from revente.core.models import Preferences, Expense, Supplier
from revente.utils.exceptions import StorageError, ValidationError
from revente.utils.logging import get_logger
from revente.utils.money import parse_money

logger = get_logger("settings")

PREFS_SLOT = "user_prefs_"

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

def _plain(partial: Mapping) -> dict:
    """Accepte un dict ou des modèles pydantic imbriqués ; sort un dict JSON."""
    out = {}
    for k, v in dict(partial).items():
        if isinstance(v, list):
            v = [x.model_dump(mode="json") if hasattr(x, "model_dump") else x for x in v]
        elif hasattr(v, "model_dump"):
            v = v.model_dump(mode="json")
        elif isinstance(v, Decimal):
            v = str(v)
        out[k] = v
    return out


class PreferenceStore(ABC):
    """get() ne crée rien ; save() fusionne et crée le document au besoin."""

    @abstractmethod
    def get(self, owner_id: str) -> dict: ...

    @abstractmethod
    def save(self, owner_id: str, partial: Mapping) -> None: ...

    def load(self, owner_id: str) -> Preferences:
        # valeurs par défaut appliquées à la lecture, jamais écrites
        return Preferences.model_validate(self.get(owner_id) or {})

    @staticmethod
    def _checked(current: Mapping, partial: Mapping) -> dict:
        """Le document fusionné doit rester lisible ; sinon rien n'est écrit."""
        plain = _plain(partial)
        try:
            Preferences.model_validate({**current, **plain})
        except ModelError as e:
            raise ValidationError({
                ".".join(str(p) for p in err["loc"]) or "preferences": err["msg"]
                for err in e.errors()
            }) from e
        return plain


class LocalPreferenceStore(PreferenceStore):
    def __init__(self, storage):
        self.storage = storage

    @staticmethod
    def slot_for(owner_id: str) -> str:
        return f"{PREFS_SLOT}{owner_id}"

    def get(self, owner_id):
        data = self.storage.get(self.slot_for(owner_id), {})
        return data if isinstance(data, dict) else {}

    def save(self, owner_id, partial):
        current = self.get(owner_id)
        merged = {**current, **self._checked(current, partial), "updatedAt": _now()}
        self.storage.set(self.slot_for(owner_id), merged)
        logger.info(f"préférences enregistrées (local) pour {owner_id}: {sorted(partial)}")

    def clear(self, owner_id) -> None:
        self.storage.remove(self.slot_for(owner_id))


class RemotePreferenceStore(PreferenceStore):
    def __init__(self, backend):
        self.backend = backend

    @staticmethod
    def document(owner_id: str) -> str:
        return f"users/{owner_id}/preferences"

    def get(self, owner_id):
        data = self.backend.get(self.document(owner_id))
        return data if isinstance(data, dict) else {}

    def save(self, owner_id, partial):
        plain = self._checked(self.get(owner_id), partial)
        # PATCH = fusion côté serveur, crée le document s'il est absent
        self.backend.patch(self.document(owner_id), {**plain, "updatedAt": _now()})
        logger.info(f"préférences enregistrées (distant) pour {owner_id}: {sorted(partial)}")


class DebouncedSaver:
    """
    Regroupe les sauvegardes rapprochées (délai par défaut 1 s) côté appelant :
    seules les clés fusionnées sont écrites, en une fois, après le dernier appel.
    """

    def __init__(self, store: PreferenceStore, owner_id: str, delay: float = 1.0,
                 on_error: Callable[[Exception], None] | None = None):
        self.store = store
        self.owner_id = owner_id
        self.delay = delay
        self.on_error = on_error
        self._pending: dict = {}
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    def save(self, partial: Mapping) -> None:
        with self._lock:
            self._pending.update(partial)
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            pending, self._pending = self._pending, {}
        if not pending:
            return
        try:
            self.store.save(self.owner_id, pending)
        except StorageError as e:
            # pas de nouvelle tentative automatique : l'utilisateur refait l'action
            logger.warning(f"sauvegarde des préférences échouée: {e}")
            if self.on_error is None:
                raise
            self.on_error(e)

    @property
    def pending(self) -> dict:
        return dict(self._pending)


# —— Dépenses / fournisseurs —— #
def _new_id() -> str:
    return str(int(time.time() * 1000))

def add_expense(store: PreferenceStore, owner_id: str, desc: str, amount, date: str | None = None) -> Expense:
    prefs = store.load(owner_id)
    taken = {e.id for e in prefs.expenses}
    eid = _new_id()
    while eid in taken:
        eid = str(int(eid) + 1)
    exp = Expense(id=eid, desc=desc.strip(), amount=parse_money(amount),
                  date=date or datetime.now().strftime("%Y-%m-%d"))
    store.save(owner_id, {"expenses": prefs.expenses + [exp]})
    return exp

def remove_expense(store: PreferenceStore, owner_id: str, expense_id: str) -> None:
    prefs = store.load(owner_id)
    store.save(owner_id, {"expenses": [e for e in prefs.expenses if e.id != str(expense_id)]})

def add_supplier(store: PreferenceStore, owner_id: str, name: str) -> Supplier | None:
    name = (name or "").strip()
    if not name:
        return None
    prefs = store.load(owner_id)
    taken = {s.id for s in prefs.fournisseurs}
    sid = _new_id()
    while sid in taken:
        sid = str(int(sid) + 1)
    sup = Supplier(id=sid, name=name)
    store.save(owner_id, {"fournisseurs": prefs.fournisseurs + [sup]})
    return sup

def remove_supplier(store: PreferenceStore, owner_id: str, supplier_id: str) -> None:
    prefs = store.load(owner_id)
    store.save(owner_id, {"fournisseurs": [s for s in prefs.fournisseurs if s.id != str(supplier_id)]})
