# core/services/ids.py
from __future__ import annotations
import re
import time
import threading
from typing import Iterable

DEFAULT_PREFIX = "P"
PREFIX_SLOT = "sku_prefix"
COUNTER_SLOT = "sku_counter"

# —— outils —— #
def normalize_prefix(prefix: str | None) -> str:
    """Préfixe SKU : uniquement A-Z0-9, en majuscules ; vide -> "P"."""
    s = re.sub(r"[^A-Za-z0-9]", "", prefix or "").upper()
    return s or DEFAULT_PREFIX

def format_sku(prefix: str, counter: int) -> str:
    return f"{prefix}-{counter:04d}"

def generate_sku(prefix: str | None, counter: int | None, existing: Iterable[str]) -> tuple[str, int]:
    """
    Retourne (sku, compteur suivant). Fonction pure : l'appelant persiste le compteur.
    Si le candidat existe déjà, on avance le compteur jusqu'à trouver un libre.
    """
    p = normalize_prefix(prefix)
    n = int(counter or 1)
    if n < 1:
        n = 1
    taken = {str(s) for s in existing if s}
    sku = format_sku(p, n)
    while sku in taken:
        n += 1
        sku = format_sku(p, n)
    return sku, n + 1


class SkuSettings:
    """Préfixe et compteur SKU persistés dans les slots locaux."""

    def __init__(self, storage):
        self.storage = storage

    @property
    def prefix(self) -> str:
        return normalize_prefix(self.storage.get(PREFIX_SLOT, DEFAULT_PREFIX))

    @property
    def counter(self) -> int:
        try:
            return max(1, int(self.storage.get(COUNTER_SLOT, 1)))
        except (TypeError, ValueError):
            return 1

    def set_prefix(self, prefix: str) -> str:
        p = normalize_prefix(prefix)
        self.storage.set(PREFIX_SLOT, p)
        return p

    def reset(self, value: int = 1) -> None:
        self.storage.set(COUNTER_SLOT, max(1, int(value)))

    def next_sku(self, existing: Iterable[str]) -> str:
        sku, nxt = generate_sku(self.prefix, self.counter, existing)
        self.storage.set(COUNTER_SLOT, nxt)
        return sku


class TimestampIds:
    """Identifiants locaux : horodatage en ms, strictement croissant, jamais réutilisé."""

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def next(self, taken: Iterable[str] = ()) -> str:
        used = set(taken)
        with self._lock:
            n = max(int(time.time() * 1000), self._last + 1)
            while str(n) in used:
                n += 1
            self._last = n
            return str(n)
