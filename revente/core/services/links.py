# core/services/links.py
# Liens profonds « #product=<id> » (QR imprimés, partage).
from __future__ import annotations
from typing import Iterable, Optional
from urllib.parse import unquote

from revente.core.models import ProductRecord

PREFIX = "product="


def parse_fragment(fragment: str | None) -> Optional[str]:
    frag = (fragment or "").lstrip("#")
    if not frag.startswith(PREFIX):
        return None
    pid = unquote(frag[len(PREFIX):]).strip()
    return pid or None


def resolve(fragment: str | None, records: Iterable[ProductRecord]) -> tuple[Optional[ProductRecord], str]:
    """
    (fiche sélectionnée, fragment à conserver). Le fragment n'est effacé
    que si la fiche existe ; sinon il reste en place pour un prochain chargement.
    """
    pid = parse_fragment(fragment)
    if pid is None:
        return None, fragment or ""
    for r in records:
        if r.id == pid:
            return r, ""
    return None, fragment or ""


def build_link(base_url: str, record_id: str) -> str:
    return f"{base_url.split('#', 1)[0]}#{PREFIX}{record_id}"
