# export/transfer.py
# Import / export CSV et JSON des fiches produit.
from __future__ import annotations
import csv
import io
import json
from typing import Iterable, Sequence

from pydantic import ValidationError as ModelError

from revente.core.models import ProductRecord
from revente.utils.exceptions import DataImportError
from revente.utils.logging import get_logger
from revente.utils.money import parse_money, parse_quantity

logger = get_logger("export")

EXPORT_FIELDS = [
    "id", "nom", "sku", "categorie", "description", "fournisseur", "etat", "emplacement",
    "tags", "notes", "quantite", "prixAchat", "prixVente", "frais", "fraisPort",
    "commissionPlateforme", "fraisEmballage", "fraisAnnexes", "statut", "dateAchat",
    "dateVente", "imageUrl", "beneficeUnitaire", "beneficeTotal",
]
NUMERIC_FIELDS = {
    "prixAchat", "prixVente", "frais", "fraisPort", "commissionPlateforme",
    "fraisEmballage", "fraisAnnexes", "beneficeUnitaire", "beneficeTotal",
}
# colonnes reconnues à l'import (insensible à la casse) ; l'id n'est jamais repris
_KNOWN = {name.lower(): name for name in EXPORT_FIELDS if name != "id"}


def _cell(v) -> str:
    return "" if v is None else str(v)


def export_csv(records: Iterable[ProductRecord], fields: Sequence[str] = EXPORT_FIELDS) -> str:
    """En-tête = noms de champs ; toutes les valeurs entre guillemets, « " » doublé."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(fields)
    for r in records:
        doc = r.to_public()
        writer.writerow([_cell(doc.get(f)) for f in fields])
    return buf.getvalue()


def import_csv(text: str) -> list:
    """
    Retourne des dicts prêts pour bulk_create. Tout ou rien :
    la moindre ligne illisible lève DataImportError avant toute écriture.
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    try:
        rows = list(csv.reader(io.StringIO(text), strict=True))
    except csv.Error as e:
        raise DataImportError(f"CSV invalide: {e}") from e
    rows = [r for r in rows if any(c.strip() for c in r)]
    if not rows:
        return []
    header = [h.strip() for h in rows[0]]
    mapping = {i: _KNOWN[h.lower()] for i, h in enumerate(header) if h.lower() in _KNOWN}
    if not mapping:
        raise DataImportError("CSV invalide: aucune colonne reconnue")

    items = []
    for n, row in enumerate(rows[1:], start=2):
        if len(row) > len(header):
            raise DataImportError(f"CSV invalide: ligne {n} contient trop de colonnes")
        item = {}
        for i, name in mapping.items():
            raw = row[i] if i < len(row) else ""
            if name in NUMERIC_FIELDS:
                item[name] = parse_money(raw)
            elif name == "quantite":
                item[name] = parse_quantity(raw)
            else:
                item[name] = raw
        for name in NUMERIC_FIELDS:
            item.setdefault(name, parse_money(None))
        items.append(item)
    logger.info(f"CSV lu: {len(items)} ligne(s)")
    return items


def export_json(records: Iterable[ProductRecord]) -> str:
    return json.dumps([r.to_public() for r in records], ensure_ascii=False, indent=2)


def import_json(text: str) -> list:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise DataImportError(f"JSON invalide: {e}") from e
    if not isinstance(data, list):
        raise DataImportError("JSON invalide: un tableau de produits est attendu")
    items = []
    for n, obj in enumerate(data, start=1):
        if not isinstance(obj, dict):
            raise DataImportError(f"JSON invalide: l'élément {n} n'est pas un objet")
        try:
            rec = ProductRecord.model_validate(obj)
        except ModelError as e:
            raise DataImportError(f"JSON invalide: élément {n}: {e}") from e
        items.append(rec.to_document())
    logger.info(f"JSON lu: {len(items)} produit(s)")
    return items


def parse_import(filename: str, content: str) -> list:
    """.json -> JSON, tout le reste -> CSV."""
    if (filename or "").lower().endswith(".json"):
        return import_json(content)
    return import_csv(content)


def import_into(store, owner_id: str, filename: str, content: str) -> list:
    # tout est parsé avant la première écriture
    items = parse_import(filename, content)
    if not items:
        return []
    return store.bulk_create(owner_id, items)
