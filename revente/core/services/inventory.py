# core/services/inventory.py
from __future__ import annotations
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping, Sequence

from revente.core.models import (
    ProductRecord, PRODUCT_STATUSES, LOCAL_OWNER,
)
from revente.core.services.ids import TimestampIds
from revente.core.services.profit import derived_fields
from revente.utils.exceptions import NotFound, ValidationError, StorageError
from revente.utils.logging import get_logger
from revente.utils.money import is_number, parse_money

logger = get_logger("inventory")

Callback = Callable[[list], None]
Unsubscribe = Callable[[], None]

LOCAL_SLOT = "produits_v2"
PAGE_SIZES = (5, 10, 20, 50)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# =========================
# Contrôles de formulaire
# =========================

def _get(fields: Mapping, py: str, alias: str | None = None):
    if py in fields:
        return fields[py]
    return fields.get(alias) if alias else None


def validate_fields(fields: Mapping) -> None:
    """Contrôles côté client ; lève ValidationError({champ: message})."""
    err = {}
    nom = _get(fields, "nom")
    if not nom or len(str(nom).strip()) < 2:
        err["nom"] = "Nom requis (min 2 caractères)"
    pa = _get(fields, "prix_achat", "prixAchat")
    if pa in (None, "") or not is_number(pa):
        err["prixAchat"] = "Prix d'achat invalide"
    pv = _get(fields, "prix_vente", "prixVente")
    if pv in (None, "") or not is_number(pv):
        err["prixVente"] = "Prix de vente invalide"
    q = _get(fields, "quantite")
    if q not in (None, ""):
        if not is_number(q) or int(parse_money(q)) < 1:
            err["quantite"] = "Quantité invalide"
    statut = _get(fields, "statut")
    if statut not in (None, "") and statut not in PRODUCT_STATUSES:
        err["statut"] = "Statut inconnu"
    if err:
        raise ValidationError(err)


def build_record(fields: Mapping, record_id: str | None = None,
                 created_at: str | None = None, touch: bool = True) -> ProductRecord:
    """
    Normalise les champs saisis et recalcule les bénéfices affichés.
    touch=False conserve l'horodatage de modification reçu (restauration d'un export).
    """
    data = {k: v for k, v in dict(fields).items() if k not in ("id",)}
    rec = ProductRecord.model_validate(data)
    updates = derived_fields(rec.prix_achat, rec.prix_vente, rec.frais, rec.quantite)
    updates["id"] = record_id
    updates["created_at"] = created_at or rec.created_at or _now()
    updates["updated_at"] = _now() if touch or not rec.updated_at else rec.updated_at
    return rec.model_copy(update=updates)


def _sort_value(r: ProductRecord, key: str):
    if key in ProductRecord.model_fields:
        return getattr(r, key)
    for name, info in ProductRecord.model_fields.items():
        if info.alias == key:
            return getattr(r, name)
    return None


def sort_records(records: Sequence[ProductRecord], key: str | None, descending: bool = False) -> list:
    """Tri stable ; les valeurs absentes restent en fin de liste."""
    if not key:
        return list(records)
    present, missing = [], []
    for r in records:
        (missing if _sort_value(r, key) is None else present).append(r)

    def k(r):
        v = _sort_value(r, key)
        return v.lower() if isinstance(v, str) else v

    return sorted(present, key=k, reverse=descending) + missing


# =========================
# Contrat commun
# =========================

class ProductStore(ABC):
    """Fiches produit d'un propriétaire ; deux implémentations interchangeables."""

    default_sort: str | None = None

    def __init__(self, sort_key: str | None = None, descending: bool = False):
        self.sort_key = sort_key if sort_key is not None else self.default_sort
        self.descending = descending

    @abstractmethod
    def list(self, owner_id: str) -> list: ...

    @abstractmethod
    def create(self, owner_id: str, fields: Mapping, validate: bool = True) -> ProductRecord: ...

    @abstractmethod
    def update(self, owner_id: str, record_id: str, fields: Mapping, validate: bool = True) -> None: ...

    @abstractmethod
    def delete(self, owner_id: str, record_id: str) -> None: ...

    @abstractmethod
    def bulk_delete(self, owner_id: str, ids: Iterable[str]) -> list: ...

    @abstractmethod
    def bulk_create(self, owner_id: str, items: Sequence[Mapping]) -> list: ...

    @abstractmethod
    def subscribe(self, owner_id: str, callback: Callback) -> Unsubscribe: ...

    @abstractmethod
    def clear(self, owner_id: str) -> None: ...

    def get(self, owner_id: str, record_id: str) -> ProductRecord:
        rid = str(record_id)
        for r in self.list(owner_id):
            if r.id == rid:
                return r
        raise NotFound(f"Produit {rid} introuvable")

    def skus(self, owner_id: str) -> set:
        return {r.sku for r in self.list(owner_id) if r.sku}

    def _sorted(self, records) -> list:
        return sort_records(records, self.sort_key, self.descending)


# =========================
# Stockage local (slot JSON)
# =========================

class LocalProductStore(ProductStore):
    """
    Tableau JSON unique par propriétaire dans le stockage local.
    Les nouvelles fiches sont insérées en tête ; aucune notification entre
    instances distinctes, seulement vers les abonnés de cette instance.
    """

    def __init__(self, storage, sort_key: str | None = None, descending: bool = False):
        super().__init__(sort_key, descending)
        self.storage = storage
        self._ids = TimestampIds()
        self._listeners: dict[str, list] = {}
        self._lock = threading.RLock()

    @staticmethod
    def slot_for(owner_id: str) -> str:
        return LOCAL_SLOT if owner_id in (None, "", LOCAL_OWNER) else f"{LOCAL_SLOT}.{owner_id}"

    def _load(self, owner_id: str) -> list:
        raw = self.storage.get(self.slot_for(owner_id), []) or []
        return [ProductRecord.model_validate(x) for x in raw if isinstance(x, dict)]

    def _save(self, owner_id: str, records: list) -> None:
        self.storage.set(self.slot_for(owner_id), [r.to_public() for r in records])
        self._notify(owner_id, records)

    def _notify(self, owner_id: str, records: list) -> None:
        view = self._sorted(records)
        for cb in list(self._listeners.get(owner_id, [])):
            cb(list(view))

    def list(self, owner_id: str) -> list:
        return self._sorted(self._load(owner_id))

    def create(self, owner_id, fields, validate=True):
        if validate:
            validate_fields(fields)
        with self._lock:
            records = self._load(owner_id)
            rid = self._ids.next(r.id for r in records)
            rec = build_record(fields, rid)
            self._save(owner_id, [rec] + records)
        logger.info(f"produit créé (local) id={rid} nom={rec.nom!r}")
        return rec

    def update(self, owner_id, record_id, fields, validate=True):
        if validate:
            validate_fields(fields)
        rid = str(record_id)
        with self._lock:
            records = self._load(owner_id)
            for i, r in enumerate(records):
                if r.id == rid:
                    records[i] = build_record(fields, rid, r.created_at)
                    break
            else:
                raise NotFound(f"Produit {rid} introuvable")
            self._save(owner_id, records)
        logger.info(f"produit modifié (local) id={rid}")

    def delete(self, owner_id, record_id):
        rid = str(record_id)
        with self._lock:
            records = self._load(owner_id)
            kept = [r for r in records if r.id != rid]
            if len(kept) == len(records):
                return
            self._save(owner_id, kept)
        logger.info(f"produit supprimé (local) id={rid}")

    def bulk_delete(self, owner_id, ids):
        wanted = {str(i) for i in ids}
        with self._lock:
            records = self._load(owner_id)
            self._save(owner_id, [r for r in records if r.id not in wanted])
        logger.info(f"suppression groupée (local): {len(wanted)} id(s)")
        return []

    def bulk_create(self, owner_id, items):
        with self._lock:
            records = self._load(owner_id)
            taken = [r.id for r in records]
            created = []
            for it in items:
                rid = self._ids.next(taken)
                taken.append(rid)
                created.append(build_record(it, rid, touch=False))
            self._save(owner_id, created + records)
        logger.info(f"import (local): {len(created)} produit(s)")
        return created

    def subscribe(self, owner_id, callback):
        with self._lock:
            self._listeners.setdefault(owner_id, []).append(callback)
        callback(self.list(owner_id))

        def unsubscribe():
            with self._lock:
                subs = self._listeners.get(owner_id, [])
                if callback in subs:
                    subs.remove(callback)
        return unsubscribe

    def clear(self, owner_id):
        with self._lock:
            self.storage.remove(self.slot_for(owner_id))
            self._notify(owner_id, [])
        logger.info(f"produits locaux vidés pour {owner_id}")


# =========================
# Base documentaire distante
# =========================

class RemoteProductStore(ProductStore):
    """
    Sous-collection users/{uid}/produits. Abonnement push : chaque diff
    put/patch est appliqué à un miroir puis la liste complète est remplacée
    d'un bloc chez l'abonné. Écritures concurrentes = dernier qui écrit gagne.
    """

    default_sort = "nom"

    def __init__(self, backend, sort_key: str | None = None, descending: bool = False,
                 max_workers: int = 8):
        super().__init__(sort_key, descending)
        self.backend = backend
        self.max_workers = max_workers

    @staticmethod
    def collection(owner_id: str) -> str:
        return f"users/{owner_id}/produits"

    def _records(self, docs) -> list:
        out = []
        for key, doc in _children(docs).items():
            if isinstance(doc, dict):
                out.append(ProductRecord.model_validate({**doc, "id": key}))
        return self._sorted(out)

    def list(self, owner_id):
        return self._records(self.backend.get(self.collection(owner_id)))

    def create(self, owner_id, fields, validate=True):
        if validate:
            validate_fields(fields)
        return self._push(owner_id, build_record(fields))

    def _push(self, owner_id, rec: ProductRecord) -> ProductRecord:
        rid = self.backend.push(self.collection(owner_id), rec.to_document())
        logger.info(f"produit créé (distant) id={rid} nom={rec.nom!r}")
        return rec.model_copy(update={"id": rid})

    def update(self, owner_id, record_id, fields, validate=True):
        if validate:
            validate_fields(fields)
        path = f"{self.collection(owner_id)}/{record_id}"
        current = self.backend.get(path)
        if not isinstance(current, dict):
            raise NotFound(f"Produit {record_id} introuvable")
        rec = build_record(fields, str(record_id), current.get("createdAt"))
        # remplacement complet des champs modifiables, sans jeton de version
        self.backend.put(path, rec.to_document())
        logger.info(f"produit modifié (distant) id={record_id}")

    def delete(self, owner_id, record_id):
        # DELETE sur un chemin absent ne renvoie pas d'erreur : idempotent
        self.backend.delete(f"{self.collection(owner_id)}/{record_id}")
        logger.info(f"produit supprimé (distant) id={record_id}")

    def _fan_out(self, fn, args: list) -> tuple[list, list]:
        """Requêtes indépendantes en parallèle ; pas de rollback des succès."""
        ok, failed = [], []
        if not args:
            return ok, failed
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(args))) as pool:
            futures = [(a, pool.submit(fn, a)) for a in args]
            for a, fut in futures:
                try:
                    ok.append(fut.result())
                except StorageError as e:
                    logger.warning(f"opération groupée en échec: {e}")
                    failed.append(a)
        return ok, failed

    def bulk_delete(self, owner_id, ids):
        ids = [str(i) for i in ids]
        _, failed = self._fan_out(lambda rid: self.delete(owner_id, rid), ids)
        logger.info(f"suppression groupée (distant): {len(ids) - len(failed)}/{len(ids)}")
        return failed

    def bulk_create(self, owner_id, items):
        created, failed = self._fan_out(lambda it: self._push(owner_id, build_record(it, touch=False)), list(items))
        if failed:
            logger.warning(f"import (distant): {len(failed)} fiche(s) non créée(s)")
        return created

    def subscribe(self, owner_id, callback):
        mirror: dict = {}
        lock = threading.Lock()
        callback(self.list(owner_id))

        def on_event(kind: str, payload: dict):
            path = [p for p in (payload.get("path") or "/").split("/") if p]
            data = payload.get("data")
            with lock:
                _apply(mirror, kind, path, data)
                view = self._records(mirror)
            callback(view)

        stream = self.backend.listen(self.collection(owner_id), on_event)
        return stream.close

    def clear(self, owner_id):
        ids = [r.id for r in self.list(owner_id)]
        self.bulk_delete(owner_id, ids)


def _children(docs) -> dict:
    """
    Enfants d'un nœud distant. Des clés entières consécutives sont renvoyées
    sous forme de tableau (trous à null) : on les ramène à un dict indexé.
    """
    if isinstance(docs, dict):
        return docs
    if isinstance(docs, list):
        return {str(i): d for i, d in enumerate(docs) if d is not None}
    return {}


def _apply(mirror: dict, kind: str, path: list, data) -> None:
    """Applique un diff put/patch au miroir (put remplace, patch fusionne)."""
    if not path:
        if kind == "put":
            mirror.clear()
            mirror.update(_children(data))
        elif isinstance(data, dict):
            for k, v in data.items():
                if v is None:
                    mirror.pop(k, None)
                else:
                    mirror[k] = v
        return
    node = mirror
    for p in path[:-1]:
        child = node.get(p)
        if not isinstance(child, dict):
            if data is None:
                return
            child = node[p] = {}
        node = child
    leaf = path[-1]
    if kind == "patch" and isinstance(data, dict):
        target = node.setdefault(leaf, {})
        if not isinstance(target, dict):
            target = node[leaf] = {}
        for k, v in data.items():
            if v is None:
                target.pop(k, None)
            else:
                target[k] = v
    elif data is None:
        node.pop(leaf, None)
    else:
        node[leaf] = data


# =========================
# Recherche / filtres / pagination
# =========================

def query_products(records: Sequence[ProductRecord], search: str = "", category: str = "",
                   status: str = "", supplier: str = "", sort_field: str | None = None,
                   order: str = "asc") -> list:
    q = (search or "").strip().lower()
    out = []
    for p in records:
        if category and p.categorie and p.categorie.lower() != category.lower():
            continue
        if status and p.statut != status:
            continue
        if supplier and p.fournisseur != supplier:
            continue
        if q and not any(q in (v or "").lower() for v in (p.nom, p.sku, p.categorie, p.tags)):
            continue
        out.append(p)
    if sort_field:
        out = sort_records(out, sort_field, descending=(order == "desc"))
    return out


def paginate(items: Sequence, page: int = 1, page_size: int = 10) -> tuple[list, int]:
    """Retourne (page demandée, nombre total de pages >= 1)."""
    size = page_size if page_size in PAGE_SIZES else PAGE_SIZES[1]
    total = max(1, -(-len(items) // size))
    page = min(max(1, int(page)), total)
    return list(items[(page - 1) * size: page * size]), total


def categories(records: Iterable[ProductRecord]) -> list:
    seen = []
    for r in records:
        if r.categorie and r.categorie not in seen:
            seen.append(r.categorie)
    return seen


class Selection:
    """Sélection multiple ; une suppression retire aussi l'id de la sélection."""

    def __init__(self, ids: Iterable[str] = ()):
        self.ids = {str(i) for i in ids}

    def toggle(self, record_id: str) -> None:
        rid = str(record_id)
        if rid in self.ids:
            self.ids.discard(rid)
        else:
            self.ids.add(rid)

    def toggle_page(self, records: Iterable[ProductRecord]) -> None:
        page = {r.id for r in records}
        if page and page <= self.ids:
            self.ids -= page
        else:
            self.ids |= page

    def delete_selected(self, store: ProductStore, owner_id: str) -> list:
        failed = store.bulk_delete(owner_id, sorted(self.ids))
        self.ids = set(failed)
        return failed

    def delete_one(self, store: ProductStore, owner_id: str, record_id: str) -> None:
        store.delete(owner_id, record_id)
        self.ids.discard(str(record_id))
