import pytest

from revente.core.models import LOCAL_OWNER
from revente.core.services.inventory import (
    LocalProductStore, RemoteProductStore, Selection, categories, paginate,
    query_products, validate_fields,
)
from revente.utils.exceptions import NotFound, ValidationError

from tests.conftest import CHAISE


def _item(nom, **kw):
    return {"nom": nom, "prixAchat": "1", "prixVente": "2", **kw}


@pytest.fixture(params=["local", "remote"])
def store(request, storage, backend):
    if request.param == "local":
        return LocalProductStore(storage)
    return RemoteProductStore(backend)


# —— contrat commun —— #

def test_create_then_list(store):
    rec = store.create("u1", CHAISE)
    assert rec.id
    assert rec.statut == "En ligne"
    listed = store.list("u1")
    assert [r.id for r in listed] == [rec.id]
    assert listed[0].benefice_unitaire == 15
    assert store.list("u2") == []


def test_update_missing_raises_not_found(store):
    with pytest.raises(NotFound):
        store.update("u1", "nope", CHAISE)


def test_update_replaces_fields_and_keeps_creation_date(store):
    rec = store.create("u1", CHAISE)
    store.update("u1", rec.id, {**CHAISE, "statut": "Vendu", "dateVente": "2024-05-02"})
    after = store.get("u1", rec.id)
    assert after.is_sold
    assert after.date_vente == "2024-05-02"
    assert after.created_at == rec.created_at


def test_delete_is_idempotent(store):
    rec = store.create("u1", CHAISE)
    store.delete("u1", rec.id)
    store.delete("u1", rec.id)
    assert store.list("u1") == []


def test_subscribe_delivers_immediately_and_on_change(store):
    seen = []
    rec = store.create("u1", _item("Lampe"))
    unsubscribe = store.subscribe("u1", seen.append)
    assert [r.id for r in seen[0]] == [rec.id]
    store.delete("u1", rec.id)
    assert seen[-1] == []
    unsubscribe()
    count = len(seen)
    store.create("u1", _item("Table"))
    assert len(seen) == count


def test_bulk_create_and_delete(store):
    created = store.bulk_create("u1", [_item("A"), _item("B"), _item("C")])
    assert len(created) == 3
    ids = [r.id for r in created]
    assert store.bulk_delete("u1", ids[:2]) == []
    assert [r.nom for r in store.list("u1")] == ["C"]


def test_create_validates_form(store):
    with pytest.raises(ValidationError) as exc:
        store.create("u1", {"nom": "A", "prixAchat": "x", "prixVente": "", "quantite": "0"})
    assert set(exc.value.errors) == {"nom", "prixAchat", "prixVente", "quantite"}
    assert store.list("u1") == []


def test_create_rejects_oversized_amounts(store):
    with pytest.raises(ValidationError) as exc:
        store.create("u1", {**CHAISE, "prixAchat": "1e999999999", "quantite": "9" * 40})
    assert set(exc.value.errors) == {"prixAchat", "quantite"}
    assert store.list("u1") == []


# —— spécificités local —— #

def test_local_inserts_at_head_and_shares_slot(storage):
    store = LocalProductStore(storage)
    a = store.create(LOCAL_OWNER, _item("Premier"))
    b = store.create(LOCAL_OWNER, _item("Second"))
    assert [r.id for r in store.list(LOCAL_OWNER)] == [b.id, a.id]
    assert storage.get("produits_v2")[0]["nom"] == "Second"
    assert LocalProductStore.slot_for("user_1") == "produits_v2.user_1"


def test_local_no_notification_across_instances(storage):
    one, two = LocalProductStore(storage), LocalProductStore(storage)
    seen = []
    one.subscribe("u1", seen.append)
    two.create("u1", _item("Vase"))
    assert len(seen) == 1
    assert [r.nom for r in one.list("u1")] == ["Vase"]


def test_local_reads_legacy_records_leniently(storage):
    storage.set("produits_v2", [{"id": 17, "nom": "Ancien", "prixAchat": "", "statut": ""}])
    rec = LocalProductStore(storage).list(LOCAL_OWNER)[0]
    assert rec.id == "17"
    assert rec.prix_achat == 0
    assert rec.statut == "En ligne"


# —— spécificités distant —— #

def test_remote_sorted_by_name(backend):
    store = RemoteProductStore(backend)
    for nom in ("zèbre", "Abricot", "mangue"):
        store.create("u1", _item(nom))
    assert [r.nom for r in store.list("u1")] == ["Abricot", "mangue", "zèbre"]
    assert set(backend.tree["users"]["u1"]["produits"]) == {r.id for r in store.list("u1")}


def test_remote_subscription_mirrors_patches(backend):
    store = RemoteProductStore(backend)
    rec = store.create("u1", _item("Bol"))
    seen = []
    stop = store.subscribe("u1", seen.append)
    backend.patch(f"users/u1/produits/{rec.id}", {"statut": "Vendu"})
    assert seen[-1][0].statut == "Vendu"
    stop()
    assert backend.streams == []


def test_remote_bulk_delete_reports_failures(backend):
    store = RemoteProductStore(backend)
    a = store.create("u1", _item("A"))
    b = store.create("u1", _item("B"))
    backend.fail_paths.add(f"users/u1/produits/{b.id}")
    failed = store.bulk_delete("u1", [a.id, b.id])
    assert failed == [b.id]
    assert [r.id for r in store.list("u1")] == [b.id]


def test_remote_reads_array_shaped_collection(backend):
    backend.tree = {"users": {"u1": {"produits": [
        {"nom": "Zéro", "prixAchat": 1, "prixVente": 2},
        None,
        {"nom": "Deux", "prixAchat": 3, "prixVente": 5},
    ]}}}
    store = RemoteProductStore(backend)
    listed = store.list("u1")
    assert [(r.id, r.nom) for r in listed] == [("2", "Deux"), ("0", "Zéro")]
    seen = []
    store.subscribe("u1", seen.append)
    assert [r.id for r in seen[-1]] == ["2", "0"]


# —— liste / filtres / sélection —— #

def test_query_filters_and_sort(storage):
    store = LocalProductStore(storage)
    store.create("u1", _item("Chaise bois", categorie="Meuble", fournisseur="Emmaüs"))
    store.create("u1", _item("Lampe", categorie="Déco", tags="vintage", statut="Vendu"))
    store.create("u1", _item("Table", categorie="Meuble", prixVente="90"))
    rows = store.list("u1")
    assert [r.nom for r in query_products(rows, search="VINTAGE")] == ["Lampe"]
    assert {r.nom for r in query_products(rows, category="meuble")} == {"Chaise bois", "Table"}
    assert [r.nom for r in query_products(rows, status="Vendu")] == ["Lampe"]
    assert [r.nom for r in query_products(rows, supplier="Emmaüs")] == ["Chaise bois"]
    by_price = query_products(rows, sort_field="prixVente", order="desc")
    assert by_price[0].nom == "Table"
    assert categories(rows) == ["Meuble", "Déco"]


def test_paginate_clamps():
    items = list(range(23))
    page, pages = paginate(items, page=9, page_size=10)
    assert pages == 3
    assert page == [20, 21, 22]
    page, pages = paginate([], page=1, page_size=7)
    assert (page, pages) == ([], 1)


def test_selection_follows_deletes(storage):
    store = LocalProductStore(storage)
    a = store.create("u1", _item("A"))
    b = store.create("u1", _item("B"))
    sel = Selection()
    sel.toggle_page(store.list("u1"))
    assert sel.ids == {a.id, b.id}
    sel.delete_one(store, "u1", a.id)
    assert sel.ids == {b.id}
    assert sel.delete_selected(store, "u1") == []
    assert sel.ids == set()
    assert store.list("u1") == []


def test_validate_rejects_unknown_status():
    with pytest.raises(ValidationError) as exc:
        validate_fields({**CHAISE, "statut": "Perdu"})
    assert list(exc.value.errors) == ["statut"]
