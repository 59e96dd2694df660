import json

import pytest

from revente.core.services.inventory import LocalProductStore, RemoteProductStore
from revente.export import transfer
from revente.export.event_logger import EVENT_FIELDS, append_event
from revente.utils.exceptions import DataImportError

from tests.conftest import CHAISE

FULL = {
    **CHAISE,
    "sku": "P-0007",
    "categorie": "Meuble",
    "description": 'Chaise "bistrot", paillée',
    "fournisseur": "Brocante",
    "etat": "Bon",
    "emplacement": "Garage",
    "tags": "bois,vintage",
    "notes": "ligne 1\nligne 2",
    "frais": "1.5",
    "statut": "Vendu",
    "dateAchat": "2024-01-10",
    "dateVente": "2024-02-03",
    "imageUrl": "/photos/chaise.jpg",
}


def _exported(rec):
    doc = rec.to_public()
    return {f: doc.get(f) for f in transfer.EXPORT_FIELDS if f != "id"}


def test_csv_quotes_everything_and_doubles_quotes(storage):
    store = LocalProductStore(storage)
    store.create("u1", FULL)
    text = transfer.export_csv(store.list("u1"))
    header, first = text.split("\n")[:2]
    assert header.startswith('"id","nom","sku"')
    assert '"Chaise ""bistrot"", paillée"' in text
    assert first.startswith('"')


def test_csv_round_trip(storage, backend):
    src = LocalProductStore(storage)
    src.create("u1", FULL)
    src.create("u1", {"nom": "Lot de 3 bols", "prixAchat": "4", "prixVente": "12.90"})
    text = transfer.export_csv(src.list("u1"))

    dest = RemoteProductStore(backend, sort_key="nom")
    created = transfer.import_into(dest, "u2", "export.csv", text)
    assert len(created) == 2
    assert {r.id for r in created}.isdisjoint({r.id for r in src.list("u1")})
    before = sorted((_exported(r) for r in src.list("u1")), key=lambda d: d["nom"])
    after = sorted((_exported(r) for r in dest.list("u2")), key=lambda d: d["nom"])
    assert after == before


def test_json_round_trip_keeps_fees_and_dates(storage):
    src = LocalProductStore(storage)
    rec = src.create("u1", FULL)
    text = transfer.export_json(src.list("u1"))

    dest = LocalProductStore(storage)
    transfer.import_into(dest, "u3", "sauvegarde.JSON", text)
    got = dest.list("u3")[0].to_public()
    want = rec.to_public()
    got.pop("id"), want.pop("id")
    assert got == want


def test_csv_header_case_insensitive_with_defaults():
    items = transfer.import_csv("\ufeffNOM,PrixVente,Quantite,Couleur\nTabouret,9,,rouge\n")
    assert items[0]["nom"] == "Tabouret"
    assert items[0]["prixVente"] == 9
    assert items[0]["prixAchat"] == 0
    assert items[0]["quantite"] == 1
    assert "Couleur" not in items[0]


def test_csv_errors_abort_everything(storage):
    store = LocalProductStore(storage)
    bad = 'nom,prixAchat\n"A",1\n"B",2,extra\n'
    with pytest.raises(DataImportError):
        transfer.import_into(store, "u1", "a.csv", bad)
    with pytest.raises(DataImportError):
        transfer.import_csv("foo,bar\n1,2\n")
    assert store.list("u1") == []


def test_json_errors_abort_everything(storage):
    store = LocalProductStore(storage)
    for bad in ("{pas du json", '{"nom": "A"}', '[{"nom": "A"}, 3]'):
        with pytest.raises(DataImportError):
            transfer.import_into(store, "u1", "b.json", bad)
    assert store.list("u1") == []


def test_empty_import_writes_nothing(storage):
    store = LocalProductStore(storage)
    assert transfer.import_into(store, "u1", "vide.csv", "") == []
    assert transfer.import_into(store, "u1", "vide.json", json.dumps([])) == []


def test_event_log_has_fixed_columns(tmp_path):
    append_event(str(tmp_path), {"type": "product_add", "id": "1", "nom": "Chaise"})
    path = append_event(str(tmp_path), {"type": "import", "count": 3, "unknown": "x"})
    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(EVENT_FIELDS)
    assert len(lines) == 3
    assert lines[2].split(",")[1] == "import"
