from pathlib import Path
import csv, datetime

# colonnes fixes : un même fichier journalier reçoit des événements de types différents
EVENT_FIELDS = ["at", "type", "owner", "id", "sku", "nom", "statut", "count", "detail"]

def append_event(base_dir: str, event: dict):
    """Journal d'activité CSV, un fichier par jour (flow_AAAAMMJJ.csv)."""
    Path(base_dir).mkdir(parents=True, exist_ok=True)
    now = datetime.datetime.now()
    file = Path(base_dir) / f"flow_{now.strftime('%Y%m%d')}.csv"
    new_file = not file.exists()
    row = {"at": now.isoformat(timespec="seconds"), **event}
    with file.open("a", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=EVENT_FIELDS, extrasaction="ignore")
        if new_file:
            writer.writeheader()
        writer.writerow(row)
    return file
