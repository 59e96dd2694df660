from pathlib import Path
import json
import sqlite3
from contextlib import contextmanager
from revente.utils.logging import get_logger
from revente.utils.exceptions import StorageError, QuotaExceeded

logger = get_logger("infra.db")

class DB:
    def __init__(self, db_path: str):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._memory_conn = None
        if db_path == ":memory:":
            # une seule connexion partagée, sinon chaque connect() repart d'une base vide
            self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)
            self._memory_conn.row_factory = sqlite3.Row
        self._ensure_pragmas()

    def _ensure_pragmas(self):
        with self.connect() as conn:
            cur = conn.cursor()
            if self._memory_conn is None:
                cur.execute("PRAGMA journal_mode = WAL;")
            conn.commit()

    @contextmanager
    def connect(self):
        if self._memory_conn is not None:
            yield self._memory_conn
            return
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self):
        with self.connect() as conn:
            try:
                yield conn
                conn.commit()
            except Exception as e:
                conn.rollback()
                logger.error(f"DB transaction rollback: {e}")
                raise

def run_migrations(db: DB):
    # table unique de « slots » nommés, valeur JSON (équivalent du stockage local navigateur)
    with db.transaction() as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS slots (
                key        TEXT PRIMARY KEY,
                value      TEXT NOT NULL,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """)


class SlotStorage:
    """
    Stockage local clé/valeur, chaque slot contient un document JSON.
    Écritures synchrones ; échecs -> QuotaExceeded (slot trop gros) ou StorageError.
    """

    def __init__(self, db: DB, quota_bytes: int = 0):
        self.db = db
        self.quota_bytes = int(quota_bytes or 0)
        run_migrations(db)

    def get(self, key: str, default=None):
        try:
            with self.db.connect() as conn:
                row = conn.execute("SELECT value FROM slots WHERE key=? LIMIT 1", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Lecture du slot {key} impossible: {e}") from e
        if not row:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning(f"slot {key} illisible, ignoré")
            return default

    def set(self, key: str, value) -> None:
        try:
            raw = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Sérialisation du slot {key} impossible: {e}") from e
        if self.quota_bytes and len(raw.encode("utf-8")) > self.quota_bytes:
            raise QuotaExceeded()
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    "INSERT INTO slots(key, value, updated_at) VALUES(?, ?, CURRENT_TIMESTAMP) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
                    (key, raw),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Écriture du slot {key} impossible: {e}") from e

    def remove(self, key: str) -> None:
        try:
            with self.db.transaction() as conn:
                conn.execute("DELETE FROM slots WHERE key=?", (key,))
        except sqlite3.Error as e:
            raise StorageError(f"Suppression du slot {key} impossible: {e}") from e

    def keys(self, prefix: str = "") -> list[str]:
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT key FROM slots WHERE key LIKE ? ORDER BY key", (prefix + "%",)
            ).fetchall()
        # LIKE traite "_" comme joker : on refiltre
        return [r["key"] for r in rows if r["key"].startswith(prefix)]
