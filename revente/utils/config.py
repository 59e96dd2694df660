from dataclasses import dataclass
from pathlib import Path
import os
import yaml
from typing import Any, Dict, Optional

ENV_CONFIG = "REVENTE_CONFIG"

@dataclass
class AppConfig:
    app_name: str
    database_path: str
    security: Dict[str, Any]
    paths: Dict[str, Any]
    storage: Dict[str, Any]
    remote: Dict[str, Any]
    logging: Optional[Dict[str, Any]] = None

    @property
    def remote_enabled(self) -> bool:
        # backend distant seulement si la config d'auth distante est complète
        r = self.remote or {}
        return bool((r.get("api_key") or "").strip() and (r.get("database_url") or "").strip())

def _with_defaults(data: dict) -> dict:
    # valeurs de base
    data.setdefault("app_name", "Revente")
    data.setdefault("database_path", "./data/revente.db")

    # security
    sec = data.setdefault("security", {})
    sec.setdefault("secret_key", "CHANGE_ME_TO_A_RANDOM_LONG_STRING")
    sec.setdefault("access_token_minutes", 30)
    sec.setdefault("refresh_token_days", 14)
    sec.setdefault("cookie_name", "rv_session")
    sec.setdefault("min_password_length", 6)
    sec.setdefault("max_login_attempts", 5)
    sec.setdefault("lockout_seconds", 300)

    # paths
    paths = data.setdefault("paths", {})
    paths.setdefault("event_log_dir", "./logs")
    paths.setdefault("photos_dir", "./data/photos")
    paths.setdefault("exports_dir", "./exports")

    # stockage local : quota approximatif d'un slot (octets), 0 = illimité
    st = data.setdefault("storage", {})
    st.setdefault("quota_bytes", 5 * 1024 * 1024)

    # backend distant (base documentaire + identité + fichiers)
    rem = data.setdefault("remote", {})
    rem.setdefault("api_key", "")
    rem.setdefault("database_url", "")
    rem.setdefault("storage_bucket", "")
    rem.setdefault("timeout", 10)

    log = data.setdefault("logging", {})
    log.setdefault("level", "INFO")

    db_path = Path(data["database_path"])
    db_path.parent.mkdir(parents=True, exist_ok=True)

    for key in ("event_log_dir", "photos_dir", "exports_dir"):
        Path(paths[key]).mkdir(parents=True, exist_ok=True)

    return data

def load_config(path: str | None = None) -> AppConfig:
    """Résolu une seule fois au démarrage, puis injecté via AppContext."""
    path = path or os.environ.get(ENV_CONFIG) or "config.yaml"
    data = {}
    if Path(path).exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    data = _with_defaults(data)
    return AppConfig(**data)

def config_from_dict(data: dict) -> AppConfig:
    return AppConfig(**_with_defaults(dict(data)))
