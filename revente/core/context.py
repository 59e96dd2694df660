# core/context.py
"""
Contexte applicatif construit une seule fois au démarrage et injecté ensuite
(API, CLI, tests). Le choix local / distant se fait ici, d'après la présence
de la configuration distante, et ne change plus pendant l'exécution.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from revente.core.services.auth import AuthGateway, LocalAuthGateway, RemoteAuthGateway
from revente.core.services.ids import SkuSettings
from revente.core.services.images import LocalImageStorage, RemoteImageStorage
from revente.core.services.inventory import ProductStore, LocalProductStore, RemoteProductStore
from revente.core.services.settings import PreferenceStore, LocalPreferenceStore, RemotePreferenceStore
from revente.export.event_logger import append_event
from revente.infra.db_interface import DB, SlotStorage
from revente.infra.remote import RemoteBackend
from revente.utils.config import AppConfig
from revente.utils.logging import setup_logger

logger = setup_logger()


@dataclass
class AppContext:
    cfg: AppConfig
    storage: SlotStorage
    auth: AuthGateway
    products: ProductStore
    preferences: PreferenceStore
    images: object
    sku: SkuSettings
    remote: Optional[RemoteBackend] = None

    @property
    def mode(self) -> str:
        return "remote" if self.remote is not None else "local"

    def journal(self, event: dict) -> None:
        append_event(self.cfg.paths["event_log_dir"], event)

    def clear_local_data(self, owner_id: str) -> None:
        """« Vider les données locales » : produits et préférences du slot local."""
        LocalProductStore(self.storage).clear(owner_id)
        LocalPreferenceStore(self.storage).clear(owner_id)
        logger.info(f"données locales effacées pour {owner_id}")


def build_context(cfg: AppConfig, remote: RemoteBackend | None = None) -> AppContext:
    setup_logger(level=(cfg.logging or {}).get("level", "INFO"))
    storage = SlotStorage(DB(cfg.database_path), quota_bytes=cfg.storage.get("quota_bytes", 0))
    sec = cfg.security
    min_pw = int(sec.get("min_password_length", 6))

    if remote is None and cfg.remote_enabled:
        r = cfg.remote
        remote = RemoteBackend(r["api_key"], r["database_url"], r.get("storage_bucket", ""),
                               timeout=r.get("timeout", 10))

    if remote is not None:
        auth = RemoteAuthGateway(remote, storage, min_password_length=min_pw)
        remote.token_provider = auth.id_token
        ctx = AppContext(
            cfg=cfg, storage=storage, auth=auth,
            products=RemoteProductStore(remote),
            preferences=RemotePreferenceStore(remote),
            images=RemoteImageStorage(remote),
            sku=SkuSettings(storage),
            remote=remote,
        )
    else:
        ctx = AppContext(
            cfg=cfg, storage=storage,
            auth=LocalAuthGateway(storage, min_password_length=min_pw,
                                  max_attempts=int(sec.get("max_login_attempts", 5)),
                                  lockout_seconds=float(sec.get("lockout_seconds", 300))),
            products=LocalProductStore(storage),
            preferences=LocalPreferenceStore(storage),
            images=LocalImageStorage(cfg.paths["photos_dir"]),
            sku=SkuSettings(storage),
        )
    logger.info(f"{cfg.app_name}: backend {ctx.mode}")
    return ctx
