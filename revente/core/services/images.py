# core/services/images.py
from __future__ import annotations
import mimetypes
import os
import re
from datetime import datetime
from pathlib import Path

from revente.utils.exceptions import StorageError
from revente.utils.logging import get_logger

logger = get_logger("images")

_SAFE = re.compile(r"[^A-Za-z0-9._-]+")


def _object_name(filename: str, stem: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower() or ".jpg"
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S%f")
    return f"{_SAFE.sub('_', stem) or 'img'}_{stamp}{ext}"


class LocalImageStorage:
    """Photos déposées dans le dossier configuré, servies sous /photos."""

    def __init__(self, photos_dir: str, url_prefix: str = "/photos"):
        self.photos_dir = Path(photos_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def upload(self, owner_id: str, filename: str, data: bytes) -> str:
        self.photos_dir.mkdir(parents=True, exist_ok=True)
        name = _object_name(filename, owner_id)
        dest = self.photos_dir / name
        try:
            with open(dest, "wb") as f:
                f.write(data)
        except OSError as e:
            raise StorageError(f"Photo non enregistrée: {e}") from e
        logger.info(f"photo enregistrée: {dest}")
        return f"{self.url_prefix}/{name}"


class RemoteImageStorage:
    """Objets users/{uid}/images/<nom> ; retourne l'URL de téléchargement."""

    def __init__(self, backend):
        self.backend = backend

    def upload(self, owner_id: str, filename: str, data: bytes) -> str:
        ctype = mimetypes.guess_type(filename or "")[0] or "application/octet-stream"
        name = f"users/{owner_id}/images/{_object_name(filename, 'img')}"
        url = self.backend.upload(name, data, ctype)
        logger.info(f"photo déposée: {name}")
        return url
