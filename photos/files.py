"""
photos/files.py -- Backing-file storage for photos (local uploads directory).

Each photo owns two files: the main image at its storage key and the
thumbnail at thumb_key_for(key). Keys are relative, slash-separated paths
under the uploads root, and the same key doubles as the public URL suffix
under /uploads (mounted with StaticFiles in api/main.py).

discard() is best-effort: the database is the source of truth, a file that
is already gone is fine, and an OS error is logged and swallowed so a
committed row change is never undone by a storage hiccup.
"""

from __future__ import annotations

import logging
import secrets
import time
from pathlib import Path

from photos.models import PhotoKind, thumb_key_for

logger = logging.getLogger("matcha.photos")

_KIND_PREFIX = {PhotoKind.avatar: "a", PhotoKind.gallery: "g"}


class LocalFileStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def new_key(self, user_id: int, kind: PhotoKind, ext: str) -> str:
        """u/<user_id>/<a|g>_<epoch_ms>_<6 hex>.<ext>"""
        stamp = int(time.time() * 1000)
        return f"u/{user_id}/{_KIND_PREFIX[kind]}_{stamp}_{secrets.token_hex(3)}.{ext}"

    def path_for(self, storage_key: str) -> Path:
        path = (self.root / storage_key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValueError(f"storage key escapes the uploads root: {storage_key!r}")
        return path

    def write(self, storage_key: str, main: bytes, thumb: bytes) -> None:
        """Write main + thumbnail. Raises OSError on failure (nothing is inserted yet)."""
        main_path = self.path_for(storage_key)
        main_path.parent.mkdir(parents=True, exist_ok=True)
        main_path.write_bytes(main)
        self.path_for(thumb_key_for(storage_key)).write_bytes(thumb)

    def discard(self, storage_key: str) -> bool:
        """Remove main + thumbnail. Returns True if both are gone afterwards."""
        ok = True
        for key in (storage_key, thumb_key_for(storage_key)):
            try:
                self.path_for(key).unlink(missing_ok=True)
            except (OSError, ValueError) as exc:
                logger.warning("could not remove backing file %s: %s", key, exc)
                ok = False
        return ok

    def exists(self, storage_key: str) -> bool:
        return self.path_for(storage_key).is_file()

    @staticmethod
    def public_url(storage_key: str) -> str:
        return f"/uploads/{storage_key}"

    @staticmethod
    def thumb_url(storage_key: str) -> str:
        return f"/uploads/{thumb_key_for(storage_key)}"
