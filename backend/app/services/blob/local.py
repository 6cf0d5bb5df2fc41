"""
Local-disk blob store: <root>/<key> plus <root>/<key>.meta.json (generation, content type, cache control).

Writes go to a temp file and os.replace() into place, so readers never see a torn document.
Conditional writes are serialized per process; separate processes sharing a directory get
last-writer-wins.
"""
import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from app.core.errors import NotFoundError, SnapshotConflict
from app.services.blob.base import Blob, to_bytes

logger = logging.getLogger(__name__)

_META_SUFFIX = ".meta.json"


class LocalBlobStore:
    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        safe = key.strip().lstrip("/")
        if not safe or ".." in Path(safe).parts:
            raise ValueError(f"Invalid blob key: {key!r}")
        return self._root / safe

    def _meta_path(self, key: str) -> Path:
        p = self._path(key)
        return p.with_name(p.name + _META_SUFFIX)

    def _read_meta(self, key: str) -> dict:
        try:
            return json.loads(self._meta_path(key).read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Blob meta for %s unreadable (treating as generation 1): %s", key, e)
            return {"generation": 1}

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def fetch(self, key: str) -> Blob | None:
        path = self._path(key)
        try:
            content = path.read_bytes()
        except FileNotFoundError:
            return None
        meta = self._read_meta(key)
        return Blob(
            key=key,
            content=content,
            generation=int(meta.get("generation") or 1),
            content_type=meta.get("content_type") or "application/octet-stream",
            cache_control=meta.get("cache_control"),
        )

    def download(self, key: str) -> bytes:
        blob = self.fetch(key)
        if blob is None:
            raise NotFoundError(f"Blob {key} not found")
        return blob.content

    def _atomic_write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    def save(
        self,
        key: str,
        data: bytes | str,
        *,
        content_type: str = "application/octet-stream",
        cache_control: str | None = None,
        if_generation_match: int | None = None,
    ) -> int:
        path = self._path(key)
        with self._lock:
            actual = int(self._read_meta(key).get("generation") or 1) if path.exists() else 0
            if if_generation_match is not None and if_generation_match != actual:
                raise SnapshotConflict(key, if_generation_match, actual)
            generation = actual + 1
            self._atomic_write(path, to_bytes(data))
            meta = {"generation": generation, "content_type": content_type, "cache_control": cache_control}
            self._atomic_write(self._meta_path(key), json.dumps(meta).encode("utf-8"))
            return generation

    def delete(self, key: str) -> bool:
        path = self._path(key)
        with self._lock:
            existed = path.exists()
            for p in (path, self._meta_path(key)):
                try:
                    p.unlink()
                except FileNotFoundError:
                    pass
            return existed
