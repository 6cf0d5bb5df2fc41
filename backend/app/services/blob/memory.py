"""In-process blob store: tests and single-process tooling."""
import threading

from app.core.errors import NotFoundError, SnapshotConflict
from app.services.blob.base import Blob, to_bytes


class MemoryBlobStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._objects: dict[str, Blob] = {}

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._objects

    def fetch(self, key: str) -> Blob | None:
        with self._lock:
            blob = self._objects.get(key)
            if blob is None:
                return None
            return Blob(blob.key, blob.content, blob.generation, blob.content_type, blob.cache_control)

    def download(self, key: str) -> bytes:
        blob = self.fetch(key)
        if blob is None:
            raise NotFoundError(f"Blob {key} not found")
        return blob.content

    def save(
        self,
        key: str,
        data: bytes | str,
        *,
        content_type: str = "application/octet-stream",
        cache_control: str | None = None,
        if_generation_match: int | None = None,
    ) -> int:
        with self._lock:
            current = self._objects.get(key)
            actual = current.generation if current else 0
            if if_generation_match is not None and if_generation_match != actual:
                raise SnapshotConflict(key, if_generation_match, actual)
            generation = actual + 1
            self._objects[key] = Blob(key, to_bytes(data), generation, content_type, cache_control)
            return generation

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._objects.pop(key, None) is not None
