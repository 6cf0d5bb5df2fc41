"""
Blob storage backends for feed.json: database (blob_objects), local disk, in-memory.
Each stores whole objects with a generation counter so writers can detect lost updates.
"""
from typing import Callable

from sqlalchemy.orm import Session

from app.services.blob.base import Blob, BlobStore
from app.services.blob.database import DatabaseBlobStore
from app.services.blob.local import LocalBlobStore
from app.services.blob.memory import MemoryBlobStore

BACKENDS = ("database", "local", "memory")


def build_blob_store(backend: str, *, session_factory: Callable[[], Session] | None = None, local_dir: str = "") -> BlobStore:
    """Construct the configured backend. Raises ValueError for unknown names."""
    if backend == "database":
        if session_factory is None:
            raise ValueError("database blob backend needs a session_factory")
        return DatabaseBlobStore(session_factory)
    if backend == "local":
        return LocalBlobStore(local_dir or "data/blobs")
    if backend == "memory":
        return MemoryBlobStore()
    raise ValueError(f"Unknown blob backend: {backend}. Available: {list(BACKENDS)}")


__all__ = [
    "Blob",
    "BlobStore",
    "DatabaseBlobStore",
    "LocalBlobStore",
    "MemoryBlobStore",
    "build_blob_store",
]
