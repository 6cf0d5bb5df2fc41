"""Protocol for blob storage backends. Full-object overwrite only; no partial writes or appends."""
from dataclasses import dataclass
from typing import Protocol


@dataclass
class Blob:
    """One stored object. generation increases on every save (starts at 1)."""

    key: str
    content: bytes
    generation: int
    content_type: str = "application/octet-stream"
    cache_control: str | None = None


class BlobStore(Protocol):
    """
    Interface for database, local-disk and in-memory stores. Same contract; only storage differs.

    save(..., if_generation_match=N) writes only if the stored generation is N
    (N == 0 means "must not exist yet") and raises SnapshotConflict otherwise.
    """

    def exists(self, key: str) -> bool:
        ...

    def fetch(self, key: str) -> Blob | None:
        ...

    def download(self, key: str) -> bytes:
        """Content of key; raises NotFoundError if absent."""
        ...

    def save(
        self,
        key: str,
        data: bytes | str,
        *,
        content_type: str = "application/octet-stream",
        cache_control: str | None = None,
        if_generation_match: int | None = None,
    ) -> int:
        """Store data; returns the new generation."""
        ...

    def delete(self, key: str) -> bool:
        ...


def to_bytes(data: bytes | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)
