"""
Blob store backed by the blob_objects table (one row per key).

Conditional writes are a compare-and-swap on the generation column:
UPDATE ... WHERE key = :key AND generation = :expected, zero rows => SnapshotConflict.
"""
import logging
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, SnapshotConflict
from app.models.blob_object import BlobObject
from app.services.blob.base import Blob, to_bytes

logger = logging.getLogger(__name__)


class DatabaseBlobStore:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def exists(self, key: str) -> bool:
        db = self._session_factory()
        try:
            return db.query(BlobObject.key).filter(BlobObject.key == key).first() is not None
        finally:
            db.close()

    def fetch(self, key: str) -> Blob | None:
        db = self._session_factory()
        try:
            row = db.query(BlobObject).filter(BlobObject.key == key).first()
            if not row:
                return None
            return Blob(
                key=row.key,
                content=(row.content or "").encode("utf-8"),
                generation=row.generation or 1,
                content_type=row.content_type,
                cache_control=row.cache_control,
            )
        finally:
            db.close()

    def download(self, key: str) -> bytes:
        blob = self.fetch(key)
        if blob is None:
            raise NotFoundError(f"Blob {key} not found")
        return blob.content

    def _current_generation(self, db: Session, key: str) -> int:
        row = db.query(BlobObject.generation).filter(BlobObject.key == key).first()
        return int(row[0]) if row else 0

    def save(
        self,
        key: str,
        data: bytes | str,
        *,
        content_type: str = "application/octet-stream",
        cache_control: str | None = None,
        if_generation_match: int | None = None,
    ) -> int:
        text = to_bytes(data).decode("utf-8")
        db = self._session_factory()
        try:
            if if_generation_match is None:
                return self._save_unconditional(db, key, text, content_type, cache_control)
            if if_generation_match == 0:
                db.add(
                    BlobObject(
                        key=key,
                        content=text,
                        content_type=content_type,
                        cache_control=cache_control,
                        generation=1,
                    )
                )
                try:
                    db.commit()
                except IntegrityError:
                    db.rollback()
                    raise SnapshotConflict(key, 0, self._current_generation(db, key))
                return 1
            updated = (
                db.query(BlobObject)
                .filter(BlobObject.key == key, BlobObject.generation == if_generation_match)
                .update(
                    {
                        BlobObject.content: text,
                        BlobObject.content_type: content_type,
                        BlobObject.cache_control: cache_control,
                        BlobObject.generation: if_generation_match + 1,
                    },
                    synchronize_session=False,
                )
            )
            if updated == 0:
                db.rollback()
                raise SnapshotConflict(key, if_generation_match, self._current_generation(db, key))
            db.commit()
            return if_generation_match + 1
        except SnapshotConflict:
            raise
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _save_unconditional(
        self, db: Session, key: str, text: str, content_type: str, cache_control: str | None
    ) -> int:
        row = db.query(BlobObject).filter(BlobObject.key == key).first()
        if row:
            row.content = text
            row.content_type = content_type
            row.cache_control = cache_control
            row.generation = (row.generation or 0) + 1
            generation = row.generation
        else:
            generation = 1
            db.add(
                BlobObject(
                    key=key,
                    content=text,
                    content_type=content_type,
                    cache_control=cache_control,
                    generation=generation,
                )
            )
        try:
            db.commit()
        except IntegrityError:
            # Lost an insert race; the row exists now, overwrite it
            db.rollback()
            return self._save_unconditional(db, key, text, content_type, cache_control)
        return generation

    def delete(self, key: str) -> bool:
        db = self._session_factory()
        try:
            deleted = db.query(BlobObject).filter(BlobObject.key == key).delete()
            db.commit()
            return deleted > 0
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
