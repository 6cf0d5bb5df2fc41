"""
Snapshot store: feed.json as one versioned blob.

Document shape:
    {"lastUpdated": iso, "totalPosts": int, "posts": [...], "prices": {TICKER: {...}}}

Reads never fail the caller: a missing blob is an empty feed (first run), a corrupt one is
logged and treated as empty. Writes are whole-document overwrites. mutate() does
read-modify-write with a generation check so concurrent writers retry instead of silently
dropping each other's changes; after the last retry it falls back to last-writer-wins.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from app.core.constants import FEED_BLOB_KEY, FEED_CACHE_CONTROL, FEED_CONTENT_TYPE, SNAPSHOT_WRITE_RETRIES
from app.core.errors import SnapshotConflict, SnapshotUnavailable, TransientWriteFailure
from app.services.blob.base import BlobStore

logger = logging.getLogger(__name__)

FeedDocument = dict[str, Any]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def empty_feed(now: datetime | None = None) -> FeedDocument:
    return {"lastUpdated": iso(now or utc_now()), "totalPosts": 0, "posts": [], "prices": {}}


def normalize_feed(doc: Any) -> FeedDocument:
    """Coerce whatever was stored into the document shape; missing parts become empty."""
    if not isinstance(doc, dict):
        return empty_feed()
    posts = doc.get("posts")
    prices = doc.get("prices")
    out = dict(doc)
    out["posts"] = [p for p in posts if isinstance(p, dict)] if isinstance(posts, list) else []
    out["prices"] = prices if isinstance(prices, dict) else {}
    out["totalPosts"] = len(out["posts"])
    out.setdefault("lastUpdated", iso(utc_now()))
    return out


class SnapshotStore:
    def __init__(
        self,
        blob: BlobStore,
        *,
        key: str = FEED_BLOB_KEY,
        retries: int = SNAPSHOT_WRITE_RETRIES,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.blob = blob
        self.key = key
        self.retries = max(0, retries)
        self._clock = clock

    def read_versioned(self) -> tuple[FeedDocument, int | None]:
        """Document plus the generation it was read at: 0 when the blob does not exist yet, None when unreadable."""
        try:
            blob = self.blob.fetch(self.key)
        except Exception as e:
            logger.warning("Snapshot read failed for %s (serving empty feed): %s", self.key, e, exc_info=True)
            return empty_feed(self._clock()), None
        if blob is None:
            return empty_feed(self._clock()), 0
        try:
            doc = json.loads(blob.content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("Snapshot %s is corrupt (treating as empty): %s", self.key, e)
            return empty_feed(self._clock()), blob.generation
        return normalize_feed(doc), blob.generation

    def read_snapshot(self) -> FeedDocument:
        doc, _ = self.read_versioned()
        return doc

    def load(self) -> FeedDocument:
        """Like read_snapshot, but raises SnapshotUnavailable instead of hiding a backend failure."""
        doc, generation = self.read_versioned()
        if generation is None:
            raise SnapshotUnavailable(f"{self.key} could not be read")
        return doc

    def write_snapshot(self, doc: FeedDocument, if_generation_match: int | None = None) -> int:
        """
        Persist doc. Always stamps lastUpdated and recomputes totalPosts.
        Raises SnapshotConflict when if_generation_match is given and stale,
        TransientWriteFailure when the backend fails.
        """
        doc["posts"] = doc.get("posts") or []
        doc["prices"] = doc.get("prices") or {}
        doc["lastUpdated"] = iso(self._clock())
        doc["totalPosts"] = len(doc["posts"])
        body = json.dumps(doc, ensure_ascii=False, indent=2)
        try:
            return self.blob.save(
                self.key,
                body,
                content_type=FEED_CONTENT_TYPE,
                cache_control=FEED_CACHE_CONTROL,
                if_generation_match=if_generation_match,
            )
        except SnapshotConflict:
            raise
        except Exception as e:
            raise TransientWriteFailure(f"Saving {self.key} failed: {e}") from e

    def mutate(self, fn: Callable[[FeedDocument], Any]) -> FeedDocument:
        """
        Apply fn to the current document in place and save it.
        fn returning False means "nothing changed": the write is skipped.
        """
        for attempt in range(self.retries + 1):
            doc, generation = self.read_versioned()
            if generation is None:
                # backend unreadable: never overwrite a document we could not see
                raise TransientWriteFailure(f"Reading {self.key} failed; mutation skipped")
            if fn(doc) is False:
                return doc
            try:
                self.write_snapshot(doc, if_generation_match=generation)
                return doc
            except SnapshotConflict as e:
                logger.info("Snapshot write conflict (attempt %s/%s): %s", attempt + 1, self.retries + 1, e)
        logger.warning("Snapshot %s still conflicting after %s attempts; writing last-writer-wins", self.key, self.retries + 1)
        doc, generation = self.read_versioned()
        if generation is None:
            raise TransientWriteFailure(f"Reading {self.key} failed; mutation skipped")
        if fn(doc) is False:
            return doc
        self.write_snapshot(doc)
        return doc


def ticker_key(ticker: str | None) -> str:
    """prices map key: one entry per distinct uppercase ticker."""
    return (ticker or "").strip().upper()


def price_entry(current_price: float, exchange: str | None, now: datetime) -> dict[str, Any]:
    return {"currentPrice": current_price, "exchange": exchange, "lastUpdated": iso(now)}
