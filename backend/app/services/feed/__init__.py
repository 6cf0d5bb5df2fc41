"""
feed.json: the denormalized snapshot every page reads.

- snapshot: versioned read/write of the whole document
- mutators: per-post add/remove/patch after primary-database writes, full rebuild
- cache: in-process stale-while-revalidate cache in front of the snapshot
"""
from app.services.feed.cache import (
    FEED_POLICY,
    PRICES_POLICY,
    CachePolicy,
    JsonCache,
    get_cached_feed,
    get_cached_prices,
)
from app.services.feed.mutators import (
    add_or_replace_post,
    feed_post_from_record,
    patch_post,
    rebuild_feed,
    remove_post,
)
from app.services.feed.snapshot import SnapshotStore, empty_feed, ticker_key

__all__ = [
    "FEED_POLICY",
    "PRICES_POLICY",
    "CachePolicy",
    "JsonCache",
    "SnapshotStore",
    "add_or_replace_post",
    "empty_feed",
    "feed_post_from_record",
    "get_cached_feed",
    "get_cached_prices",
    "patch_post",
    "rebuild_feed",
    "remove_post",
    "ticker_key",
]
