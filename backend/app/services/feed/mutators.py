"""
Snapshot mutators: keep feed.json in step with the posts table after each user action.

Callers write the primary database first, then call one of these. A snapshot failure is
logged and reported as False; it never undoes the database write. The next rebuild_feed
(or the next patch of the same post) reconciles the divergence.
"""
import json
import logging
from typing import Any, Mapping

from sqlalchemy.orm import Session

from app.core.errors import TransientWriteFailure
from app.models.post import Post
from app.services.feed.snapshot import FeedDocument, SnapshotStore, iso, price_entry, ticker_key, utc_now
from app.services.returns import calc_return_rate, position_from_opinion

logger = logging.getLogger(__name__)


def parse_entries(post: Post) -> list[dict[str, Any]]:
    if not post.entries_json:
        return []
    try:
        entries = json.loads(post.entries_json)
    except (TypeError, json.JSONDecodeError):
        logger.warning("Post %s has unreadable entries_json; treating as no entries", post.id)
        return []
    return [e for e in entries if isinstance(e, dict)] if isinstance(entries, list) else []


def feed_post_from_record(post: Post) -> dict[str, Any]:
    """Denormalize a Post row into the feed.json post shape."""
    position = position_from_opinion(post.opinion, post.position_type)
    current = post.current_price or 0.0
    if post.is_closed and post.closed_price:
        current = post.closed_price
    data = {
        "id": post.id,
        "title": post.title or "",
        "author": post.author_name or post.author_id,
        "stockName": post.stock_name or post.ticker,
        "ticker": post.ticker,
        "exchange": post.exchange,
        "opinion": post.opinion,
        "positionType": position,
        "initialPrice": post.initial_price or 0.0,
        "currentPrice": current,
        "createdAt": post.created_at.strftime("%Y-%m-%d") if post.created_at else None,
        "views": post.views or 0,
        "likes": post.likes or 0,
        "category": post.category,
        "targetPrice": post.target_price,
        "is_closed": bool(post.is_closed),
        "closed_return_rate": post.closed_return_rate,
        "entries": parse_entries(post),
        "avgPrice": post.avg_price,
    }
    data["returnRate"] = calc_return_rate(data)
    return data


def _find(doc: FeedDocument, post_id: str) -> int:
    for i, p in enumerate(doc["posts"]):
        if p.get("id") == post_id:
            return i
    return -1


def _ticker_in_use(doc: FeedDocument, key: str) -> bool:
    return any(ticker_key(p.get("ticker")) == key for p in doc["posts"])


def _ensure_price(doc: FeedDocument, feed_post: Mapping[str, Any]) -> None:
    key = ticker_key(feed_post.get("ticker"))
    if not key or key in doc["prices"]:
        return
    price = feed_post.get("currentPrice") or feed_post.get("initialPrice") or 0.0
    doc["prices"][key] = price_entry(price, feed_post.get("exchange"), utc_now())


def _drop_price_if_unused(doc: FeedDocument, ticker: str | None) -> None:
    key = ticker_key(ticker)
    if key and not _ticker_in_use(doc, key):
        doc["prices"].pop(key, None)


def _best_effort(store: SnapshotStore, fn, action: str) -> bool:
    try:
        store.mutate(fn)
        return True
    except TransientWriteFailure as e:
        logger.warning("feed.json %s failed (primary write kept): %s", action, e)
        return False


def add_or_replace_post(store: SnapshotStore, feed_post: dict[str, Any]) -> bool:
    """Replace the post with the same id in place, or prepend it. Adds prices[TICKER] if absent."""

    def apply(doc: FeedDocument) -> None:
        idx = _find(doc, feed_post["id"])
        if idx >= 0:
            previous = doc["posts"][idx].get("ticker")
            doc["posts"][idx] = feed_post
            _drop_price_if_unused(doc, previous)
        else:
            doc["posts"].insert(0, feed_post)
        _ensure_price(doc, feed_post)

    return _best_effort(store, apply, f"add {feed_post.get('id')}")


def remove_post(store: SnapshotStore, post_id: str) -> bool:
    """Remove by id; drop prices[TICKER] when no other post references it. Unknown id is a no-op."""

    def apply(doc: FeedDocument) -> bool | None:
        idx = _find(doc, post_id)
        if idx < 0:
            return False
        removed = doc["posts"].pop(idx)
        _drop_price_if_unused(doc, removed.get("ticker"))
        return None

    return _best_effort(store, apply, f"remove {post_id}")


def patch_post(store: SnapshotStore, post_id: str, updates: Mapping[str, Any]) -> bool:
    """Shallow-merge updates into an existing post. Unknown id is a no-op."""

    def apply(doc: FeedDocument) -> bool | None:
        idx = _find(doc, post_id)
        if idx < 0:
            return False
        post = doc["posts"][idx]
        previous = post.get("ticker")
        post.update(updates)
        if ticker_key(previous) != ticker_key(post.get("ticker")):
            _drop_price_if_unused(doc, previous)
            _ensure_price(doc, post)
        return None

    return _best_effort(store, apply, f"patch {post_id}")


def rebuild_feed(db: Session, store: SnapshotStore) -> FeedDocument:
    """
    Full reconciliation: regenerate feed.json from the posts table, newest first.
    Known prices entries survive for tickers still in use. Raises TransientWriteFailure
    when the snapshot cannot be saved.
    """
    rows = db.query(Post).order_by(Post.created_at.desc()).all()
    posts = [feed_post_from_record(r) for r in rows]
    existing = store.read_snapshot().get("prices") or {}
    now = utc_now()
    prices: dict[str, Any] = {}
    for p in posts:
        key = ticker_key(p["ticker"])
        if not key or key in prices:
            continue
        if key in existing:
            prices[key] = existing[key]
        else:
            prices[key] = price_entry(p["currentPrice"] or p["initialPrice"], p.get("exchange"), now)
    doc = {"lastUpdated": iso(now), "totalPosts": len(posts), "posts": posts, "prices": prices}
    store.write_snapshot(doc)
    logger.info("feed.json rebuilt: %s posts, %s tickers", len(posts), len(prices))
    return doc
