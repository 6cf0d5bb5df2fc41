"""
User actions on posts. Each one writes the posts table first (authoritative), then mirrors the
change into feed.json (best-effort), then invalidates caches and the affected pages.

Ownership checks always read the posts table, never the snapshot.
"""
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from app.core.constants import CACHE_KEY_FEED, MAX_AVERAGING_ENTRIES
from app.core.errors import ConflictError, InvalidRequest, NotFoundError, PermissionDenied
from app.models.post import Post
from app.services.container import Services
from app.services.feed.mutators import (
    add_or_replace_post,
    feed_post_from_record,
    parse_entries,
    patch_post,
    remove_post,
)
from app.services.feed.snapshot import ticker_key
from app.services.invalidation import invalidate
from app.services.quotes.exchanges import resolve_exchange
from app.services.returns import (
    POSITION_TYPES,
    average_basis,
    calculate_return,
    effective_basis,
    position_from_opinion,
)

logger = logging.getLogger(__name__)

OPINIONS = ("buy", "sell", "hold")
EDITABLE_FIELDS = {
    "title": "title",
    "stock_name": "stockName",
    "category": "category",
    "opinion": "opinion",
    "target_price": "targetPrice",
}


def report_path(post_id: str) -> str:
    return f"/reports/{post_id}"


def _get_post(db: Session, post_id: str) -> Post:
    row = db.query(Post).filter(Post.id == post_id).first()
    if not row:
        raise NotFoundError(f"Post {post_id} not found")
    return row


def _owned_post(db: Session, post_id: str, author_id: str) -> Post:
    row = _get_post(db, post_id)
    if row.author_id != author_id:
        raise PermissionDenied("Only the author can modify this post")
    return row


def _snapshot_price(services: Services, ticker: str) -> float:
    """prices[TICKER].currentPrice from feed.json; 0 when absent or unreadable."""
    entry = (services.store.read_snapshot().get("prices") or {}).get(ticker_key(ticker)) or {}
    try:
        return float(entry.get("currentPrice") or 0)
    except (TypeError, ValueError):
        return 0.0


def _sync(services: Services, post_id: str) -> None:
    invalidate(services, path="/")
    invalidate(services, path=report_path(post_id), keys=())


def create_post(
    db: Session,
    services: Services,
    *,
    author_id: str,
    ticker: str,
    initial_price: float,
    title: str = "",
    author_name: str | None = None,
    stock_name: str | None = None,
    exchange: str | None = None,
    opinion: str = "buy",
    position_type: str | None = None,
    target_price: float | None = None,
    category: str | None = None,
) -> dict[str, Any]:
    if not (ticker or "").strip():
        raise InvalidRequest("ticker is required")
    if not initial_price or initial_price <= 0:
        raise InvalidRequest("initial_price must be positive")
    opinion = (opinion or "buy").lower()
    if opinion not in OPINIONS:
        raise InvalidRequest(f"opinion must be one of {list(OPINIONS)}")
    if position_type is not None and position_type not in POSITION_TYPES:
        raise InvalidRequest(f"position_type must be one of {list(POSITION_TYPES)}")
    services.write_limiter.check(author_id)

    row = Post(
        id=uuid.uuid4().hex,
        title=title or "",
        author_id=author_id,
        author_name=author_name,
        stock_name=stock_name,
        ticker=ticker.strip(),
        exchange=resolve_exchange(ticker.strip().upper(), exchange),
        opinion=opinion,
        position_type=position_from_opinion(opinion, position_type),
        category=category,
        initial_price=float(initial_price),
        current_price=float(initial_price),
        return_rate=0.0,
        target_price=target_price,
        entry_count=0,
        created_at=datetime.now(timezone.utc),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Post %s created by %s (%s)", row.id, author_id, row.ticker)

    feed_post = feed_post_from_record(row)
    add_or_replace_post(services.store, feed_post)
    _sync(services, row.id)
    return feed_post


def update_post(db: Session, services: Services, post_id: str, author_id: str, **fields: Any) -> dict[str, Any]:
    """Edit descriptive fields (title, stock_name, category, opinion, target_price). Prices are not editable."""
    row = _owned_post(db, post_id, author_id)
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise InvalidRequest(f"Fields not editable: {sorted(unknown)}")
    if "opinion" in fields and fields["opinion"] is not None and fields["opinion"].lower() not in OPINIONS:
        raise InvalidRequest(f"opinion must be one of {list(OPINIONS)}")
    updates: dict[str, Any] = {}
    for name, value in fields.items():
        if value is None:
            continue
        if name == "opinion":
            value = value.lower()
        setattr(row, name, value)
        updates[EDITABLE_FIELDS[name]] = value
    if not updates:
        return feed_post_from_record(row)
    db.commit()
    db.refresh(row)
    patch_post(services.store, post_id, updates)
    _sync(services, post_id)
    return feed_post_from_record(row)


def delete_post(db: Session, services: Services, post_id: str, author_id: str) -> None:
    row = _owned_post(db, post_id, author_id)
    db.delete(row)
    db.commit()
    logger.info("Post %s deleted by %s", post_id, author_id)
    remove_post(services.store, post_id)
    _sync(services, post_id)


def average_down(
    db: Session,
    services: Services,
    post_id: str,
    author_id: str,
    *,
    quantity: float | None = None,
) -> dict[str, Any]:
    """
    Append an averaging-down entry at the current market price and recompute the basis.
    Current price: feed.json prices[TICKER], falling back to the stored current price.
    Concurrent appends to the same post: the loser gets ConflictError and may retry.
    """
    row = _owned_post(db, post_id, author_id)
    if row.is_closed:
        raise InvalidRequest("Closed positions cannot be averaged down")
    count = row.entry_count or 0
    if count >= MAX_AVERAGING_ENTRIES:
        raise InvalidRequest(f"At most {MAX_AVERAGING_ENTRIES} averaging-down entries per post")

    price = _snapshot_price(services, row.ticker) or (row.current_price or 0.0)
    if price <= 0:
        raise InvalidRequest(f"No current price for {row.ticker}")

    now = datetime.now(timezone.utc)
    entry: dict[str, Any] = {"price": price, "date": now.strftime("%Y-%m-%d"), "timestamp": int(time.time() * 1000)}
    if quantity and quantity > 0:
        entry["quantity"] = quantity
    entries = parse_entries(row) + [entry]
    avg = average_basis(row.initial_price, entries)
    rate = calculate_return(avg, price, position_from_opinion(row.opinion, row.position_type))

    updated = (
        db.query(Post)
        .filter(Post.id == post_id, Post.entry_count == count, Post.is_closed.is_(False))
        .update(
            {
                Post.entries_json: json.dumps(entries),
                Post.entry_count: count + 1,
                Post.avg_price: avg,
                Post.current_price: price,
                Post.return_rate: rate,
            },
            synchronize_session=False,
        )
    )
    if updated == 0:
        db.rollback()
        raise ConflictError("Post changed while averaging down; reload and try again")
    db.commit()
    db.refresh(row)
    logger.info("Post %s averaged down at %s (entry %s, avg %s)", post_id, price, count + 1, avg)

    patch_post(
        services.store,
        post_id,
        {"entries": entries, "avgPrice": avg, "currentPrice": price, "returnRate": rate},
    )
    _sync(services, post_id)
    return feed_post_from_record(row)


def close_position(
    db: Session,
    services: Services,
    post_id: str,
    author_id: str,
    *,
    closed_return_rate: float | None = None,
    closed_price: float | None = None,
) -> dict[str, Any]:
    """
    Freeze the post. Rate: caller-supplied, else the stored current rate.
    Price: caller-supplied, else feed.json price, else stored current price, else basis.
    """
    row = _owned_post(db, post_id, author_id)
    if row.is_closed:
        raise InvalidRequest("Position already closed")
    basis = effective_basis({"avgPrice": row.avg_price, "initialPrice": row.initial_price})
    final_price = closed_price or _snapshot_price(services, row.ticker) or row.current_price or basis
    final_rate = round(float(closed_return_rate if closed_return_rate is not None else (row.return_rate or 0.0)), 2)

    row.is_closed = True
    row.closed_at = datetime.now(timezone.utc)
    row.closed_return_rate = final_rate
    row.closed_price = final_price
    row.current_price = final_price
    row.return_rate = final_rate
    db.commit()
    db.refresh(row)
    logger.info("Post %s closed at %s (%s%%)", post_id, final_price, final_rate)

    patch_post(
        services.store,
        post_id,
        {"is_closed": True, "closed_return_rate": final_rate, "currentPrice": final_price, "returnRate": final_rate},
    )
    _sync(services, post_id)
    return feed_post_from_record(row)


def _bump(db: Session, services: Services, post_id: str, column, feed_field: str) -> int:
    updated = db.query(Post).filter(Post.id == post_id).update({column: column + 1}, synchronize_session=False)
    if updated == 0:
        db.rollback()
        raise NotFoundError(f"Post {post_id} not found")
    db.commit()
    value = db.query(column).filter(Post.id == post_id).scalar() or 0
    patch_post(services.store, post_id, {feed_field: value})
    invalidate(services, path=report_path(post_id), keys=(CACHE_KEY_FEED,))
    return value


def record_view(db: Session, services: Services, post_id: str) -> int:
    return _bump(db, services, post_id, Post.views, "views")


def record_like(db: Session, services: Services, post_id: str) -> int:
    return _bump(db, services, post_id, Post.likes, "likes")
