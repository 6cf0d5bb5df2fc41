"""
Batch price updater: refresh current price and return rate for every open post.

One upstream request per distinct ticker (deduplicated by uppercase ticker), issued
sequentially through a RateLimiter. A failed ticker is counted and skipped, never aborting
the batch. Results go into feed.json through the snapshot store's optimistic write, then
into the posts table (best-effort), then the feed caches are invalidated.

Closed posts are never touched: their closed_return_rate is final.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.constants import CACHE_KEY_FEED, CACHE_KEY_PRICES
from app.core.errors import TransientWriteFailure
from app.models.post import Post
from app.services.feed.cache import JsonCache
from app.services.feed.snapshot import FeedDocument, SnapshotStore, price_entry, ticker_key, utc_now
from app.services.quotes import PriceSource, Quote
from app.services.rate_limit import RateLimiter
from app.services.returns import (
    calculate_return,
    effective_basis,
    position_from_opinion,
    target_reached,
)

logger = logging.getLogger(__name__)


@dataclass
class RefreshTarget:
    ticker: str
    exchange: str | None = None


@dataclass
class BatchResult:
    succeeded: int = 0
    failed: int = 0
    total: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)
    prices: dict[str, Quote] = field(default_factory=dict)
    auto_closed: list[str] = field(default_factory=list)
    snapshot_saved: bool = True
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.snapshot_saved,
            "stats": {
                "succeeded": self.succeeded,
                "failed": self.failed,
                "total": self.total,
                "autoClosed": len(self.auto_closed),
                "duration": f"{self.duration_ms}ms",
            },
            "errors": self.errors,
        }


def collect_refresh_targets(feed: FeedDocument) -> list[RefreshTarget]:
    """Distinct tickers of open posts; the first exchange seen for a ticker wins."""
    prices = feed.get("prices") or {}
    seen: dict[str, RefreshTarget] = {}
    for post in feed.get("posts") or []:
        if post.get("is_closed"):
            continue
        key = ticker_key(post.get("ticker"))
        if not key or key in seen:
            continue
        exchange = post.get("exchange") or (prices.get(key) or {}).get("exchange")
        seen[key] = RefreshTarget(ticker=key, exchange=exchange)
    return list(seen.values())


def apply_prices(feed: FeedDocument, prices: dict[str, Quote], now: datetime) -> list[str]:
    """
    Merge fetched prices into the document and recompute open posts in place.
    Posts whose target price is reached are closed at the computed rate.
    Returns the ids of auto-closed posts.
    """
    feed.setdefault("prices", {})
    for key, quote in prices.items():
        feed["prices"][key] = price_entry(quote.price, quote.exchange, now)

    auto_closed: list[str] = []
    for post in feed.get("posts") or []:
        if post.get("is_closed"):
            continue
        quote = prices.get(ticker_key(post.get("ticker")))
        if quote is None:
            continue
        position = position_from_opinion(post.get("opinion"), post.get("positionType"))
        rate = calculate_return(effective_basis(post), quote.price, position)
        post["currentPrice"] = quote.price
        post["returnRate"] = rate
        if target_reached(position, quote.price, post.get("targetPrice")):
            post["is_closed"] = True
            post["closed_return_rate"] = rate
            auto_closed.append(post["id"])
    return auto_closed


class BatchPriceUpdater:
    def __init__(
        self,
        fetcher: PriceSource,
        limiter: RateLimiter,
        store: SnapshotStore,
        cache: JsonCache | None = None,
        session_factory: Callable[[], Session] | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.fetcher = fetcher
        self.limiter = limiter
        self.store = store
        self.cache = cache
        self._session_factory = session_factory
        self._clock = clock

    def fetch_prices(self, targets: list[RefreshTarget]) -> BatchResult:
        result = BatchResult(total=len(targets))
        for target in targets:
            self.limiter.acquire()
            try:
                quote = self.fetcher.fetch_price(target.ticker, target.exchange)
            except Exception as e:
                result.failed += 1
                result.errors.append({"ticker": target.ticker, "error": str(e)})
                logger.warning("Price fetch failed for %s (%s): %s", target.ticker, target.exchange, e)
                continue
            result.prices[target.ticker] = quote
            result.succeeded += 1
        return result

    def run(self) -> BatchResult:
        """Full update pass. Raises SnapshotUnavailable only if feed.json cannot be read at all."""
        started = time.monotonic()
        targets = collect_refresh_targets(self.store.load())
        logger.info("Price update: %s tickers to refresh", len(targets))
        result = self.fetch_prices(targets)
        now = self._clock()

        if result.prices:
            closed: list[str] = []

            def apply(doc: FeedDocument) -> None:
                closed[:] = apply_prices(doc, result.prices, now)

            try:
                self.store.mutate(apply)
                result.auto_closed = list(closed)
            except TransientWriteFailure as e:
                result.snapshot_saved = False
                logger.error("Price update: saving feed.json failed: %s", e)
            self._mirror_to_database(result.prices, set(result.auto_closed), now)

        if self.cache is not None:
            self.cache.invalidate(CACHE_KEY_FEED)
            self.cache.invalidate(CACHE_KEY_PRICES)
        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Price update done: %s ok, %s failed, %s auto-closed in %sms",
            result.succeeded,
            result.failed,
            len(result.auto_closed),
            result.duration_ms,
        )
        return result

    def _mirror_to_database(self, prices: dict[str, Quote], auto_closed: set[str], now: datetime) -> None:
        """Best-effort: the posts table lags feed.json until the next run if this fails."""
        if self._session_factory is None:
            return
        db = self._session_factory()
        try:
            rows = (
                db.query(Post)
                .filter(func.upper(Post.ticker).in_(list(prices)), Post.is_closed.is_(False))
                .all()
            )
            for row in rows:
                quote = prices[ticker_key(row.ticker)]
                basis = row.avg_price if row.avg_price and row.avg_price > 0 else row.initial_price
                rate = calculate_return(basis, quote.price, position_from_opinion(row.opinion, row.position_type))
                row.current_price = quote.price
                row.return_rate = rate
                if row.id in auto_closed:
                    row.is_closed = True
                    row.closed_at = now
                    row.closed_return_rate = rate
                    row.closed_price = quote.price
            db.commit()
        except Exception as e:
            db.rollback()
            logger.warning("Price update: mirroring to posts failed: %s", e, exc_info=True)
        finally:
            db.close()
