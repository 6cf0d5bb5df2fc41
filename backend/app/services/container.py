"""
Wiring: build every long-lived collaborator once (blob store, snapshot store, cache,
quote fetcher, limiters, updater) and hand them around as one Services object.

main.py puts it on app.state.services; scripts build their own. Tests pass fakes for
blob / fetcher / http instead of patching module globals.
"""
import logging
from dataclasses import dataclass
from typing import Callable

import httpx
from sqlalchemy.orm import Session

from app.config import Settings
from app.core.constants import POST_RATE_LIMIT, POST_RATE_WINDOW_SECONDS
from app.services.blob import BlobStore, build_blob_store
from app.services.feed.cache import CachePolicy, JsonCache
from app.services.feed.snapshot import SnapshotStore
from app.services.invalidation import RenderInvalidator
from app.services.price_updater import BatchPriceUpdater
from app.services.quotes import KisClient, PriceSource, QuoteFetcher, UpbitClient
from app.services.quotes.config import KisConfig
from app.services.quotes.token import KisTokenManager
from app.services.rate_limit import IntervalRateLimiter, RateLimiter, WriteRateLimiter

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 15.0


@dataclass
class Services:
    settings: Settings
    session_factory: Callable[[], Session]
    blob: BlobStore
    store: SnapshotStore
    cache: JsonCache
    feed_policy: CachePolicy
    prices_policy: CachePolicy
    fetcher: PriceSource
    limiter: RateLimiter
    write_limiter: WriteRateLimiter
    updater: BatchPriceUpdater
    invalidator: RenderInvalidator
    http: httpx.Client | None = None

    def close(self) -> None:
        self.cache.shutdown()
        if self.http is not None:
            self.http.close()


def build_quote_fetcher(settings: Settings, http: httpx.Client, session_factory: Callable[[], Session] | None) -> QuoteFetcher:
    config = KisConfig(app_key=settings.kis_app_key, app_secret=settings.kis_app_secret, base_url=settings.kis_base_url)
    tokens = KisTokenManager(config, http, session_factory=session_factory)
    return QuoteFetcher(KisClient(config, http, tokens), UpbitClient(http, settings.upbit_base_url))


def build_services(
    settings: Settings,
    session_factory: Callable[[], Session],
    *,
    blob: BlobStore | None = None,
    fetcher: PriceSource | None = None,
    http: httpx.Client | None = None,
    cache: JsonCache | None = None,
    limiter: RateLimiter | None = None,
) -> Services:
    if http is None:
        http = httpx.Client(timeout=HTTP_TIMEOUT_SECONDS)
    if blob is None:
        blob = build_blob_store(settings.blob_backend, session_factory=session_factory, local_dir=settings.blob_local_dir)
    store = SnapshotStore(blob, retries=settings.snapshot_write_retries)
    cache = cache or JsonCache()
    fetcher = fetcher or build_quote_fetcher(settings, http, session_factory)
    limiter = limiter or IntervalRateLimiter.from_millis(settings.quote_request_delay_ms)
    updater = BatchPriceUpdater(fetcher, limiter, store, cache, session_factory)
    logger.info("Services ready: blob backend=%s, quote delay=%sms", settings.blob_backend, settings.quote_request_delay_ms)
    return Services(
        settings=settings,
        session_factory=session_factory,
        blob=blob,
        store=store,
        cache=cache,
        feed_policy=CachePolicy(settings.feed_cache_ttl_seconds, settings.feed_cache_stale_seconds),
        prices_policy=CachePolicy(settings.feed_cache_ttl_seconds, settings.prices_cache_stale_seconds),
        fetcher=fetcher,
        limiter=limiter,
        write_limiter=WriteRateLimiter(POST_RATE_LIMIT, POST_RATE_WINDOW_SECONDS),
        updater=updater,
        invalidator=RenderInvalidator(http, settings.revalidate_webhook_url, settings.revalidate_secret),
        http=http,
    )
