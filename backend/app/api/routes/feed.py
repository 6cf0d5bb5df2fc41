"""
Feed API: the cached snapshot every page reads, plus cron/admin triggers.

GET /feed never fails: if the snapshot and the cache are both unavailable it returns an
empty feed so pages still render.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_services, require_cron_secret
from app.db.session import get_db
from app.services.container import Services
from app.services.feed import empty_feed, get_cached_feed, get_cached_prices, rebuild_feed
from app.services.invalidation import DEFAULT_KEYS, invalidate

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
def read_feed(services: Services = Depends(get_services)):
    try:
        return get_cached_feed(services.cache, services.store, services.feed_policy)
    except Exception as e:
        logger.error("GET /feed failed, serving empty feed: %s", e, exc_info=True)
        return empty_feed()


@router.get("/prices")
def read_prices(services: Services = Depends(get_services)):
    try:
        return get_cached_prices(services.cache, services.store, services.prices_policy)
    except Exception as e:
        logger.error("GET /feed/prices failed, serving empty map: %s", e, exc_info=True)
        return {}


@router.get("/cache-status")
def cache_status(services: Services = Depends(get_services)):
    return {key: services.cache.status(key) for key in DEFAULT_KEYS}


@router.post("/init", dependencies=[Depends(require_cron_secret)])
def init_feed(db: Session = Depends(get_db), services: Services = Depends(get_services)):
    """Rebuild feed.json from the posts table (reconciles any drift)."""
    doc = rebuild_feed(db, services.store)
    invalidate(services)
    return {"success": True, "totalPosts": doc["totalPosts"], "tickers": len(doc["prices"])}


@router.api_route("/update-prices", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
def update_prices(services: Services = Depends(get_services)):
    """Run the batch price updater now. Per-ticker failures are reported, not raised."""
    result = services.updater.run()
    invalidate(services)
    return result.to_dict()
