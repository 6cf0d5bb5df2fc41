"""
Refresh prices and return rates for every open post on an interval (default 15 min).
Also runnable by hand: python scripts/update_prices.py.
"""
import logging

from app.services.container import Services
from app.services.invalidation import invalidate

logger = logging.getLogger(__name__)


def run_price_update_job(services: Services) -> None:
    """Scheduler entry point. Logs and swallows failures so the next tick still runs."""
    try:
        result = services.updater.run()
        invalidate(services)
        if result.failed:
            logger.warning("Price update job: %s/%s tickers failed", result.failed, result.total)
    except Exception as e:
        logger.error("Price update job failed: %s", e, exc_info=True)
