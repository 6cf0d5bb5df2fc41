"""
Cache invalidation trigger: purge in-process cache keys and tell the page-rendering layer
that a path must be regenerated. Idempotent; safe to call after every write.
"""
import logging
import threading
import time
from collections import deque
from typing import Any, Iterable

import httpx

from app.core.constants import CACHE_KEY_FEED, CACHE_KEY_PRICES, DEFAULT_REVALIDATE_PATH

logger = logging.getLogger(__name__)

DEFAULT_KEYS = (CACHE_KEY_FEED, CACHE_KEY_PRICES)
_HISTORY_SIZE = 100


class RenderInvalidator:
    """
    Records purged paths (newest last) and, when a webhook URL is configured, POSTs
    {"path": ...} to it. Webhook failures are logged, never raised: the cache purge already happened.
    """

    def __init__(self, http: httpx.Client | None = None, webhook_url: str = "", secret: str = "") -> None:
        self._http = http
        self._webhook_url = (webhook_url or "").strip()
        self._secret = secret
        self._lock = threading.Lock()
        self._history: deque[tuple[str, float]] = deque(maxlen=_HISTORY_SIZE)

    def revalidate_path(self, path: str) -> bool:
        with self._lock:
            self._history.append((path, time.time()))
        if not self._webhook_url or self._http is None:
            return True
        headers = {"Authorization": f"Bearer {self._secret}"} if self._secret else {}
        try:
            r = self._http.post(self._webhook_url, json={"path": path}, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Revalidate webhook for %s failed: %s", path, e)
            return False
        if not r.is_success:
            logger.warning("Revalidate webhook for %s returned %s", path, r.status_code)
            return False
        return True

    def recent(self) -> list[str]:
        with self._lock:
            return [path for path, _ in self._history]


def invalidate(services: Any, path: str | None = None, keys: Iterable[str] | None = None) -> dict[str, Any]:
    """Clear cache keys (default: feed and prices) and signal the rendering layer for path (default "/")."""
    target = path or DEFAULT_REVALIDATE_PATH
    for key in keys if keys is not None else DEFAULT_KEYS:
        services.cache.invalidate(key)
    services.invalidator.revalidate_path(target)
    logger.debug("Invalidated %s", target)
    return {"revalidated": True, "path": target, "now": int(time.time() * 1000)}
