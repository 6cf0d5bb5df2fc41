"""
KIS OAuth token: issued once per ~24h and throttled upstream if reissued too often.

Cached in memory and persisted in provider_tokens so restarts and other workers reuse it.
Database failures are logged; the in-memory token is still returned.
"""
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

import httpx
from sqlalchemy.orm import Session

from app.core.constants import TOKEN_EXPIRY_BUFFER_SECONDS
from app.core.errors import UpstreamError
from app.models.provider_token import ProviderToken
from app.services.quotes.config import PATH_TOKEN, KisConfig

logger = logging.getLogger(__name__)

PROVIDER_ID = "kis"
DEFAULT_EXPIRES_IN = 24 * 60 * 60


class KisTokenManager:
    """Thread-safe token cache: memory first, then provider_tokens, then a fresh issue."""

    def __init__(
        self,
        config: KisConfig,
        http: httpx.Client,
        *,
        session_factory: Callable[[], Session] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._http = http
        self._session_factory = session_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._token: str | None = None
        self._expires_at: float = 0.0

    def _valid(self, expires_at: float) -> bool:
        return self._clock() < expires_at - TOKEN_EXPIRY_BUFFER_SECONDS

    def get_token(self, force_refresh: bool = False) -> str:
        with self._lock:
            if not force_refresh and self._token and self._valid(self._expires_at):
                return self._token
            if not force_refresh:
                cached = self._load_persisted()
                if cached:
                    self._token, self._expires_at = cached
                    logger.debug("KIS token: using persisted token")
                    return self._token
            return self._issue_and_store()

    def replace(self, rejected: str) -> str:
        """
        New token after the provider rejected `rejected`. Another worker may already have
        re-issued one: a different valid token in memory or provider_tokens is reused first.
        """
        with self._lock:
            if self._token and self._token != rejected and self._valid(self._expires_at):
                return self._token
            cached = self._load_persisted()
            if cached and cached[0] != rejected:
                self._token, self._expires_at = cached
                logger.info("KIS token: picked up token re-issued by another worker")
                return self._token
            return self._issue_and_store()

    def _issue_and_store(self) -> str:
        token, expires_at = self._issue()
        self._token, self._expires_at = token, expires_at
        self._persist(token, expires_at)
        return token

    def _issue(self) -> tuple[str, float]:
        if not self._config.is_configured():
            raise UpstreamError("KIS credentials not configured. Add KIS_APP_KEY and KIS_APP_SECRET to .env.")
        logger.info("KIS token: issuing new token")
        body = {
            "grant_type": "client_credentials",
            "appkey": self._config.app_key,
            "appsecret": self._config.app_secret,
        }
        try:
            r = self._http.post(f"{self._config.base_url}{PATH_TOKEN}", json=body)
        except httpx.HTTPError as e:
            raise UpstreamError(f"KIS token request failed: {e}") from e
        if not r.is_success:
            raise UpstreamError(
                f"KIS token request failed: {r.status_code} - {r.text[:300] if r.text else ''}",
                status_code=r.status_code,
            )
        try:
            data = r.json()
        except ValueError as e:
            raise UpstreamError(f"KIS token response is not JSON: {r.text[:200]}") from e
        token = data.get("access_token")
        if not token:
            raise UpstreamError("KIS token response missing access_token")
        expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        return token, self._clock() + expires_in

    def _load_persisted(self) -> tuple[str, float] | None:
        if self._session_factory is None:
            return None
        db = self._session_factory()
        try:
            row = db.query(ProviderToken).filter(ProviderToken.provider == PROVIDER_ID).first()
            if not row:
                return None
            expires = row.expires_at
            if expires.tzinfo is None:
                expires = expires.replace(tzinfo=timezone.utc)
            expires_at = expires.timestamp()
            if not self._valid(expires_at):
                return None
            return row.token, expires_at
        except Exception as e:
            logger.warning("KIS token: reading provider_tokens failed (issuing new): %s", e, exc_info=True)
            return None
        finally:
            db.close()

    def _persist(self, token: str, expires_at: float) -> None:
        if self._session_factory is None:
            return
        db = self._session_factory()
        try:
            expires = datetime.fromtimestamp(expires_at, tz=timezone.utc)
            row = db.query(ProviderToken).filter(ProviderToken.provider == PROVIDER_ID).first()
            if row:
                row.token = token
                row.expires_at = expires
            else:
                db.add(ProviderToken(provider=PROVIDER_ID, token=token, expires_at=expires))
            db.commit()
            logger.info("KIS token cached until %s", (expires - timedelta(seconds=TOKEN_EXPIRY_BUFFER_SECONDS)).isoformat())
        except Exception as e:
            db.rollback()
            logger.warning("KIS token: persisting to provider_tokens failed (token still valid): %s", e, exc_info=True)
        finally:
            db.close()
