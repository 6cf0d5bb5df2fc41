"""
Quote fetching: one current price per ticker from the brokerage API (domestic/foreign)
or Upbit (crypto). Exchange detection lives here; the clients below just send requests.
"""
import logging
from datetime import date
from typing import Protocol

from app.core.constants import HISTORICAL_FETCH_RETRIES
from app.core.errors import InvalidRequest, QuoteNotFound, UpstreamError
from app.services.quotes.client import KisClient
from app.services.quotes.exchanges import (
    CRYPTO_EXCHANGE,
    DOMESTIC_EXCHANGE,
    currency_for_exchange,
    detect_exchange,
    is_domestic,
    normalize_exchange,
    provider_symbol,
    resolve_exchange,
)
from app.services.quotes.types import DailyPrice, Quote
from app.services.quotes.upbit import UpbitClient

logger = logging.getLogger(__name__)


class PriceSource(Protocol):
    """What the batch updater and routes need from a quote fetcher."""

    def fetch_price(self, ticker: str, exchange: str | None = None) -> Quote:
        ...

    def fetch_daily_close(self, ticker: str, day: date | str, exchange: str | None = None) -> DailyPrice | None:
        ...


def _day_to_yyyymmdd(day: date | str) -> str:
    if isinstance(day, date):
        return day.strftime("%Y%m%d")
    out = str(day).strip().replace("-", "")
    if len(out) != 8 or not out.isdigit():
        raise InvalidRequest(f"Invalid date: {day!r} (expected YYYY-MM-DD)")
    return out


class QuoteFetcher:
    """Dispatches a ticker to the right upstream by instrument kind."""

    def __init__(self, kis: KisClient, upbit: UpbitClient | None = None) -> None:
        self._kis = kis
        self._upbit = upbit

    def fetch_price(self, ticker: str, exchange: str | None = None) -> Quote:
        """
        Current quote for ticker. 6-digit numeric -> domestic; exchange CRYPTO -> Upbit;
        anything else foreign on the given (or detected) exchange.
        Raises QuoteNotFound / UpstreamError.
        """
        symbol = (ticker or "").strip().upper()
        if not symbol:
            raise QuoteNotFound("Empty ticker")
        code = resolve_exchange(symbol, exchange)
        if code == CRYPTO_EXCHANGE:
            if self._upbit is None:
                raise UpstreamError("Crypto quotes not configured")
            quote = self._upbit.price(symbol)
        elif code == DOMESTIC_EXCHANGE:
            quote = self._kis.domestic_price(symbol)
        else:
            quote = self._kis.overseas_price(provider_symbol(symbol), code)
            quote.ticker = symbol
        if quote.price <= 0:
            raise QuoteNotFound(f"No price for {symbol} ({code})")
        return quote

    def fetch_daily_close(self, ticker: str, day: date | str, exchange: str | None = None) -> DailyPrice | None:
        """Historical daily bar; one best-effort retry on UpstreamError, then the error propagates."""
        symbol = (ticker or "").strip().upper()
        code = resolve_exchange(symbol, exchange)
        yyyymmdd = _day_to_yyyymmdd(day)
        if code == CRYPTO_EXCHANGE:
            raise InvalidRequest("Historical prices are not available for crypto")
        attempts = 1 + HISTORICAL_FETCH_RETRIES
        for attempt in range(1, attempts + 1):
            try:
                if code == DOMESTIC_EXCHANGE:
                    return self._kis.domestic_daily(symbol, yyyymmdd)
                return self._kis.overseas_daily(provider_symbol(symbol), code, yyyymmdd)
            except UpstreamError as e:
                if attempt >= attempts:
                    raise
                logger.warning("Daily price %s %s failed (attempt %s/%s): %s", symbol, yyyymmdd, attempt, attempts, e.message)
        return None


__all__ = [
    "DailyPrice",
    "KisClient",
    "PriceSource",
    "Quote",
    "QuoteFetcher",
    "UpbitClient",
    "currency_for_exchange",
    "detect_exchange",
    "is_domestic",
    "normalize_exchange",
    "resolve_exchange",
]
