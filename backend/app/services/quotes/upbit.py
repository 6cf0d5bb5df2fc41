"""Upbit public ticker API for crypto posts (exchange == "CRYPTO"). No token needed."""
import httpx

from app.core.errors import QuoteNotFound, UpstreamError
from app.services.quotes.exchanges import CRYPTO_EXCHANGE, currency_for_exchange
from app.services.quotes.types import Quote, to_float, to_int

DEFAULT_BASE_URL = "https://api.upbit.com"


class UpbitClient:
    def __init__(self, http: httpx.Client, base_url: str = DEFAULT_BASE_URL) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")

    def price(self, ticker: str) -> Quote:
        symbol = ticker.strip().upper()
        market = f"KRW-{symbol}"
        try:
            r = self._http.get(
                f"{self._base_url}/v1/ticker",
                params={"markets": market},
                headers={"Accept": "application/json"},
                timeout=5.0,
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Upbit request failed: {e}") from e
        if r.status_code == 404:
            raise QuoteNotFound(f"Unknown market {market}")
        if not r.is_success:
            raise UpstreamError(f"Upbit API error: {r.status_code}", status_code=r.status_code)
        try:
            data = r.json()
        except ValueError as e:
            raise UpstreamError(f"Upbit returned non-JSON body: {r.text[:200]}") from e
        if not data:
            raise QuoteNotFound(f"No data for {symbol}")
        row = data[0]
        return Quote(
            ticker=symbol,
            exchange=CRYPTO_EXCHANGE,
            price=to_float(row.get("trade_price")),
            change=to_float(row.get("signed_change_price")),
            change_percent=round(to_float(row.get("signed_change_rate")) * 100, 2),
            open=to_float(row.get("opening_price")),
            high=to_float(row.get("high_price")),
            low=to_float(row.get("low_price")),
            volume=to_int(row.get("acc_trade_volume_24h")),
            currency=currency_for_exchange(CRYPTO_EXCHANGE),
        )
