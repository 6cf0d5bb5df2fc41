"""KIS API client: lowest level, sends the request and normalizes the response. No exchange detection."""
import logging
from typing import Any

import httpx

from app.core.errors import QuoteNotFound, UpstreamError
from app.services.quotes.config import (
    MSG_TOKEN_EXPIRED,
    PATH_DOMESTIC_DAILY,
    PATH_DOMESTIC_PRICE,
    PATH_OVERSEAS_DAILY,
    PATH_OVERSEAS_PRICE,
    TR_DOMESTIC_DAILY,
    TR_DOMESTIC_PRICE,
    TR_OVERSEAS_DAILY,
    TR_OVERSEAS_PRICE,
    KisConfig,
)
from app.services.quotes.exchanges import DOMESTIC_EXCHANGE, currency_for_exchange
from app.services.quotes.token import KisTokenManager
from app.services.quotes.types import DailyPrice, Quote, to_float, to_int

logger = logging.getLogger(__name__)


class KisClient:
    """Domestic and overseas current/daily price client."""

    def __init__(self, config: KisConfig, http: httpx.Client, tokens: KisTokenManager) -> None:
        self._config = config
        self._http = http
        self._tokens = tokens

    def _send(self, url: str, params: dict[str, str], tr_id: str, token: str) -> httpx.Response:
        try:
            return self._http.get(url, params=params, headers=self._config.headers(token, tr_id))
        except httpx.HTTPError as e:
            raise UpstreamError(f"KIS request failed: {e}") from e

    @staticmethod
    def _token_rejected(r: httpx.Response) -> bool:
        if r.status_code == 401:
            return True
        try:
            data = r.json()
        except ValueError:
            return False
        return isinstance(data, dict) and data.get("msg_cd") == MSG_TOKEN_EXPIRED

    def _get(self, path: str, params: dict[str, str], tr_id: str) -> dict[str, Any]:
        url = f"{self._config.base_url}{path}"
        token = self._tokens.get_token()
        r = self._send(url, params, tr_id, token)
        if self._token_rejected(r):
            # revoked or re-issued elsewhere: swap the token and retry once
            logger.warning("KIS rejected the cached token (%s); refreshing", r.status_code)
            r = self._send(url, params, tr_id, self._tokens.replace(token))
        if not r.is_success:
            raise UpstreamError(
                f"KIS API error: {r.status_code} - {r.text[:300] if r.text else ''}",
                status_code=r.status_code,
            )
        try:
            data = r.json()
        except ValueError as e:
            raise UpstreamError(f"KIS API returned non-JSON body: {r.text[:200]}") from e
        rt_cd = data.get("rt_cd")
        if rt_cd is not None and str(rt_cd) != "0":
            raise UpstreamError(data.get("msg1") or f"KIS API error code {rt_cd}", code=str(rt_cd))
        return data

    def domestic_price(self, ticker: str) -> Quote:
        data = self._get(
            PATH_DOMESTIC_PRICE,
            {"fid_cond_mrkt_div_code": "J", "fid_input_iscd": ticker},
            TR_DOMESTIC_PRICE,
        )
        out = data.get("output")
        if not out:
            raise QuoteNotFound(f"No quote for {ticker}")
        return Quote(
            ticker=ticker,
            exchange=DOMESTIC_EXCHANGE,
            price=to_float(out.get("stck_prpr")),
            change=to_float(out.get("prdy_vrss")),
            change_percent=to_float(out.get("prdy_ctrt")),
            open=to_float(out.get("stck_oprc")),
            high=to_float(out.get("stck_hgpr")),
            low=to_float(out.get("stck_lwpr")),
            volume=to_int(out.get("acml_vol")),
            currency=currency_for_exchange(DOMESTIC_EXCHANGE),
        )

    def overseas_price(self, symbol: str, exchange: str) -> Quote:
        data = self._get(
            PATH_OVERSEAS_PRICE,
            {"AUTH": "", "EXCD": exchange, "SYMB": symbol},
            TR_OVERSEAS_PRICE,
        )
        out = data.get("output")
        if not out:
            raise QuoteNotFound(f"No quote for {symbol} on {exchange}")
        return Quote(
            ticker=symbol,
            exchange=exchange,
            price=to_float(out.get("last") or out.get("curr_price")),
            change=to_float(out.get("diff")),
            change_percent=to_float(out.get("rate")),
            open=to_float(out.get("open")),
            high=to_float(out.get("high")),
            low=to_float(out.get("low")),
            volume=to_int(out.get("tvol") or out.get("volume")),
            currency=out.get("curr") or currency_for_exchange(exchange),
        )

    def domestic_daily(self, ticker: str, day: str) -> DailyPrice | None:
        """Daily bar for YYYYMMDD; None when the provider has no row for that day."""
        data = self._get(
            PATH_DOMESTIC_DAILY,
            {
                "fid_cond_mrkt_div_code": "J",
                "fid_input_iscd": ticker,
                "fid_input_date_1": day,
                "fid_input_date_2": day,
                "fid_period_div_code": "D",
            },
            TR_DOMESTIC_DAILY,
        )
        rows = data.get("output2") or []
        if not isinstance(rows, list) or not rows:
            logger.warning("No daily price for %s at %s", ticker, day)
            return None
        row = rows[0]
        return DailyPrice(
            ticker=ticker,
            date=day,
            close=to_float(row.get("stck_clpr")),
            open=to_float(row.get("stck_oprc")),
            high=to_float(row.get("stck_hgpr")),
            low=to_float(row.get("stck_lwpr")),
            volume=to_int(row.get("acml_vol")),
            currency=currency_for_exchange(DOMESTIC_EXCHANGE),
        )

    def overseas_daily(self, symbol: str, exchange: str, day: str) -> DailyPrice | None:
        data = self._get(
            PATH_OVERSEAS_DAILY,
            {"AUTH": "", "EXCD": exchange, "SYMB": symbol, "GUBN": "0", "BYMD": day, "MODP": "1"},
            TR_OVERSEAS_DAILY,
        )
        rows = data.get("output2") or []
        if not isinstance(rows, list) or not rows:
            logger.warning("No daily price for %s (%s) at %s", symbol, exchange, day)
            return None
        row = rows[0]
        return DailyPrice(
            ticker=symbol,
            date=day,
            close=to_float(row.get("clos")),
            open=to_float(row.get("open")),
            high=to_float(row.get("high")),
            low=to_float(row.get("low")),
            volume=to_int(row.get("tvol")),
            currency=currency_for_exchange(exchange),
        )
