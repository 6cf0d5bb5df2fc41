import httpx
import pytest

from app.core.errors import InvalidRequest, QuoteNotFound, UpstreamError
from app.models.provider_token import ProviderToken
from app.services.quotes import KisClient, QuoteFetcher, UpbitClient
from app.services.quotes.config import KisConfig
from app.services.quotes.exchanges import (
    currency_for_exchange,
    detect_exchange,
    is_domestic,
    normalize_exchange,
    resolve_exchange,
)
from app.services.quotes.token import KisTokenManager

BASE = "https://kis.test"


class KisStub:
    """Route table for a MockTransport standing in for the KIS and Upbit APIs."""

    def __init__(self):
        self.token_requests = 0
        self.requests = []
        self.domestic = {"rt_cd": "0", "output": {"stck_prpr": "71,500", "prdy_vrss": "500", "prdy_ctrt": "0.70", "acml_vol": "1200"}}
        self.overseas = {"rt_cd": "0", "output": {"last": "189.50", "diff": "1.5", "rate": "0.8", "tvol": "100"}}
        self.daily = {"rt_cd": "0", "output2": [{"stck_clpr": "70000", "stck_oprc": "69000"}]}
        self.overseas_daily = {"rt_cd": "0", "output2": [{"clos": "180.0"}]}
        self.upbit_status = 200
        self.upbit_body = None
        self.token_body = None
        self.daily_failures = 0
        self.rejected_tokens = set()
        self.reject_status = 500

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/oauth2/tokenP":
            self.token_requests += 1
            if self.token_body is not None:
                return httpx.Response(200, text=self.token_body)
            return httpx.Response(200, json={"access_token": f"tok-{self.token_requests}", "expires_in": 86400})
        bearer = request.headers.get("authorization", "").removeprefix("Bearer ")
        if path.startswith("/uapi/") and ("*" in self.rejected_tokens or bearer in self.rejected_tokens):
            return httpx.Response(
                self.reject_status,
                json={"rt_cd": "1", "msg_cd": "EGW00123", "msg1": "token expired"},
            )
        if path.endswith("/inquire-price"):
            return httpx.Response(200, json=self.domestic)
        if path.endswith("/quotations/price"):
            return httpx.Response(200, json=self.overseas)
        if path.endswith("/inquire-daily-price"):
            if self.daily_failures:
                self.daily_failures -= 1
                return httpx.Response(500, text="busy")
            return httpx.Response(200, json=self.daily)
        if path.endswith("/dailyprice"):
            return httpx.Response(200, json=self.overseas_daily)
        if path == "/v1/ticker":
            if self.upbit_body is not None:
                return httpx.Response(200, text=self.upbit_body)
            if self.upbit_status != 200:
                return httpx.Response(self.upbit_status, json={"error": {"name": "404"}})
            return httpx.Response(200, json=[{"trade_price": 95000000.0, "signed_change_rate": 0.0123}])
        return httpx.Response(404)


@pytest.fixture
def stub():
    return KisStub()


@pytest.fixture
def http(stub):
    client = httpx.Client(transport=httpx.MockTransport(stub))
    yield client
    client.close()


@pytest.fixture
def config():
    return KisConfig(app_key="key", app_secret="secret", base_url=BASE)


@pytest.fixture
def quote_fetcher(config, http, session_factory):
    tokens = KisTokenManager(config, http, session_factory=session_factory)
    return QuoteFetcher(KisClient(config, http, tokens), UpbitClient(http, "https://upbit.test"))


def test_exchange_detection():
    assert is_domestic("005930")
    assert not is_domestic("AAPL")
    assert detect_exchange("005930") == "KRX"
    assert detect_exchange("7203.T") == "TSE"
    assert detect_exchange("0700.HK") == "HKS"
    assert detect_exchange("BRK-B") == "NYS"
    assert detect_exchange("AAPL") == "NAS"
    assert normalize_exchange("nasdaq") == "NAS"
    assert resolve_exchange("005930", "NAS") == "KRX"
    assert resolve_exchange("IBM", "NYSE") == "NYS"
    assert currency_for_exchange("TSE") == "JPY"
    assert currency_for_exchange("CRYPTO") == "KRW"
    assert currency_for_exchange("XYZ") == "USD"


def test_domestic_quote(quote_fetcher, stub):
    q = quote_fetcher.fetch_price("005930")
    assert q.price == 71500.0
    assert q.exchange == "KRX"
    assert q.currency == "KRW"
    assert q.to_dict()["changePercent"] == 0.7
    req = stub.requests[-1]
    assert req.headers["tr_id"] == "FHKST01010100"
    assert req.headers["authorization"] == "Bearer tok-1"
    assert req.url.params["fid_input_iscd"] == "005930"


def test_overseas_quote_uses_bare_symbol(quote_fetcher, stub):
    q = quote_fetcher.fetch_price("aapl", "NASDAQ")
    assert q.ticker == "AAPL"
    assert q.price == 189.5
    assert stub.requests[-1].url.params["EXCD"] == "NAS"


def test_crypto_goes_to_upbit(quote_fetcher, stub):
    q = quote_fetcher.fetch_price("btc", "CRYPTO")
    assert q.price == 95000000.0
    assert q.change_percent == 1.23
    assert stub.requests[-1].url.params["markets"] == "KRW-BTC"
    stub.upbit_status = 404
    with pytest.raises(QuoteNotFound):
        quote_fetcher.fetch_price("nope", "CRYPTO")


def test_provider_error_code_raises_upstream_error(quote_fetcher, stub):
    stub.domestic = {"rt_cd": "1", "msg1": "invalid stock code"}
    with pytest.raises(UpstreamError) as exc:
        quote_fetcher.fetch_price("999999")
    assert exc.value.message == "invalid stock code"
    assert exc.value.code == "1"


def test_missing_output_or_zero_price_is_not_found(quote_fetcher, stub):
    stub.domestic = {"rt_cd": "0", "output": None}
    with pytest.raises(QuoteNotFound):
        quote_fetcher.fetch_price("005930")
    stub.domestic = {"rt_cd": "0", "output": {"stck_prpr": "0"}}
    with pytest.raises(QuoteNotFound):
        quote_fetcher.fetch_price("005930")


def test_token_is_reused_and_persisted(quote_fetcher, stub, config, http, session_factory):
    quote_fetcher.fetch_price("005930")
    quote_fetcher.fetch_price("005930")
    assert stub.token_requests == 1

    db = session_factory()
    row = db.get(ProviderToken, "kis")
    assert row.token == "tok-1"
    db.close()

    # a new process picks the persisted token up instead of issuing another
    fresh = KisTokenManager(config, http, session_factory=session_factory)
    assert fresh.get_token() == "tok-1"
    assert stub.token_requests == 1


def test_unconfigured_credentials(http):
    tokens = KisTokenManager(KisConfig(app_key="", app_secret="", base_url=BASE), http)
    with pytest.raises(UpstreamError):
        tokens.get_token()


def test_rejected_token_is_reissued_and_request_retried(quote_fetcher, stub):
    quote_fetcher.fetch_price("005930")
    stub.rejected_tokens.add("tok-1")

    q = quote_fetcher.fetch_price("005930")
    assert q.price == 71500.0
    assert stub.token_requests == 2
    assert stub.requests[-1].headers["authorization"] == "Bearer tok-2"

    # the replacement is cached; later calls do not issue again
    quote_fetcher.fetch_price("005930")
    assert stub.token_requests == 2


def test_http_401_also_triggers_token_refresh(quote_fetcher, stub):
    quote_fetcher.fetch_price("AAPL")
    stub.rejected_tokens.add("tok-1")
    stub.reject_status = 401
    assert quote_fetcher.fetch_price("AAPL").price == 189.5
    assert stub.token_requests == 2


def test_rejected_token_prefers_token_reissued_elsewhere(quote_fetcher, stub, config, http, session_factory):
    quote_fetcher.fetch_price("005930")
    other_worker = KisTokenManager(config, http, session_factory=session_factory)
    assert other_worker.get_token(force_refresh=True) == "tok-2"
    stub.rejected_tokens.add("tok-1")

    quote_fetcher.fetch_price("005930")
    assert stub.token_requests == 2
    assert stub.requests[-1].headers["authorization"] == "Bearer tok-2"


def test_token_rejected_after_refresh_raises_upstream_error(quote_fetcher, stub):
    stub.rejected_tokens.add("*")
    with pytest.raises(UpstreamError):
        quote_fetcher.fetch_price("005930")
    # one retry only
    assert stub.token_requests == 2


def test_non_json_bodies_raise_upstream_error(quote_fetcher, stub, config, http):
    stub.upbit_body = "<html>maintenance</html>"
    with pytest.raises(UpstreamError):
        quote_fetcher.fetch_price("BTC", "CRYPTO")

    stub.token_body = "<html>maintenance</html>"
    with pytest.raises(UpstreamError):
        KisTokenManager(config, http).get_token()


def test_daily_close_retries_once(quote_fetcher, stub):
    stub.daily_failures = 1
    bar = quote_fetcher.fetch_daily_close("005930", "2024-03-04")
    assert bar.close == 70000.0
    assert bar.date == "20240304"

    stub.daily_failures = 2
    with pytest.raises(UpstreamError):
        quote_fetcher.fetch_daily_close("005930", "2024-03-04")


def test_daily_close_foreign_and_empty(quote_fetcher, stub):
    assert quote_fetcher.fetch_daily_close("AAPL", "2024-03-04").close == 180.0
    stub.daily = {"rt_cd": "0", "output2": []}
    assert quote_fetcher.fetch_daily_close("005930", "2024-03-04") is None


def test_daily_close_rejects_bad_input(quote_fetcher):
    with pytest.raises(InvalidRequest):
        quote_fetcher.fetch_daily_close("005930", "March 4")
    with pytest.raises(InvalidRequest):
        quote_fetcher.fetch_daily_close("BTC", "2024-03-04", "CRYPTO")
