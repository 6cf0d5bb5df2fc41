"""Exchange detection and currency inference for tickers. Pure lookups, no I/O."""
import re

DOMESTIC_EXCHANGE = "KRX"
CRYPTO_EXCHANGE = "CRYPTO"
DEFAULT_FOREIGN_EXCHANGE = "NAS"
DEFAULT_CURRENCY = "USD"

_DOMESTIC_RE = re.compile(r"^\d{6}$")

# Long names accepted from clients -> provider's 3-letter exchange codes
EXCHANGE_CODES: dict[str, str] = {
    "NASDAQ": "NAS",
    "NYSE": "NYS",
    "AMEX": "AMS",
    "HONG_KONG": "HKS",
    "SHANGHAI": "SHS",
    "SHENZHEN": "SZS",
    "TOKYO": "TSE",
    "HANOI": "HNX",
    "HOCHIMINH": "HSX",
    "KOSPI": DOMESTIC_EXCHANGE,
    "KOSDAQ": DOMESTIC_EXCHANGE,
}

CURRENCY_BY_EXCHANGE: dict[str, str] = {
    "KRX": "KRW",
    "CRYPTO": "KRW",  # priced in KRW markets
    "NAS": "USD",
    "NYS": "USD",
    "AMS": "USD",
    "HKS": "HKD",
    "SHS": "CNY",
    "SZS": "CNY",
    "TSE": "JPY",
    "HNX": "VND",
    "HSX": "VND",
}

# Suffix conventions (Yahoo-style) -> exchange
_SUFFIX_EXCHANGE: tuple[tuple[str, str], ...] = (
    (".T", "TSE"),
    (".HK", "HKS"),
    (".SS", "SHS"),
    (".SZ", "SZS"),
    (".HN", "HNX"),
    (".HM", "HSX"),
)

# Symbols that do not live on the default foreign exchange
TICKER_EXCHANGE_OVERRIDES: dict[str, str] = {
    "BRK-A": "NYS",
    "BRK-B": "NYS",
    "NVO": "NYS",
}


def is_domestic(ticker: str) -> bool:
    """6-digit numeric codes are domestic (KRX) instruments."""
    return bool(_DOMESTIC_RE.match((ticker or "").strip()))


def normalize_exchange(exchange: str | None) -> str:
    """Upper-case and map long names to provider codes; '' when not given."""
    code = (exchange or "").strip().upper()
    return EXCHANGE_CODES.get(code, code)


def detect_exchange(ticker: str) -> str:
    """Best-effort exchange for a ticker with no explicit exchange."""
    symbol = (ticker or "").strip().upper()
    if is_domestic(symbol):
        return DOMESTIC_EXCHANGE
    for suffix, exchange in _SUFFIX_EXCHANGE:
        if symbol.endswith(suffix):
            return exchange
    return TICKER_EXCHANGE_OVERRIDES.get(symbol, DEFAULT_FOREIGN_EXCHANGE)


def resolve_exchange(ticker: str, exchange: str | None = None) -> str:
    """Explicit exchange if given (normalized), else detected from the ticker shape."""
    code = normalize_exchange(exchange)
    if is_domestic(ticker):
        return DOMESTIC_EXCHANGE
    return code or detect_exchange(ticker)


def currency_for_exchange(exchange: str | None) -> str:
    return CURRENCY_BY_EXCHANGE.get(normalize_exchange(exchange), DEFAULT_CURRENCY)


def provider_symbol(ticker: str) -> str:
    """Strip the suffix convention; the provider takes the bare symbol plus EXCD."""
    symbol = (ticker or "").strip().upper()
    for suffix, _ in _SUFFIX_EXCHANGE:
        if symbol.endswith(suffix):
            return symbol[: -len(suffix)]
    return symbol
