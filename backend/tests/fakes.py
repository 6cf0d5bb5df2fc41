"""Test doubles: controllable clock, executors, limiter and quote source."""
from concurrent.futures import Future

from app.core.errors import QuoteNotFound, UpstreamError
from app.services.quotes import DailyPrice, Quote


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InlineExecutor:
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, *args, **kwargs):
        fut = Future()
        try:
            fut.set_result(fn(*args, **kwargs))
        except Exception as e:
            fut.set_exception(e)
        return fut


class DeferredExecutor:
    """Queues submitted work until run_all(); lets tests observe in-flight revalidations."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args, **kwargs):
        self.pending.append((fn, args, kwargs))
        return Future()

    def run_all(self) -> None:
        pending, self.pending = self.pending, []
        for fn, args, kwargs in pending:
            fn(*args, **kwargs)


class CountingLimiter:
    def __init__(self):
        self.acquired = 0

    def acquire(self) -> None:
        self.acquired += 1


class FakeFetcher:
    """prices: TICKER -> price. Tickers in `failing` raise UpstreamError; unknown tickers raise QuoteNotFound."""

    def __init__(self, prices=None, failing=()):
        self.prices = dict(prices or {})
        self.failing = set(failing)
        self.calls = []

    def fetch_price(self, ticker, exchange=None):
        symbol = ticker.upper()
        self.calls.append((symbol, exchange))
        if symbol in self.failing:
            raise UpstreamError(f"upstream down for {symbol}")
        if symbol not in self.prices:
            raise QuoteNotFound(f"No quote for {symbol}")
        return Quote(ticker=symbol, exchange=exchange or "KRX", price=self.prices[symbol], currency="KRW")

    def fetch_daily_close(self, ticker, day, exchange=None):
        symbol = ticker.upper()
        if symbol not in self.prices:
            return None
        return DailyPrice(ticker=symbol, date=str(day).replace("-", ""), close=self.prices[symbol])


