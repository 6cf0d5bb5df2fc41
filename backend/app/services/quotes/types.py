"""Normalized quote shapes. Same shape regardless of domestic/foreign/crypto source."""
from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class Quote:
    ticker: str
    exchange: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    volume: int = 0
    currency: str = "USD"

    def to_dict(self) -> dict[str, Any]:
        """API shape (camelCase like the feed)."""
        d = asdict(self)
        d["changePercent"] = d.pop("change_percent")
        return d


@dataclass
class DailyPrice:
    ticker: str
    date: str  # YYYYMMDD
    close: float
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    volume: int = 0
    currency: str = "USD"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def to_float(value: Any, default: float = 0.0) -> float:
    """Provider numbers arrive as strings ('71500', '', None)."""
    if value is None or value == "":
        return default
    try:
        return float(str(value).replace(",", ""))
    except (TypeError, ValueError):
        return default


def to_int(value: Any, default: int = 0) -> int:
    return int(to_float(value, float(default)))
